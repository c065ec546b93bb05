"""
settings/users.py - User Management Routes

Routes for listing, creating, editing and deleting users, and for user
profiles.
"""

from __future__ import annotations

from typing import Optional

from flask import current_app, flash, redirect, render_template, request, url_for

from extensions import db
from shelf_app.helpers import (
    RouteResponse,
    check_permission,
    check_permission_or,
    current_user,
    permissions,
    prevent_demo_access,
    role_repo,
    user_repo,
)
from shelf_app.settings import bp
from shelf_app.validation import FormErrors, validate_user_create, validate_user_update
from shelfops.exceptions import NotifyException
from shelfops.models import User
from shelfops.security import hash_password


def _is_current_user(user_id: int) -> bool:
    user = current_user()
    return user is not None and user.id == user_id


def _submitted_role_ids() -> Optional[list[int]]:
    """Role ids from the "roles" checkboxes, or None when the field was not submitted."""
    if "roles" not in request.form:
        return None
    return [int(v) for v in request.form.getlist("roles") if v.strip().isdigit()]


def _user_form_data(user: Optional[User] = None) -> dict:
    if request.method in ("POST", "PUT"):
        return {
            "name": request.form.get("name", "").strip(),
            "email": request.form.get("email", "").strip(),
            "roles": _submitted_role_ids() or [],
        }
    if user is None:
        return {"name": "", "email": "", "roles": []}
    return {"name": user.name, "email": user.email, "roles": user.role_ids()}


def _render_errors(template: str, errors: FormErrors, **context) -> str:
    for message in errors.messages():
        flash(message, "error")
    return render_template(template, errors=errors, roles=role_repo().get_all_roles(), **context)


@bp.route("/settings/users")
def users_index() -> RouteResponse:
    check_permission("users-manage")
    return render_template("users/index.html", users=user_repo().get_all_users())


@bp.route("/settings/users/create")
def users_create() -> RouteResponse:
    check_permission("users-manage")
    return render_template(
        "users/create.html",
        data=_user_form_data(),
        errors={},
        roles=role_repo().get_all_roles(),
    )


@bp.route("/settings/users", methods=["POST"])
def users_store() -> RouteResponse:
    """
    Create a user from the admin form.

    Validates:
        - name: required, max 255 characters
        - email: required, valid, not already taken
        - password: required, min 5 characters, confirmed by password_confirm
        - roles: optional list of role ids

    Returns:
        A redirect to the user list, or the re-rendered form on validation errors.
    """
    check_permission("users-manage")

    errors = validate_user_create(request.form)
    data = _user_form_data()
    repo = user_repo()
    if "email" not in errors and repo.email_taken(data["email"]):
        errors.add("email", "The email has already been taken.")
    if errors:
        return _render_errors("users/create.html", errors, data=data)

    user = repo.create(
        data["name"],
        data["email"],
        hash_password(request.form["password"], current_app.config["BCRYPT_ROUNDS"]),
        email_confirmed=True,
        role_ids=_submitted_role_ids(),
    )
    db.session.commit()
    current_app.logger.info("User %s created user %s", current_user().id, user.id)
    flash("User successfully created", "success")
    return redirect(url_for("settings.users_index"))


@bp.route("/settings/users/<int:user_id>")
def users_edit(user_id: int) -> RouteResponse:
    """Show the edit form. Users may always edit their own account."""
    check_permission_or(_is_current_user(user_id), "users-manage")
    user = user_repo().get_by_id(user_id)
    return render_template(
        "users/edit.html",
        user=user,
        data=_user_form_data(user),
        errors={},
        roles=role_repo().get_all_roles(),
    )


@bp.route("/settings/users/<int:user_id>", methods=["POST", "PUT"])
def users_update(user_id: int) -> RouteResponse:
    """
    Update a user from the edit form.

    Validates:
        - name: required, min 2 characters
        - email: required, valid, unique except for this user
        - password: optional, min 5 characters, needs password_confirm

    A blank password keeps the current one. Roles are only changed by users
    holding "users-manage", and only when the roles field was submitted.

    Returns:
        A redirect to the user list for managers, or to the user's own edit
        page otherwise.
    """
    prevent_demo_access()
    check_permission_or(_is_current_user(user_id), "users-manage")

    repo = user_repo()
    user = repo.get_by_id(user_id)

    errors = validate_user_update(request.form)
    data = _user_form_data(user)
    if "email" not in errors and repo.email_taken(data["email"], except_id=user.id):
        errors.add("email", "The email has already been taken.")
    if errors:
        return _render_errors("users/edit.html", errors, user=user, data=data)

    user.name = data["name"]
    user.email = data["email"].lower()

    manager = permissions().user_can("users-manage")
    role_ids = _submitted_role_ids()
    if manager and role_ids is not None:
        repo.sync_roles(user, role_ids)

    password = request.form.get("password", "")
    if password:
        user.password = hash_password(password, current_app.config["BCRYPT_ROUNDS"])

    db.session.commit()
    current_app.logger.info("User %s updated user %s", current_user().id, user.id)
    flash("User successfully updated", "success")

    if manager:
        return redirect(url_for("settings.users_index"))
    return redirect(user.get_edit_url())


@bp.route("/settings/users/<int:user_id>/delete")
def users_delete(user_id: int) -> RouteResponse:
    check_permission_or(_is_current_user(user_id), "users-manage")
    user = user_repo().get_by_id(user_id)
    return render_template("users/delete.html", user=user)


@bp.route("/settings/users/<int:user_id>/delete", methods=["POST", "DELETE"])
def users_destroy(user_id: int) -> RouteResponse:
    """
    Delete a user. The only remaining admin cannot be deleted.
    """
    prevent_demo_access()
    check_permission_or(_is_current_user(user_id), "users-manage")

    repo = user_repo()
    user = repo.get_by_id(user_id)
    if repo.is_only_admin(user):
        raise NotifyException("You cannot delete the only admin", user.get_edit_url())

    actor_id = current_user().id
    repo.destroy(user)
    db.session.commit()
    current_app.logger.info("User %s deleted user %s", actor_id, user_id)
    flash("User successfully removed", "success")
    return redirect(url_for("settings.users_index"))


@bp.route("/user/<int:user_id>")
def users_profile(user_id: int) -> RouteResponse:
    """Show a user's recent activity, their newest content and how much they have created."""
    repo = user_repo()
    user = repo.get_by_id(user_id)
    return render_template(
        "users/profile.html",
        user=user,
        activity=repo.get_activity(user, 10),
        recently_created=repo.get_recently_created(user, 5),
        asset_counts=repo.get_asset_counts(user),
    )
