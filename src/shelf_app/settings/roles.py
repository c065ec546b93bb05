"""
settings/roles.py - Role Management Routes
"""

from __future__ import annotations

from flask import current_app, flash, redirect, render_template, request, url_for

from extensions import db
from shelf_app.helpers import RouteResponse, check_permission, current_user, role_repo, settings
from shelf_app.settings import bp
from shelf_app.validation import validate_role


def _role_input() -> dict:
    return {
        "display_name": request.form.get("display_name", "").strip(),
        "description": request.form.get("description", "").strip(),
        "permissions": [p for p in request.form.getlist("permissions") if p],
    }


@bp.route("/settings/roles")
def roles_index() -> RouteResponse:
    check_permission("user-roles-manage")
    repo = role_repo()
    roles = repo.get_all_roles()
    user_counts = {role.id: role.user_count(db.session) for role in roles}
    return render_template("roles/index.html", roles=roles, user_counts=user_counts)


@bp.route("/settings/roles/new", methods=["GET", "POST"])
def roles_create() -> RouteResponse:
    """Show the new role form (GET) and create the role (POST)."""
    check_permission("user-roles-manage")
    repo = role_repo()

    if request.method == "POST":
        data = _role_input()
        errors = validate_role(data)
        if errors:
            for message in errors.messages():
                flash(message, "error")
            return render_template(
                "roles/form.html", role=None, data=data, errors=errors, permissions=repo.get_all_permissions()
            )

        role = repo.save_new(data["display_name"], data["description"], data["permissions"])
        db.session.commit()
        current_app.logger.info("User %s created role %s", current_user().id, role.name)
        flash("Role successfully created", "success")
        return redirect(url_for("settings.roles_index"))

    data = {"display_name": "", "description": "", "permissions": []}
    return render_template("roles/form.html", role=None, data=data, errors={}, permissions=repo.get_all_permissions())


@bp.route("/settings/roles/<int:role_id>")
def roles_edit(role_id: int) -> RouteResponse:
    check_permission("user-roles-manage")
    repo = role_repo()
    role = repo.get_role_by_id(role_id)
    data = {
        "display_name": role.display_name,
        "description": role.description,
        "permissions": sorted(role.permission_names()),
    }
    return render_template("roles/form.html", role=role, data=data, errors={}, permissions=repo.get_all_permissions())


@bp.route("/settings/roles/<int:role_id>", methods=["POST", "PUT"])
def roles_update(role_id: int) -> RouteResponse:
    check_permission("user-roles-manage")
    repo = role_repo()
    role = repo.get_role_by_id(role_id)

    data = _role_input()
    errors = validate_role(data)
    if errors:
        for message in errors.messages():
            flash(message, "error")
        return render_template(
            "roles/form.html", role=role, data=data, errors=errors, permissions=repo.get_all_permissions()
        )

    repo.update(role, data["display_name"], data["description"], data["permissions"])
    db.session.commit()
    current_app.logger.info("User %s updated role %s", current_user().id, role.name)
    flash("Role successfully updated", "success")
    return redirect(url_for("settings.roles_index"))


@bp.route("/settings/roles/delete/<int:role_id>")
def roles_delete(role_id: int) -> RouteResponse:
    """Confirm deleting a role, offering another role to move its users to."""
    check_permission("user-roles-manage")
    repo = role_repo()
    role = repo.get_role_by_id(role_id)
    others = [r for r in repo.get_all_roles() if r.id != role.id]
    return render_template("roles/delete.html", role=role, roles=others)


@bp.route("/settings/roles/delete/<int:role_id>", methods=["POST", "DELETE"])
def roles_destroy(role_id: int) -> RouteResponse:
    check_permission("user-roles-manage")
    repo = role_repo()
    role = repo.get_role_by_id(role_id)

    migrate_to = request.form.get("migrate_role_id", "").strip()
    name = role.name
    repo.destroy(role, settings(), int(migrate_to) if migrate_to.isdigit() else None)
    db.session.commit()
    current_app.logger.info("User %s deleted role %s", current_user().id, name)
    flash("Role successfully deleted", "success")
    return redirect(url_for("settings.roles_index"))
