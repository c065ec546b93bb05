"""
books/routes.py - Book Routes

Routes for listing, creating, editing, sorting and deleting books, plus the
restriction form shared by books, chapters and pages.
"""

from __future__ import annotations

import json
from typing import Any

from flask import current_app, flash, redirect, render_template, request, url_for

from extensions import db
from shelf_app.books import bp
from shelf_app.helpers import (
    RouteResponse,
    activity,
    book_repo,
    check_ownable_permission,
    check_permission,
    current_user,
    form_bool,
    page_number,
    permissions,
    restriction_grants_from_form,
    restrictions,
    role_repo,
    views,
)
from shelf_app.validation import validate_entity
from shelfops.exceptions import NotifyException, PermissionDenied
from shelfops.models import Entity
from shelfops.services import ENTITY_ACTIONS


def _entity_input() -> dict[str, str]:
    return {
        "name": request.form.get("name", "").strip(),
        "description": request.form.get("description", "").strip(),
    }


def _flash_errors(errors) -> None:
    for message in errors.messages():
        flash(message, "error")


# ---------------------------------------------------------------------------
# Restrictions (shared by books, chapters and pages)
# ---------------------------------------------------------------------------


def manage_restrictions(entity: Entity, back_url: str) -> RouteResponse:
    """
    Show (GET) or save (POST) the restriction form for `entity`.

    Admins bypass restrictions, so the admin role is not offered.
    """
    if not permissions().can_manage_restrictions(entity):
        raise PermissionDenied()

    service = restrictions()
    if request.method == "POST":
        service.set_restrictions(entity, form_bool("restricted"), restriction_grants_from_form())
        db.session.commit()
        current_app.logger.info(
            "User %s updated restrictions on %s %s", current_user().id, entity.entity_type, entity.id
        )
        flash(f"{entity.entity_type.capitalize()} Permissions Updated", "success")
        return redirect(back_url)

    roles = [role for role in role_repo().get_all_roles() if role.name != "admin"]
    return render_template(
        "partials/restrictions.html",
        entity=entity,
        back_url=back_url,
        roles=roles,
        actions=ENTITY_ACTIONS[entity.entity_type],
        current=service.get_restrictions(entity),
        has_grant=service.has_grant,
    )


# ---------------------------------------------------------------------------
# Books
# ---------------------------------------------------------------------------


@bp.route("/books")
def index() -> RouteResponse:
    """List every book the user may view, with their recently viewed books."""
    repo = book_repo()
    recents = repo.get_recently_viewed(4) if current_user() is not None else []
    return render_template("books/index.html", books=repo.get_all_paginated(18, page_number()), recents=recents)


@bp.route("/books/create", methods=["GET", "POST"])
def create() -> RouteResponse:
    """
    Show the new book form (GET) and create the book (POST).

    Requires the "book-create-all" permission. The slug is generated from
    the name and made unique across all books.
    """
    check_permission("book-create-all")

    if request.method == "POST":
        data = _entity_input()
        errors = validate_entity(data, current_app.config["MAX_NAME_LENGTH"])
        if errors:
            _flash_errors(errors)
            return render_template("books/create.html", data=data, errors=errors)

        book = book_repo().create_from_input(data)
        db.session.commit()
        current_app.logger.info("User %s created book %s", current_user().id, book.id)
        return redirect(book.get_url())

    return render_template("books/create.html", data={}, errors={})


@bp.route("/books/<slug>")
def show(slug: str) -> RouteResponse:
    """Show a book with its visible chapters and pages and record a view."""
    repo = book_repo()
    book = repo.get_by_slug(slug)
    children = repo.get_children(book)
    views().add(book)
    db.session.commit()
    return render_template(
        "books/show.html",
        book=book,
        children=children,
        activity=activity().entity_activity(book, 20),
    )


@bp.route("/books/<slug>/edit")
def edit(slug: str) -> RouteResponse:
    book = book_repo().get_by_slug(slug)
    check_ownable_permission("book-update", book)
    data = {"name": book.name, "description": book.description}
    return render_template("books/edit.html", book=book, data=data, errors={})


@bp.route("/books/<slug>", methods=["POST", "PUT"])
def update(slug: str) -> RouteResponse:
    """Save the edit form. A changed name regenerates the slug."""
    repo = book_repo()
    book = repo.get_by_slug(slug)
    check_ownable_permission("book-update", book)

    data = _entity_input()
    errors = validate_entity(data, current_app.config["MAX_NAME_LENGTH"])
    if errors:
        _flash_errors(errors)
        return render_template("books/edit.html", book=book, data=data, errors=errors)

    repo.update_from_input(book, data)
    db.session.commit()
    return redirect(book.get_url())


@bp.route("/books/<slug>/delete", methods=["GET", "POST", "DELETE"])
def destroy(slug: str) -> RouteResponse:
    """
    Confirm (GET) and delete (POST) a book with every chapter and page in it.
    """
    repo = book_repo()
    book = repo.get_by_slug(slug)
    check_ownable_permission("book-delete", book)

    if request.method == "GET":
        return render_template("books/delete.html", book=book)

    name = book.name
    book_id = book.id
    repo.destroy(book)
    activity().add_message("book_delete", None, name)
    db.session.commit()
    current_app.logger.info("User %s deleted book %s", current_user().id, book_id)
    flash(f"Book {name} deleted", "success")
    return redirect(url_for("books.index"))


def _is_whole_number(value: Any) -> bool:
    return not isinstance(value, bool) and str(value).isdigit()


def _sort_item_valid(item: dict[str, Any]) -> bool:
    if not _is_whole_number(item.get("id", "")):
        return False
    for key in ("sort", "book"):
        if item.get(key) not in (None, "") and not _is_whole_number(item[key]):
            return False
    parent = item.get("parentChapter")
    return parent in (None, False, "", "false") or _is_whole_number(parent)


def _parse_sort_tree(raw: str) -> list[dict[str, Any]]:
    try:
        tree = json.loads(raw or "[]")
    except ValueError:
        tree = None
    if not isinstance(tree, list) or not all(isinstance(item, dict) and _sort_item_valid(item) for item in tree):
        raise NotifyException("The sort data could not be read", request.path)
    return tree


@bp.route("/books/<slug>/sort")
def sort(slug: str) -> RouteResponse:
    """Show the sort view for a book, with other books available as move targets."""
    repo = book_repo()
    book = repo.get_by_slug(slug)
    check_ownable_permission("book-update", book)
    other_books = [b for b in repo.get_all(0) if b.id != book.id]
    return render_template(
        "books/sort.html",
        book=book,
        children=repo.get_children(book),
        books=other_books,
    )


@bp.route("/books/<slug>/sort", methods=["POST", "PUT"])
def save_sort(slug: str) -> RouteResponse:
    """
    Apply a posted sort tree.

    `sort_tree` is a JSON list of {"id", "type", "sort", "parentChapter",
    "book"} items. The user must be allowed to update every book the tree
    touches.
    """
    repo = book_repo()
    book = repo.get_by_slug(slug)
    check_ownable_permission("book-update", book)

    tree = _parse_sort_tree(request.form.get("sort_tree", ""))
    for book_id in {int(item.get("book") or book.id) for item in tree}:
        target = repo.get_by_id(book_id)
        check_ownable_permission("book-update", target)

    repo.sort(book, tree)
    db.session.commit()
    flash("Sort order saved", "success")
    return redirect(book.get_url())


@bp.route("/books/<slug>/restrict", methods=["GET", "POST"])
def restrict(slug: str) -> RouteResponse:
    book = book_repo().get_by_slug(slug)
    return manage_restrictions(book, book.get_url())
