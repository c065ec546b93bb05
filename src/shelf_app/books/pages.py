"""
books/pages.py - Page Routes

Routes for creating, viewing, editing, moving and deleting pages, and for
browsing and restoring page revisions.
"""

from __future__ import annotations

from typing import Any, Optional

from flask import current_app, flash, redirect, render_template, request

from extensions import db
from shelf_app.books import bp
from shelf_app.books.routes import _flash_errors, manage_restrictions
from shelf_app.helpers import (
    RouteResponse,
    activity,
    book_repo,
    chapter_repo,
    check_ownable_permission,
    current_user,
    form_bool,
    page_repo,
    parse_entity_selection,
    views,
)
from shelf_app.validation import validate_entity
from shelfops.exceptions import NotifyException
from shelfops.models import Book, Chapter, Page


def _load(book_slug: str, page_slug: str) -> tuple[Book, Page]:
    book = book_repo().get_by_slug(book_slug)
    page = page_repo().get_by_slug(page_slug, book.id)
    return book, page


def _page_input() -> dict[str, Any]:
    return {
        "name": request.form.get("name", "").strip(),
        "html": request.form.get("html", ""),
    }


def _create(book: Book, chapter: Optional[Chapter]) -> RouteResponse:
    parent = chapter if chapter is not None else book
    check_ownable_permission("page-create", parent)

    if request.method == "POST":
        data = _page_input()
        errors = validate_entity(data, current_app.config["MAX_NAME_LENGTH"])
        if errors:
            _flash_errors(errors)
            return render_template("pages/create.html", book=book, chapter=chapter, data=data, errors=errors)

        page = page_repo().save_new(data, book, chapter, draft=form_bool("draft"))
        db.session.commit()
        current_app.logger.info("User %s created page %s (draft=%s)", current_user().id, page.id, page.draft)
        return redirect(page.get_url())

    return render_template("pages/create.html", book=book, chapter=chapter, data={}, errors={})


@bp.route("/books/<book_slug>/page/create", methods=["GET", "POST"])
def page_create(book_slug: str) -> RouteResponse:
    """Create a page directly in a book. Checking "draft" keeps it private to its creator."""
    book = book_repo().get_by_slug(book_slug)
    return _create(book, None)


@bp.route("/books/<book_slug>/chapter/<chapter_slug>/create-page", methods=["GET", "POST"])
def chapter_page_create(book_slug: str, chapter_slug: str) -> RouteResponse:
    """Create a page at the end of a chapter."""
    book = book_repo().get_by_slug(book_slug)
    chapter = chapter_repo().get_by_slug(chapter_slug, book.id)
    return _create(book, chapter)


@bp.route("/books/<book_slug>/page/<page_slug>")
def page_show(book_slug: str, page_slug: str) -> RouteResponse:
    """Show a page with the book navigation alongside and record a view."""
    book, page = _load(book_slug, page_slug)
    book_children = book_repo().get_children(book)
    views().add(page)
    db.session.commit()
    return render_template("pages/show.html", book=book, page=page, book_children=book_children)


@bp.route("/books/<book_slug>/page/<page_slug>/edit")
def page_edit(book_slug: str, page_slug: str) -> RouteResponse:
    """
    Render the page editor.

    The form posts with a hidden `_method` of PUT to the page URL.
    """
    book, page = _load(book_slug, page_slug)
    check_ownable_permission("page-update", page)
    data = {"name": page.name, "html": page.html}
    return render_template("pages/edit.html", book=book, page=page, data=data, errors={})


@bp.route("/books/<book_slug>/page/<page_slug>", methods=["POST", "PUT"])
def page_update(book_slug: str, page_slug: str) -> RouteResponse:
    """
    Save the page editor and store a revision.

    Saving a draft without "draft" checked publishes it.
    """
    book, page = _load(book_slug, page_slug)
    check_ownable_permission("page-update", page)

    data = _page_input()
    errors = validate_entity(data, current_app.config["MAX_NAME_LENGTH"])
    if errors:
        _flash_errors(errors)
        return render_template("pages/edit.html", book=book, page=page, data=data, errors=errors)

    if page.draft:
        data["draft"] = form_bool("draft")
    page_repo().update(page, book.id, data)
    db.session.commit()
    return redirect(page.get_url())


@bp.route("/books/<book_slug>/page/<page_slug>/delete", methods=["GET", "POST", "DELETE"])
def page_destroy(book_slug: str, page_slug: str) -> RouteResponse:
    book, page = _load(book_slug, page_slug)
    check_ownable_permission("page-delete", page)

    if request.method == "GET":
        return render_template("pages/delete.html", book=book, page=page)

    parent_url = page.chapter.get_url() if page.chapter is not None else book.get_url()
    name = page.name
    page_id = page.id
    page_repo().destroy(page)
    activity().add_message("page_delete", book.id, name)
    db.session.commit()
    current_app.logger.info("User %s deleted page %s", current_user().id, page_id)
    flash(f"Page {name} deleted", "success")
    return redirect(parent_url)


@bp.route("/books/<book_slug>/page/<page_slug>/move", methods=["GET", "POST"])
def page_move(book_slug: str, page_slug: str) -> RouteResponse:
    """
    Show the move form (GET) and move the page to a book or chapter (POST).

    `entity_selection` is "book:<id>" or "chapter:<id>". The user needs
    page create rights on the new parent.
    """
    book, page = _load(book_slug, page_slug)
    check_ownable_permission("page-update", page)
    check_ownable_permission("page-delete", page)

    if request.method == "GET":
        books = book_repo().get_all(0)
        chapters = chapter_repo().get_all()
        return render_template("pages/move.html", book=book, page=page, books=books, chapters=chapters)

    selection = parse_entity_selection(request.form.get("entity_selection"))
    if selection is None:
        raise NotifyException("Please select a book or chapter to move the page to", page.get_url() + "/move")

    entity_type, entity_id = selection
    if entity_type == "chapter":
        chapter = chapter_repo().get_by_id(entity_id)
        check_ownable_permission("page-create", chapter)
        new_book = chapter.book
    else:
        chapter = None
        new_book = book_repo().get_by_id(entity_id)
        check_ownable_permission("page-create", new_book)

    page_repo().change_parent(page, new_book, chapter)
    db.session.commit()
    parent_name = chapter.name if chapter is not None else new_book.name
    flash(f"Page moved to {parent_name}", "success")
    return redirect(page.get_url())


@bp.route("/books/<book_slug>/page/<page_slug>/restrict", methods=["GET", "POST"])
def page_restrict(book_slug: str, page_slug: str) -> RouteResponse:
    book, page = _load(book_slug, page_slug)
    return manage_restrictions(page, page.get_url())


@bp.route("/books/<book_slug>/page/<page_slug>/revisions")
def page_revisions(book_slug: str, page_slug: str) -> RouteResponse:
    book, page = _load(book_slug, page_slug)
    return render_template("pages/revisions.html", book=book, page=page, revisions=page_repo().get_revisions(page))


@bp.route("/books/<book_slug>/page/<page_slug>/revisions/<int:revision_id>")
def page_revision(book_slug: str, page_slug: str, revision_id: int) -> RouteResponse:
    """Preview the content of one revision."""
    book, page = _load(book_slug, page_slug)
    revision = page_repo().get_revision(page, revision_id)
    return render_template("pages/revision.html", book=book, page=page, revision=revision)


@bp.route("/books/<book_slug>/page/<page_slug>/revisions/<int:revision_id>/restore", methods=["POST", "PUT"])
def page_revision_restore(book_slug: str, page_slug: str, revision_id: int) -> RouteResponse:
    """Bring back the content of a revision, keeping the current content as a new revision."""
    book, page = _load(book_slug, page_slug)
    check_ownable_permission("page-update", page)
    page_repo().restore_revision(page, book, revision_id)
    db.session.commit()
    flash("Page revision restored", "success")
    return redirect(page.get_url())
