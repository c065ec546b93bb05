"""
books/chapters.py - Chapter Routes

Routes for creating, viewing, editing, moving and deleting chapters.
"""

from __future__ import annotations

from flask import current_app, flash, redirect, render_template, request

from extensions import db
from shelf_app.books import bp
from shelf_app.books.routes import _entity_input, _flash_errors, manage_restrictions
from shelf_app.helpers import (
    RouteResponse,
    activity,
    book_repo,
    chapter_repo,
    check_ownable_permission,
    current_user,
    parse_entity_selection,
    views,
)
from shelf_app.validation import validate_entity
from shelfops.exceptions import NotifyException


def _load(book_slug: str, chapter_slug: str):
    book = book_repo().get_by_slug(book_slug)
    chapter = chapter_repo().get_by_slug(chapter_slug, book.id)
    return book, chapter


@bp.route("/books/<book_slug>/chapter/create", methods=["GET", "POST"])
def chapter_create(book_slug: str) -> RouteResponse:
    """
    Show the new chapter form (GET) and add the chapter to the end of the book (POST).
    """
    book = book_repo().get_by_slug(book_slug)
    check_ownable_permission("chapter-create", book)

    if request.method == "POST":
        data = _entity_input()
        errors = validate_entity(data, current_app.config["MAX_NAME_LENGTH"])
        if errors:
            _flash_errors(errors)
            return render_template("chapters/create.html", book=book, data=data, errors=errors)

        chapter = chapter_repo().create_from_input(data, book)
        db.session.commit()
        current_app.logger.info("User %s created chapter %s", current_user().id, chapter.id)
        return redirect(chapter.get_url())

    return render_template("chapters/create.html", book=book, data={}, errors={})


@bp.route("/books/<book_slug>/chapter/<chapter_slug>")
def chapter_show(book_slug: str, chapter_slug: str) -> RouteResponse:
    book, chapter = _load(book_slug, chapter_slug)
    pages = chapter_repo().get_children(chapter)
    book_children = book_repo().get_children(book)
    views().add(chapter)
    db.session.commit()
    return render_template(
        "chapters/show.html",
        book=book,
        chapter=chapter,
        pages=pages,
        book_children=book_children,
    )


@bp.route("/books/<book_slug>/chapter/<chapter_slug>/edit")
def chapter_edit(book_slug: str, chapter_slug: str) -> RouteResponse:
    book, chapter = _load(book_slug, chapter_slug)
    check_ownable_permission("chapter-update", chapter)
    data = {"name": chapter.name, "description": chapter.description}
    return render_template("chapters/edit.html", book=book, chapter=chapter, data=data, errors={})


@bp.route("/books/<book_slug>/chapter/<chapter_slug>", methods=["POST", "PUT"])
def chapter_update(book_slug: str, chapter_slug: str) -> RouteResponse:
    book, chapter = _load(book_slug, chapter_slug)
    check_ownable_permission("chapter-update", chapter)

    data = _entity_input()
    errors = validate_entity(data, current_app.config["MAX_NAME_LENGTH"])
    if errors:
        _flash_errors(errors)
        return render_template("chapters/edit.html", book=book, chapter=chapter, data=data, errors=errors)

    chapter_repo().update_from_input(chapter, data)
    db.session.commit()
    return redirect(chapter.get_url())


@bp.route("/books/<book_slug>/chapter/<chapter_slug>/delete", methods=["GET", "POST", "DELETE"])
def chapter_destroy(book_slug: str, chapter_slug: str) -> RouteResponse:
    """
    Confirm (GET) and delete (POST) a chapter. Its pages move up to the book.
    """
    book, chapter = _load(book_slug, chapter_slug)
    check_ownable_permission("chapter-delete", chapter)

    if request.method == "GET":
        return render_template("chapters/delete.html", book=book, chapter=chapter)

    name = chapter.name
    chapter_id = chapter.id
    chapter_repo().destroy(chapter)
    activity().add_message("chapter_delete", book.id, name)
    db.session.commit()
    current_app.logger.info("User %s deleted chapter %s", current_user().id, chapter_id)
    flash(f"Chapter {name} deleted", "success")
    return redirect(book.get_url())


@bp.route("/books/<book_slug>/chapter/<chapter_slug>/move", methods=["GET", "POST"])
def chapter_move(book_slug: str, chapter_slug: str) -> RouteResponse:
    """
    Show the move form (GET) and move the chapter, with its pages, to another book (POST).

    Moving needs update and delete rights on the chapter and create rights
    for chapters in the target book.
    """
    book, chapter = _load(book_slug, chapter_slug)
    check_ownable_permission("chapter-update", chapter)
    check_ownable_permission("chapter-delete", chapter)

    if request.method == "GET":
        books = [b for b in book_repo().get_all(0) if b.id != book.id]
        return render_template("chapters/move.html", book=book, chapter=chapter, books=books)

    selection = parse_entity_selection(request.form.get("entity_selection"))
    if selection is None or selection[0] != "book":
        raise NotifyException("Please select a book to move the chapter to", chapter.get_url() + "/move")

    new_book = book_repo().get_by_id(selection[1])
    check_ownable_permission("chapter-create", new_book)

    chapter_repo().change_book(new_book.id, chapter)
    activity().add(chapter, "chapter_move", new_book.id)
    db.session.commit()
    flash(f"Chapter moved to {new_book.name}", "success")
    return redirect(chapter.get_url())


@bp.route("/books/<book_slug>/chapter/<chapter_slug>/restrict", methods=["GET", "POST"])
def chapter_restrict(book_slug: str, chapter_slug: str) -> RouteResponse:
    book, chapter = _load(book_slug, chapter_slug)
    return manage_restrictions(chapter, chapter.get_url())
