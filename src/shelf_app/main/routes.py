"""
main/routes.py - Main Blueprint Routes

Routes for the home page, search and page listings.
"""

from __future__ import annotations

from flask import current_app, jsonify, render_template, request

from shelf_app.helpers import (
    RouteResponse,
    activity,
    book_repo,
    chapter_repo,
    current_user,
    page_number,
    page_repo,
    views,
)
from shelf_app.main import bp
from shelfops import __version__
from shelfops.models import Book, Page

# Results per entity type on the combined search page
SEARCH_ALL_COUNT = 10


@bp.route("/health")
def health() -> RouteResponse:
    """
    Health check endpoint returning service status and metadata.

    Returns:
        JSON object with keys:
            - "status": service health string (e.g., "healthy").
            - "service": service name.
            - "version": service version.
    """
    return jsonify({
        "status": "healthy",
        "service": "shelfwiki",
        "version": __version__
    })


@bp.route("/")
def index() -> RouteResponse:
    """
    Render the home page.

    Signed-in users see what they recently viewed and their drafts; guests
    see the newest books instead. Everyone sees recent activity and recently
    updated pages, filtered to what they may view.
    """
    user = current_user()
    if user is not None:
        recents = views().get_user_recently_viewed(12)
        drafts = page_repo().get_user_drafts()
    else:
        recents = book_repo().get_recently_created(Book, 10)
        drafts = []

    return render_template(
        "home.html",
        recents=recents,
        drafts=drafts,
        activity=activity().latest(10),
        recently_updated_pages=page_repo().get_recently_updated(Page, 12),
    )


def _search_term() -> str:
    return request.args.get("term", "").strip()


@bp.route("/search/all")
def search_all() -> RouteResponse:
    """Search pages, chapters and books at once, showing the best few of each."""
    term = _search_term()
    return render_template(
        "search/all.html",
        term=term,
        pages=page_repo().get_by_search(term, count=SEARCH_ALL_COUNT),
        chapters=chapter_repo().get_by_search(term, count=SEARCH_ALL_COUNT),
        books=book_repo().get_by_search(term, count=SEARCH_ALL_COUNT),
    )


def _search_type(repo, title: str) -> RouteResponse:
    term = _search_term()
    results = repo.get_by_search(
        term,
        count=current_app.config.get("SEARCH_PAGE_SIZE", 20),
        appends={"term": term},
        page=page_number(),
    )
    return render_template("search/entity-search-results.html", term=term, title=title, results=results)


@bp.route("/search/pages")
def search_pages() -> RouteResponse:
    return _search_type(page_repo(), "Page Search Results")


@bp.route("/search/chapters")
def search_chapters() -> RouteResponse:
    return _search_type(chapter_repo(), "Chapter Search Results")


@bp.route("/search/books")
def search_books() -> RouteResponse:
    return _search_type(book_repo(), "Book Search Results")


@bp.route("/search/book/<int:book_id>")
def search_book(book_id: int) -> RouteResponse:
    """
    Search within one book. Renders a partial list of matching pages and
    chapters for the book sidebar.
    """
    book = book_repo().get_by_id(book_id)
    term = _search_term()
    where = {"book_id": book.id}
    pages = page_repo().get_by_search(term, where, count=50).items
    chapters = chapter_repo().get_by_search(term, where, count=50).items
    return render_template("search/entity-search-list.html", term=term, entities=pages + chapters)


@bp.route("/pages/recently-created")
def recently_created_pages() -> RouteResponse:
    pages = page_repo().get_recently_created_paginated(20, page_number())
    return render_template("pages/detailed-listing.html", title="Recently Created Pages", pages=pages)


@bp.route("/pages/recently-updated")
def recently_updated_pages() -> RouteResponse:
    pages = page_repo().get_recently_updated_paginated(20, page_number())
    return render_template("pages/detailed-listing.html", title="Recently Updated Pages", pages=pages)
