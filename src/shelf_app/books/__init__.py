"""
books - Content Blueprint

This blueprint handles books and everything inside them:
- Books: listing, CRUD, sorting and restrictions (routes.py)
- Chapters: CRUD, moving and restrictions (chapters.py)
- Pages: CRUD, drafts, revisions, moving and restrictions (pages.py)
"""

from flask import Blueprint

bp = Blueprint("books", __name__)

from shelf_app.books import chapters, pages, routes  # noqa: E402,F401  Import routes after bp is created
