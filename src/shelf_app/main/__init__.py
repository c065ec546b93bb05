"""
main - Main Blueprint

This blueprint handles the main application routes including:
- Home page (recent activity, views and pages)
- Search across books, chapters and pages
- Recently created and updated page listings
- Health check
"""

from flask import Blueprint

bp = Blueprint("main", __name__)

from shelf_app.main import routes  # noqa: E402,F401  Import routes after bp is created
