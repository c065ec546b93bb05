"""
auth - Authentication Blueprint

This blueprint handles signing in and out, registration and email
confirmation of newly registered accounts.
"""

from flask import Blueprint

bp = Blueprint("auth", __name__)

from shelf_app.auth import routes  # noqa: E402,F401  Import routes after bp is created
