"""
settings - Settings Blueprint

This blueprint handles administration:
- Application settings (routes.py)
- User management and profiles (users.py)
- Roles and role permissions (roles.py)
"""

from flask import Blueprint

bp = Blueprint("settings", __name__)

from shelf_app.settings import roles, routes, users  # noqa: E402,F401  Import routes after bp is created
