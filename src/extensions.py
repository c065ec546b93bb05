"""
extensions.py - Flask Extensions Module

This module initializes Flask extensions without binding them to a specific
application instance. This allows the extensions to be imported anywhere in
the application without creating circular import issues.

The extensions are bound to the Flask app in the application factory function
(create_app) using the init_app pattern.

Example:
    from extensions import csrf, db, limiter

    def create_app(config_class=Config):
        app = Flask(__name__)
        app.config.from_object(config_class)

        # Initialize extensions with the app
        csrf.init_app(app)
        limiter.init_app(app)
        db.init_app(app)

        return app
"""

from __future__ import annotations

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf.csrf import CSRFProtect

from shelfops.db import Database

# Initialize extensions without app (deferred initialization)
# These will be bound to the app in create_app()
csrf = CSRFProtect()

# Rate limiter with default limits
# Limits can be customized per-route using @limiter.limit()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["2000 per day", "500 per hour"],
    storage_uri="memory://",  # Use Redis in production: "redis://localhost:6379"
    strategy="fixed-window",
)

# SQLAlchemy engine and request-scoped session
db = Database()
