"""
shelf_app - Flask Application Package

This package contains the ShelfWiki Flask application using the factory pattern.
The create_app() function is the entry point for creating application instances.

Usage:
    # Development
    from shelf_app import create_app
    app = create_app()

    # Production
    from shelf_app import create_app
    from config import ProductionConfig
    app = create_app(ProductionConfig)

    # Testing
    from shelf_app import create_app
    from config import TestingConfig
    app = create_app(TestingConfig)
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Mapping, Optional

from flask import Flask, Response, flash, g, jsonify, redirect, render_template, request, session, url_for
from werkzeug.exceptions import NotFound, RequestEntityTooLarge

from config import Config, DevelopmentConfig
from extensions import csrf, db, limiter
from shelfops.exceptions import NotFoundException, NotifyException, PermissionDenied
from shelfops.mail import Mailer
from shelfops.models import User


def create_app(config_class: Optional[type] = None) -> Flask:
    """
    Create and configure a Flask application with extensions, blueprints, error handlers, and request hooks registered.

    Parameters:
        config_class (type, optional): Configuration class to apply to the app. If omitted, uses DevelopmentConfig when the environment variable FLASK_DEBUG is "1", otherwise uses Config.

    Returns:
        Flask: The configured Flask application instance.
    """
    # Determine config class if not provided
    if config_class is None:
        if os.environ.get("FLASK_DEBUG") == "1":
            config_class = DevelopmentConfig
        else:
            config_class = Config

    # Use absolute paths for template and static folders
    # __file__ is in shelf_app/, so parent is src/
    src_dir = Path(__file__).parent.parent
    app = Flask(
        __name__,
        template_folder=str(src_dir / "templates"),
        static_folder=str(src_dir / "static")
    )
    app.config.from_object(config_class)

    # Ensure the data root directory exists before SQLite opens its file
    root: Path = app.config["WIKI_DATA_ROOT"]
    root.mkdir(parents=True, exist_ok=True)

    # Initialize extensions
    csrf.init_app(app)
    limiter.init_app(app)
    db.init_app(app)

    app.extensions["mailer"] = Mailer.from_config(app.config, _render_mail)

    # Register blueprints
    from shelf_app.auth import bp as auth_bp
    from shelf_app.books import bp as books_bp
    from shelf_app.main import bp as main_bp
    from shelf_app.settings import bp as settings_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(books_bp)
    app.register_blueprint(settings_bp)

    # Register error handlers
    app.register_error_handler(RequestEntityTooLarge, _handle_large_request)
    app.register_error_handler(NotFoundException, _handle_not_found)
    app.register_error_handler(NotFound, _handle_not_found)
    app.register_error_handler(PermissionDenied, _handle_permission_denied)
    app.register_error_handler(NotifyException, _handle_notify)

    # Register request handlers
    app.before_request(_load_user)
    app.before_request(_check_user)
    app.after_request(_add_security_headers)

    from shelf_app.helpers import template_globals
    app.context_processor(template_globals)

    from shelf_app.commands import register_commands
    register_commands(app)

    # Configure logging for production
    if not app.debug and not app.testing:
        _configure_logging(app)

    return app


def _render_mail(template: str, context: Mapping[str, Any]) -> str:
    return render_template(template, **context)


def _handle_large_request(e: RequestEntityTooLarge) -> tuple[Response, int]:
    """
    Return a 413 JSON response for requests that exceed the configured maximum content length.

    Parameters:
        e (RequestEntityTooLarge): The exception raised for an oversized request.

    Returns:
        tuple[Response, int]: A JSON response containing `error` and `message` fields, and the HTTP status code 413.
    """
    return jsonify({
        "error": "Request too large",
        "message": "Uploaded data exceeds the allowed size limit"
    }), 413


def _handle_not_found(e: Exception) -> tuple[str, int]:
    message = str(e) if isinstance(e, NotFoundException) else "Page not found"
    return render_template("errors/404.html", message=message), 404


def _handle_permission_denied(e: PermissionDenied) -> Response:
    """
    Send guests to the login page; signed-in users get an error message on the home page.
    """
    if g.get("user") is None:
        return redirect(url_for("auth.login", next=_request_path()))
    flash(e.message, "error")
    return redirect(url_for("main.index"))


def _handle_notify(e: NotifyException) -> Response:
    flash(e.message, "error")
    return redirect(e.redirect_location)


def _request_path() -> str:
    path = request.path
    if request.query_string:
        path = f"{request.path}?{request.query_string.decode('utf-8')}"
    return path


def _load_user() -> None:
    """Attach the signed-in user, if any, to `g.user`."""
    from shelf_app.helpers import reset_request_cache

    reset_request_cache()
    g.user = None
    user_id = session.get("user_id")
    if user_id is None:
        return
    user = db.session.get(User, user_id)
    if user is None:
        # Account was deleted while signed in
        session.pop("user_id", None)
        return
    g.user = user


def _check_user() -> Optional[Response]:
    """
    Gate every request on authentication.

    Guests may browse with GET requests when the "app-public" setting is on
    and are otherwise redirected to the login page, keeping the original
    path and query string as `next`. Signed-in users whose email still needs
    confirming are sent to the awaiting-confirmation page. Auth routes,
    static files and the health check are never gated.

    Returns:
        Response or None: A redirect `Response` when access is refused, `None` to continue normal request handling.
    """
    from shelf_app.helpers import settings

    endpoint = request.endpoint
    # Unknown routes fall through to the 404 handler
    if endpoint is None:
        return None
    if endpoint in ("static", "main.health") or endpoint.startswith("auth."):
        return None

    user = g.get("user")
    if user is None:
        if request.method == "GET" and settings().get_bool("app-public"):
            return None
        return redirect(url_for("auth.login", next=_request_path()))

    if not user.email_confirmed and settings().get_bool("registration-confirmation"):
        return redirect(url_for("auth.confirm_awaiting"))
    return None


def _add_security_headers(response: Response) -> Response:
    """
    Attach common security-related HTTP headers to the given response.

    Adds the following headers to mitigate common web vulnerabilities:
    - X-Content-Type-Options: nosniff
    - X-Frame-Options: SAMEORIGIN
    - X-XSS-Protection: 1; mode=block

    If the application's SESSION_COOKIE_SECURE config is enabled, also adds
    Strict-Transport-Security set to "max-age=31536000; includeSubDomains".

    Parameters:
        response (Response): The Flask response object to modify.

    Returns:
        response (Response): The same response object with security headers applied.
    """
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "SAMEORIGIN"
    response.headers["X-XSS-Protection"] = "1; mode=block"

    # Only add HSTS in production with HTTPS
    from flask import current_app
    if current_app.config.get("SESSION_COOKIE_SECURE"):
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    return response


def _configure_logging(app: Flask) -> None:
    """
    Set up rotating file logging for production.

    Creates a "logs" directory under WIKI_DATA_ROOT if it does not exist, attaches a RotatingFileHandler writing to "logs/shelfwiki.log" (max 10240 bytes per file, 10 backup files), sets the handler and application logger level to INFO, and logs a startup message.

    Parameters:
        app (Flask): The Flask application instance to configure.
    """
    logs_dir = Path(app.config["WIKI_DATA_ROOT"]) / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        logs_dir / "shelfwiki.log",
        maxBytes=10240,  # 10KB per file
        backupCount=10
    )
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]"
    ))
    file_handler.setLevel(logging.INFO)

    app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.INFO)

    # Domain modules log through the "shelfops" logger
    domain_logger = logging.getLogger("shelfops")
    domain_logger.addHandler(file_handler)
    domain_logger.setLevel(logging.INFO)

    app.logger.info("ShelfWiki startup")
