"""
shelfops - Wiki Content Package

This package holds ShelfWiki's domain logic, independent of Flask:

Modules:
    models: SQLAlchemy models for books, chapters, pages, users and roles
    db: engine and session wiring
    repos: restriction-scoped data access
    services: restrictions, permissions, settings, activity, views, email confirmation
    utils: slugs, text extraction, search terms and highlighting
    security: password hashing and avatars
    mail: outgoing mail
    seed: default roles, permissions, settings and admin user

Typical Usage:
    >>> from shelfops.repos import BookRepo
    >>> repo = BookRepo(session, current_user)
    >>> book = repo.get_by_slug("my-book")
    >>> children = repo.get_children(book)

Security:
    Entity reads always pass through RestrictionService, so a repo built
    for a user never returns content that user may not view.
"""

from __future__ import annotations

# Re-export commonly used names for convenience.
from .exceptions import (
    NotFoundException,
    NotifyException,
    PermissionDenied,
    ShelfError,
    UserRegistrationException,
)
from .utils import excerpt, highlight, prepare_search_terms, slugify_title, strip_tags

__all__ = [
    # exceptions module
    "NotFoundException",
    "NotifyException",
    "PermissionDenied",
    "ShelfError",
    "UserRegistrationException",
    # utils module
    "excerpt",
    "highlight",
    "prepare_search_terms",
    "slugify_title",
    "strip_tags",
]

__version__ = "1.0.0"
