"""
helpers.py - Request-scoped helpers shared by the blueprints

Repos and services are built once per request for the signed-in user and
cached on `flask.g`, so every query in a request sees the same restriction
scope.
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import urlparse

from flask import Response, current_app, g, request
from werkzeug.wrappers import Response as WerkzeugResponse

from extensions import db
from shelfops.exceptions import NotifyException, PermissionDenied
from shelfops.models import Entity, User
from shelfops.repos import BookRepo, ChapterRepo, PageRepo, RoleRepo, UserRepo
from shelfops.services import (
    ActivityService,
    EmailConfirmationService,
    PermissionService,
    RestrictionService,
    SettingService,
    ViewService,
)

# Type alias for route return values
RouteResponse = str | Response | WerkzeugResponse


def current_user() -> Optional[User]:
    """Return the signed-in user for this request, or None for guests."""
    return g.get("user")


def _cached(name: str, factory):
    key = f"_shelf_{name}"
    value = g.get(key)
    if value is None:
        value = factory()
        setattr(g, key, value)
    return value


def reset_request_cache() -> None:
    """Drop cached repos and services, e.g. after the signed-in user changes."""
    for key in [k for k in vars(g) if k.startswith("_shelf_")]:
        g.pop(key, None)


def restrictions() -> RestrictionService:
    return _cached("restrictions", lambda: RestrictionService(db.session, current_user()))


def permissions() -> PermissionService:
    return _cached("permissions", lambda: PermissionService(restrictions()))


def settings() -> SettingService:
    return _cached(
        "settings",
        lambda: SettingService(db.session, {"app-name": current_app.config.get("APP_NAME", "ShelfWiki")}),
    )


def activity() -> ActivityService:
    return _cached("activity", lambda: ActivityService(db.session, current_user(), restrictions()))


def views() -> ViewService:
    return _cached("views", lambda: ViewService(db.session, current_user(), restrictions()))


def book_repo() -> BookRepo:
    return BookRepo(db.session, current_user(), restrictions(), activity(), views())


def chapter_repo() -> ChapterRepo:
    return ChapterRepo(db.session, current_user(), restrictions(), activity(), views())


def page_repo() -> PageRepo:
    return PageRepo(db.session, current_user(), restrictions(), activity(), views())


def user_repo() -> UserRepo:
    return UserRepo(db.session, current_user(), restrictions())


def role_repo() -> RoleRepo:
    return RoleRepo(db.session)


def email_confirmations() -> EmailConfirmationService:
    return EmailConfirmationService(
        db.session,
        current_app.extensions["mailer"],
        app_name=settings().get("app-name"),
        base_url=request.host_url,
        expiry_hours=current_app.config.get("EMAIL_CONFIRMATION_EXPIRY_HOURS", 24),
    )


def check_permission(permission: str) -> None:
    """
    Raise PermissionDenied unless the current user holds `permission`.
    """
    if not permissions().user_can(permission):
        current_app.logger.info(
            "Permission %s denied for user %s on %s", permission, _user_label(), request.path
        )
        raise PermissionDenied()


def check_permission_or(condition: bool, permission: str) -> None:
    """
    Allow the request when `condition` holds, otherwise require `permission`.

    Used for pages a user may always reach for their own account.
    """
    if condition:
        return
    check_permission(permission)


def check_ownable_permission(permission: str, entity: Entity) -> None:
    """
    Raise PermissionDenied unless the user may apply `permission` (a base
    name such as "page-update") to `entity`.
    """
    if not permissions().check_ownable(permission, entity):
        current_app.logger.info(
            "Permission %s denied for user %s on %s %s",
            permission,
            _user_label(),
            entity.entity_type,
            entity.id,
        )
        raise PermissionDenied()


def user_can_ownable(permission: str, entity: Entity) -> bool:
    return permissions().check_ownable(permission, entity)


def prevent_demo_access() -> None:
    if current_app.config.get("DEMO_MODE"):
        raise NotifyException("This action is disabled in demo mode", "/")


def _user_label() -> str:
    user = current_user()
    return str(user.id) if user is not None else "guest"


def _is_safe_redirect_url(url: str) -> bool:
    """
    Determine whether a redirect URL is a relative path and therefore safe to use.

    Parameters:
        url (str): The URL to validate.

    Returns:
        bool: `True` if the URL is relative (has no scheme and no network location), `False` otherwise.
    """
    parsed = urlparse(url)
    # Safe if both scheme and netloc are empty (relative URL)
    if not parsed.scheme and not parsed.netloc and not url.startswith("//"):
        return True
    return False


def page_number() -> int:
    """The `page` query argument as a positive int."""
    try:
        return max(1, int(request.args.get("page", 1)))
    except (TypeError, ValueError):
        return 1


def form_bool(name: str) -> bool:
    return request.form.get(name, "").strip().lower() in ("1", "true", "on", "yes")


def restriction_grants_from_form() -> list[tuple[int, str]]:
    """
    Read (role_id, action) pairs from "restrictions-<role_id>-<action>"
    checkbox fields.
    """
    grants: list[tuple[int, str]] = []
    for key in request.form:
        if not key.startswith("restrictions-"):
            continue
        parts = key.split("-", 2)
        if len(parts) != 3 or not parts[1].isdigit():
            continue
        if form_bool(key):
            grants.append((int(parts[1]), parts[2]))
    return grants


def parse_entity_selection(value: Optional[str]) -> Optional[tuple[str, int]]:
    """
    Parse an "entity_selection" value such as "book:3" or "chapter:12".
    """
    if not value or ":" not in value:
        return None
    entity_type, _, raw_id = value.partition(":")
    if entity_type not in ("book", "chapter") or not raw_id.isdigit():
        return None
    return entity_type, int(raw_id)


def template_globals() -> dict[str, Any]:
    """Values available in every template."""
    return {
        "current_user": current_user(),
        "user_can": lambda permission: permissions().user_can(permission),
        "user_can_ownable": user_can_ownable,
        "can_manage_restrictions": lambda entity: permissions().can_manage_restrictions(entity),
        "setting": lambda key: settings().get(key),
        "services_disabled": current_app.config.get("DISABLE_SERVICES", False),
    }
