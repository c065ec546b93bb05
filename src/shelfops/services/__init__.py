"""
Services shared by the repos and the Flask controllers.

Modules:
    restrictions: permission-scoped query building for entities
    permissions: role permission checks combined with restrictions
    settings: key/value application settings
    activity: activity log
    views: per-user view counts
    email_confirmation: registration confirmation tokens
"""

from __future__ import annotations

from .activity import ActivityService
from .email_confirmation import EmailConfirmationService
from .permissions import PERMISSIONS, PermissionService
from .restrictions import ACTIONS, ENTITY_ACTIONS, RestrictionService
from .settings import SettingService
from .views import ViewService

__all__ = [
    "ActivityService",
    "EmailConfirmationService",
    "PERMISSIONS",
    "PermissionService",
    "ACTIONS",
    "ENTITY_ACTIONS",
    "RestrictionService",
    "SettingService",
    "ViewService",
]
