"""
Role permission checks combined with entity restrictions.
"""

from __future__ import annotations

from typing import Optional

from ..models import Entity, User
from .restrictions import RestrictionService

# Every permission known to the application, with a display name
PERMISSIONS = {
    "settings-manage": "Manage app settings",
    "users-manage": "Manage users",
    "user-roles-manage": "Manage roles & role permissions",
    "restrictions-manage-all": "Manage all entity restrictions",
    "restrictions-manage-own": "Manage restrictions on own content",
    "book-create-all": "Create all books",
    "book-update-all": "Update all books",
    "book-update-own": "Update own books",
    "book-delete-all": "Delete all books",
    "book-delete-own": "Delete own books",
    "chapter-create-all": "Create all chapters",
    "chapter-create-own": "Create chapters in own books",
    "chapter-update-all": "Update all chapters",
    "chapter-update-own": "Update own chapters",
    "chapter-delete-all": "Delete all chapters",
    "chapter-delete-own": "Delete own chapters",
    "page-create-all": "Create all pages",
    "page-create-own": "Create pages in own books",
    "page-update-all": "Update all pages",
    "page-update-own": "Update own pages",
    "page-delete-all": "Delete all pages",
    "page-delete-own": "Delete own pages",
}


class PermissionService:
    """
    Answers "may this user do X to this entity".

    `permission` is a base name such as "page-update". The user needs the
    "-all" variant, or the "-own" variant on an entity they created, and the
    entity's restriction rule must also allow the action.
    """

    def __init__(self, restrictions: RestrictionService) -> None:
        self.restrictions = restrictions

    @property
    def user(self) -> Optional[User]:
        return self.restrictions.user

    def user_can(self, permission: str) -> bool:
        return self.user is not None and self.user.can(permission)

    def check_ownable(self, permission: str, entity: Entity) -> bool:
        if self.user is None:
            return False

        action = permission.rsplit("-", 1)[-1]
        has_all = self.user.can(f"{permission}-all")
        has_own = self.user.can(f"{permission}-own") and entity.is_owned_by(self.user)
        if not (has_all or has_own):
            return False

        return self.restrictions.check_entity_allows(entity, action)

    def can_manage_restrictions(self, entity: Entity) -> bool:
        if self.user is None:
            return False
        if self.user.can("restrictions-manage-all"):
            return True
        return self.user.can("restrictions-manage-own") and entity.is_owned_by(self.user)
