from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import delete, select

from ..exceptions import NotFoundException, RoleProtectedException
from ..models import Permission, Restriction, Role, User
from ..services.settings import SettingService
from ..utils import slugify_title
from .entity_repo import random_hash

logger = logging.getLogger(__name__)

# Roles the application relies on by name
SYSTEM_ROLES = ("admin",)


class RoleRepo:
    def __init__(self, session) -> None:
        self.session = session

    def get_all_roles(self) -> list[Role]:
        return list(self.session.scalars(select(Role).order_by(Role.display_name.asc())))

    def get_role_by_id(self, role_id: int) -> Role:
        role = self.session.get(Role, role_id)
        if role is None:
            raise NotFoundException("Role not found")
        return role

    def get_all_permissions(self) -> list[Permission]:
        return list(self.session.scalars(select(Permission).order_by(Permission.name.asc())))

    def _permissions_named(self, names: Iterable[str]) -> list[Permission]:
        names = {n for n in names if n}
        if not names:
            return []
        return list(self.session.scalars(select(Permission).where(Permission.name.in_(names))))

    def _unique_name(self, display_name: str, current_id: Optional[int] = None) -> str:
        name = slugify_title(display_name) or random_hash(5)
        while True:
            existing = Role.get_role(self.session, name)
            if existing is None or existing.id == current_id:
                return name
            name += "-" + random_hash(3)

    def save_new(self, display_name: str, description: str, permission_names: Iterable[str]) -> Role:
        role = Role(
            name=self._unique_name(display_name),
            display_name=display_name.strip(),
            description=(description or "").strip(),
        )
        role.permissions = self._permissions_named(permission_names)
        self.session.add(role)
        self.session.flush()
        logger.info("Role %s created", role.name)
        return role

    def update(self, role: Role, display_name: str, description: str, permission_names: Iterable[str]) -> Role:
        """Update a role. System roles always keep every permission."""
        role.display_name = display_name.strip()
        role.description = (description or "").strip()
        if role.name in SYSTEM_ROLES:
            role.permissions = self.get_all_permissions()
        else:
            role.permissions = self._permissions_named(permission_names)
        self.session.flush()
        return role

    def destroy(self, role: Role, settings: SettingService, migrate_to_role_id: Optional[int] = None) -> None:
        """
        Delete a role, moving its members to `migrate_to_role_id` first when given.

        System roles and the default registration role cannot be deleted.
        """
        if role.name in SYSTEM_ROLES:
            raise RoleProtectedException("This role is a system role and cannot be deleted", role.get_edit_url())
        if settings.get("registration-role") == role.name:
            raise RoleProtectedException(
                "This role cannot be deleted while it is set as the default registration role",
                role.get_edit_url(),
            )

        if migrate_to_role_id:
            new_role = self.session.get(Role, int(migrate_to_role_id))
            if new_role is not None and new_role.id != role.id:
                members = list(self.session.scalars(select(User).where(User.roles.contains(role))))
                for user in members:
                    if new_role not in user.roles:
                        user.roles.append(new_role)

        self.session.execute(delete(Restriction).where(Restriction.role_id == role.id))
        role.permissions = []
        role.users = []
        self.session.delete(role)
        self.session.flush()
        logger.info("Role %s deleted", role.name)
