# shelfops/seed.py
# Default permissions, roles, settings and admin account

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Permission, Role, User
from .security import hash_password
from .services.permissions import PERMISSIONS
from .services.settings import DEFAULTS, SettingService

logger = logging.getLogger(__name__)

EDITOR_PERMISSIONS = (
    "book-create-all",
    "book-update-all",
    "book-delete-all",
    "chapter-create-all",
    "chapter-update-all",
    "chapter-delete-all",
    "page-create-all",
    "page-update-all",
    "page-delete-all",
    "restrictions-manage-own",
)

DEFAULT_ROLES = {
    "admin": ("Admin", "Administrator of the whole application", tuple(PERMISSIONS)),
    "editor": ("Editor", "User can edit Books, Chapters & Pages", EDITOR_PERMISSIONS),
    "viewer": ("Viewer", "User can view books & their content behind authentication", ()),
}


def seed_permissions(session: Session) -> dict[str, Permission]:
    existing = {p.name: p for p in session.scalars(select(Permission))}
    for name, display_name in PERMISSIONS.items():
        if name not in existing:
            permission = Permission(name=name, display_name=display_name)
            session.add(permission)
            existing[name] = permission
    session.flush()
    return existing


def seed_roles(session: Session, permissions: dict[str, Permission]) -> dict[str, Role]:
    roles: dict[str, Role] = {}
    for name, (display_name, description, permission_names) in DEFAULT_ROLES.items():
        role = Role.get_role(session, name)
        if role is None:
            role = Role(name=name, display_name=display_name, description=description)
            role.permissions = [permissions[p] for p in permission_names]
            session.add(role)
        roles[name] = role
    session.flush()
    return roles


def seed_defaults(
    session: Session,
    admin_email: Optional[str] = "admin@admin.com",
    admin_password: str = "password",
    admin_name: str = "Admin",
    bcrypt_rounds: int = 12,
) -> Optional[User]:
    """
    Create what a fresh install needs. Safe to run more than once; rows that
    already exist are left alone.
    """
    permissions = seed_permissions(session)
    roles = seed_roles(session, permissions)

    settings = SettingService(session)
    for key, value in DEFAULTS.items():
        if not settings.has(key):
            settings.put(key, value)

    admin = None
    if admin_email:
        admin = session.scalar(select(User).where(User.email == admin_email.lower()))
        if admin is None:
            admin = User(
                name=admin_name,
                email=admin_email.lower(),
                password=hash_password(admin_password, bcrypt_rounds),
                email_confirmed=True,
            )
            admin.roles = [roles["admin"]]
            session.add(admin)
            logger.info("Created admin user %s", admin_email)

    session.commit()
    return admin
