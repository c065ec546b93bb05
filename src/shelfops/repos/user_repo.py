from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update

from ..exceptions import NotFoundException
from ..models import Activity, Book, Chapter, EmailConfirmation, Page, PageRevision, Role, User
from ..services.activity import ActivityService
from ..services.restrictions import RestrictionService
from ..services.settings import SettingService
from ..services.views import ViewService
from .entity_repo import EntityRepo

logger = logging.getLogger(__name__)


class UserRepo:
    def __init__(self, session, user: Optional[User] = None, restrictions: Optional[RestrictionService] = None) -> None:
        self.session = session
        self.user = user
        self.restrictions = restrictions or RestrictionService(session, user)
        self.entities = EntityRepo(session, user, self.restrictions)
        self.activity = ActivityService(session, user, self.restrictions)
        self.views = ViewService(session, user, self.restrictions)

    def get_all_users(self) -> list[User]:
        return list(self.session.scalars(select(User).order_by(User.name.asc())))

    def get_by_id(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundException("User not found")
        return user

    def get_by_email(self, email: str) -> Optional[User]:
        email = (email or "").strip().lower()
        return self.session.scalar(select(User).where(func.lower(User.email) == email))

    def email_taken(self, email: str, except_id: Optional[int] = None) -> bool:
        existing = self.get_by_email(email)
        return existing is not None and existing.id != except_id

    def create(
        self,
        name: str,
        email: str,
        password_hash: Optional[str],
        email_confirmed: bool = True,
        role_ids: Optional[Iterable[int]] = None,
    ) -> User:
        user = User(
            name=name.strip(),
            email=email.strip().lower(),
            password=password_hash,
            email_confirmed=email_confirmed,
        )
        self.session.add(user)
        self.session.flush()
        if role_ids is not None:
            self.sync_roles(user, role_ids)
        logger.info("User %s created", user.id)
        return user

    def sync_roles(self, user: User, role_ids: Iterable[int]) -> None:
        ids = {int(i) for i in role_ids}
        roles = list(self.session.scalars(select(Role).where(Role.id.in_(ids)))) if ids else []
        user.roles = roles
        self.session.flush()

    def attach_role(self, user: User, role: Role) -> None:
        if role not in user.roles:
            user.roles.append(role)
            self.session.flush()

    def attach_default_role(self, user: User, settings: SettingService) -> Optional[Role]:
        """Give a newly registered user the role named by the registration-role setting."""
        role = Role.get_role(self.session, settings.get("registration-role"))
        if role is None:
            role = Role.get_role(self.session, "viewer")
        if role is not None:
            self.attach_role(user, role)
        return role

    def is_only_admin(self, user: User) -> bool:
        """True if `user` is an admin and nobody else is."""
        if not user.has_role("admin"):
            return False
        admin_role = Role.get_role(self.session, "admin")
        if admin_role is None:
            return False
        return admin_role.user_count(self.session) <= 1

    def destroy(self, user: User) -> None:
        """
        Delete a user. Their content stays but loses its owner, and their
        activity is kept without a user.
        """
        user_id = user.id
        self.views.delete_views_by_user(user)
        self.session.execute(delete(EmailConfirmation).where(EmailConfirmation.user_id == user_id))
        self.session.execute(update(Activity).where(Activity.user_id == user_id).values(user_id=None))
        for model in (Book, Chapter, Page):
            self.session.execute(update(model).where(model.created_by == user_id).values(created_by=None))
            self.session.execute(update(model).where(model.updated_by == user_id).values(updated_by=None))
        self.session.execute(update(PageRevision).where(PageRevision.created_by == user_id).values(created_by=None))

        user.roles = []
        self.session.delete(user)
        self.session.flush()
        logger.info("User %s destroyed", user_id)

    def get_activity(self, user: User, count: int = 20, page: int = 0) -> list[Activity]:
        return self.activity.user_activity(user, count, page)

    def get_recently_created(self, user: User, count: int = 5) -> dict[str, list]:
        return {
            "pages": self.entities.get_recently_created(Page, count, 0, created_by=user.id),
            "chapters": self.entities.get_recently_created(Chapter, count, 0, created_by=user.id),
            "books": self.entities.get_recently_created(Book, count, 0, created_by=user.id),
        }

    def get_asset_counts(self, user: User) -> dict[str, int]:
        counts = {}
        for key, model in (("pages", Page), ("chapters", Chapter), ("books", Book)):
            stmt = self.entities.entity_query(model).where(model.created_by == user.id)
            counts[key] = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        return counts
