# shelfops/models.py
# ORM models for books, chapters, pages, users, roles and their bookkeeping

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .db import Base
from .security import gravatar_url
from .utils import excerpt


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


role_user = Table(
    "role_user",
    Base.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

permission_role = Table(
    "permission_role",
    Base.metadata,
    Column("permission_id", ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


# ---------------------------------------------------------------------------
# Users, roles and permissions
# ---------------------------------------------------------------------------


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<Permission {self.name}>"


class Role(TimestampMixin, Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    permissions: Mapped[List[Permission]] = relationship(
        secondary=permission_role, lazy="selectin", order_by=Permission.name
    )
    users: Mapped[List["User"]] = relationship(secondary=role_user, back_populates="roles")

    @classmethod
    def get_role(cls, session: Session, name: str) -> Optional["Role"]:
        return session.scalar(select(cls).where(cls.name == name))

    def has_permission(self, permission: str) -> bool:
        return any(p.name == permission for p in self.permissions)

    def permission_names(self) -> set[str]:
        return {p.name for p in self.permissions}

    def user_count(self, session: Session) -> int:
        return session.scalar(
            select(func.count()).select_from(role_user).where(role_user.c.role_id == self.id)
        ) or 0

    def get_edit_url(self) -> str:
        return f"/settings/roles/{self.id}"

    def __repr__(self) -> str:
        return f"<Role {self.name}>"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    roles: Mapped[List[Role]] = relationship(
        secondary=role_user, back_populates="users", lazy="selectin", order_by=Role.name
    )

    def has_role(self, name: str) -> bool:
        return any(role.name == name for role in self.roles)

    @property
    def is_admin(self) -> bool:
        return self.has_role("admin")

    def can(self, permission: str) -> bool:
        """True if any role of this user grants `permission`."""
        return any(role.has_permission(permission) for role in self.roles)

    def role_ids(self) -> list[int]:
        return [role.id for role in self.roles]

    def get_edit_url(self) -> str:
        return f"/settings/users/{self.id}"

    def get_profile_url(self) -> str:
        return f"/user/{self.id}"

    def avatar_url(self, size: int = 50, disabled: bool = False) -> str:
        if disabled:
            return "/static/user_avatar.svg"
        return gravatar_url(self.email, size)

    def get_short_name(self, chars: int = 8) -> str:
        if len(self.name) <= chars:
            return self.name
        first = self.name.split(" ")[0]
        return first if len(first) <= chars else first[:chars]

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class EmailConfirmation(Base):
    __tablename__ = "email_confirmations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    user: Mapped[User] = relationship()


class Setting(Base):
    __tablename__ = "settings"

    setting_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False, default="")


# ---------------------------------------------------------------------------
# Content entities
# ---------------------------------------------------------------------------


class Entity(TimestampMixin):
    """
    Columns and helpers shared by books, chapters and pages.

    `entity_type` is the short name stored on restrictions, activity and
    views rows that point back at an entity.
    """

    entity_type = "entity"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    restricted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    updated_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    def matches_type(self, entity_type: str) -> bool:
        return self.entity_type == entity_type

    def get_excerpt(self, length: int = 100) -> str:
        return excerpt(getattr(self, "description", "") or "", length)

    def is_owned_by(self, user: Optional[User]) -> bool:
        return user is not None and self.created_by is not None and self.created_by == user.id


class Book(Entity, Base):
    __tablename__ = "books"

    entity_type = "book"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    chapters: Mapped[List["Chapter"]] = relationship(
        back_populates="book", order_by="Chapter.priority", passive_deletes=True
    )
    pages: Mapped[List["Page"]] = relationship(
        back_populates="book", order_by="Page.priority", passive_deletes=True
    )
    created_user: Mapped[Optional[User]] = relationship(foreign_keys="Book.created_by")
    updated_user: Mapped[Optional[User]] = relationship(foreign_keys="Book.updated_by")

    def get_url(self) -> str:
        return f"/books/{self.slug}"

    def get_edit_url(self) -> str:
        return f"{self.get_url()}/edit"

    def __repr__(self) -> str:
        return f"<Book {self.slug}>"


class Chapter(Entity, Base):
    __tablename__ = "chapters"
    __table_args__ = (UniqueConstraint("book_id", "slug", name="uq_chapters_book_slug"),)

    entity_type = "chapter"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    book: Mapped[Book] = relationship(back_populates="chapters")
    pages: Mapped[List["Page"]] = relationship(back_populates="chapter", order_by="Page.priority")
    created_user: Mapped[Optional[User]] = relationship(foreign_keys="Chapter.created_by")
    updated_user: Mapped[Optional[User]] = relationship(foreign_keys="Chapter.updated_by")

    def get_url(self) -> str:
        return f"/books/{self.book.slug}/chapter/{self.slug}"

    def __repr__(self) -> str:
        return f"<Chapter {self.slug}>"


class Page(Entity, Base):
    __tablename__ = "pages"
    __table_args__ = (UniqueConstraint("book_id", "slug", name="uq_pages_book_slug"),)

    entity_type = "page"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    chapter_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("chapters.id", ondelete="SET NULL"), nullable=True
    )
    html: Mapped[str] = mapped_column(Text, nullable=False, default="")
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    draft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    book: Mapped[Book] = relationship(back_populates="pages")
    chapter: Mapped[Optional[Chapter]] = relationship(back_populates="pages")
    revisions: Mapped[List["PageRevision"]] = relationship(
        back_populates="page",
        order_by="PageRevision.id.desc()",
        cascade="all, delete-orphan",
    )
    created_user: Mapped[Optional[User]] = relationship(foreign_keys="Page.created_by")
    updated_user: Mapped[Optional[User]] = relationship(foreign_keys="Page.updated_by")

    def get_url(self) -> str:
        return f"/books/{self.book.slug}/page/{self.slug}"

    def get_excerpt(self, length: int = 100) -> str:
        return excerpt(self.text or "", length)

    def __repr__(self) -> str:
        return f"<Page {self.slug}>"


class PageRevision(Base):
    __tablename__ = "page_revisions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    page_id: Mapped[int] = mapped_column(ForeignKey("pages.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    html: Mapped[str] = mapped_column(Text, nullable=False, default="")
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    page: Mapped[Page] = relationship(back_populates="revisions")
    created_user: Mapped[Optional[User]] = relationship()

    def get_url(self) -> str:
        return f"{self.page.get_url()}/revisions/{self.id}"


ENTITY_MODELS = {
    "book": Book,
    "chapter": Chapter,
    "page": Page,
}


# ---------------------------------------------------------------------------
# Restrictions, activity and views
# ---------------------------------------------------------------------------


class Restriction(Base):
    __tablename__ = "restrictions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    restrictable_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    restrictable_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)

    role: Mapped[Role] = relationship()


class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    extra: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    book_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    entity_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    user: Mapped[Optional[User]] = relationship(lazy="joined")

    # Set by ActivityService when the activity is listed
    entity = None

    def is_similar_to(self, other: "Activity") -> bool:
        return (
            self.key == other.key
            and self.entity_type == other.entity_type
            and self.entity_id == other.entity_id
        )

    def get_text(self) -> str:
        """Human readable description of the activity key."""
        return ACTIVITY_TEXT.get(self.key, self.key.replace("_", " "))


ACTIVITY_TEXT = {
    "book_create": "created book",
    "book_update": "updated book",
    "book_delete": "deleted book",
    "book_sort": "sorted book",
    "chapter_create": "created chapter",
    "chapter_update": "updated chapter",
    "chapter_delete": "deleted chapter",
    "chapter_move": "moved chapter",
    "page_create": "created page",
    "page_update": "updated page",
    "page_delete": "deleted page",
    "page_move": "moved page",
    "page_restore": "restored page",
}


class View(TimestampMixin, Base):
    __tablename__ = "views"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    viewable_type: Mapped[str] = mapped_column(String(20), nullable=False)
    viewable_id: Mapped[int] = mapped_column(Integer, nullable=False)
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
