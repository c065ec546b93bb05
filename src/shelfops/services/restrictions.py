"""
Permission-scoped query building for books, chapters and pages.

An entity with `restricted = False` inherits its parent's rule: a page from
its chapter (or its book when it has no chapter), a chapter from its book.
A restricted entity is visible for an action only when a Restriction row
grants that action to one of the user's roles. Admins bypass restrictions
entirely; guests have no roles and only see unrestricted content.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import ColumnElement, Select, and_, delete, exists, false, or_, select, true
from sqlalchemy.orm import Session, aliased

from ..models import Book, Chapter, Entity, Page, Restriction, User

logger = logging.getLogger(__name__)

ACTIONS = ("view", "create", "update", "delete")

# Actions that make sense for each entity type
ENTITY_ACTIONS = {
    "book": ("view", "create", "update", "delete"),
    "chapter": ("view", "create", "update", "delete"),
    "page": ("view", "update", "delete"),
}


class RestrictionService:
    def __init__(self, session: Session, user: Optional[User]) -> None:
        self.session = session
        self.user = user

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.is_admin

    def _role_ids(self) -> list[int]:
        return self.user.role_ids() if self.user is not None else []

    # ------------------------------------------------------------------
    # Filter expressions
    # ------------------------------------------------------------------

    def _has_restriction(self, entity_type: str, id_column, action: str) -> ColumnElement[bool]:
        role_ids = self._role_ids()
        if not role_ids:
            return false()
        return exists().where(
            Restriction.restrictable_type == entity_type,
            Restriction.restrictable_id == id_column,
            Restriction.role_id.in_(role_ids),
            Restriction.action == action,
        )

    def _book_rule(self, book, action: str) -> ColumnElement[bool]:
        return or_(
            book.restricted.is_(False),
            self._has_restriction("book", book.id, action),
        )

    def _book_allows(self, book_id_column, action: str) -> ColumnElement[bool]:
        book = aliased(Book)
        return exists().where(book.id == book_id_column, self._book_rule(book, action))

    def _chapter_rule(self, chapter, action: str) -> ColumnElement[bool]:
        return or_(
            and_(chapter.restricted.is_(True), self._has_restriction("chapter", chapter.id, action)),
            and_(chapter.restricted.is_(False), self._book_allows(chapter.book_id, action)),
        )

    def _chapter_allows(self, chapter_id_column, action: str) -> ColumnElement[bool]:
        chapter = aliased(Chapter)
        return exists().where(chapter.id == chapter_id_column, self._chapter_rule(chapter, action))

    def book_filter(self, action: str = "view") -> ColumnElement[bool]:
        if self.is_admin:
            return true()
        return self._book_rule(Book, action)

    def chapter_filter(self, action: str = "view") -> ColumnElement[bool]:
        if self.is_admin:
            return true()
        return self._chapter_rule(Chapter, action)

    def page_filter(self, action: str = "view") -> ColumnElement[bool]:
        # Drafts belong to their creator, whoever else may see the book
        if self.user is not None:
            draft_rule = or_(Page.draft.is_(False), Page.created_by == self.user.id)
        else:
            draft_rule = Page.draft.is_(False)

        if self.is_admin:
            return draft_rule

        restriction_rule = or_(
            and_(Page.restricted.is_(True), self._has_restriction("page", Page.id, action)),
            and_(
                Page.restricted.is_(False),
                Page.chapter_id.is_not(None),
                self._chapter_allows(Page.chapter_id, action),
            ),
            and_(
                Page.restricted.is_(False),
                Page.chapter_id.is_(None),
                self._book_allows(Page.book_id, action),
            ),
        )
        return and_(draft_rule, restriction_rule)

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def enforce_book_restrictions(self, stmt: Optional[Select] = None, action: str = "view") -> Select:
        stmt = stmt if stmt is not None else select(Book)
        return stmt.where(self.book_filter(action))

    def enforce_chapter_restrictions(self, stmt: Optional[Select] = None, action: str = "view") -> Select:
        stmt = stmt if stmt is not None else select(Chapter)
        return stmt.where(self.chapter_filter(action))

    def enforce_page_restrictions(self, stmt: Optional[Select] = None, action: str = "view") -> Select:
        stmt = stmt if stmt is not None else select(Page)
        return stmt.where(self.page_filter(action))

    def enforce_entity_restrictions(self, model, stmt: Optional[Select] = None, action: str = "view") -> Select:
        if model is Book:
            return self.enforce_book_restrictions(stmt, action)
        if model is Chapter:
            return self.enforce_chapter_restrictions(stmt, action)
        if model is Page:
            return self.enforce_page_restrictions(stmt, action)
        raise ValueError(f"Unsupported entity model: {model!r}")

    def check_entity_allows(self, entity: Entity, action: str) -> bool:
        """True if `entity` passes the restriction rule for `action`."""
        model = type(entity)
        stmt = self.enforce_entity_restrictions(model, select(model.id).where(model.id == entity.id), action)
        return self.session.scalar(stmt) is not None

    # ------------------------------------------------------------------
    # Restriction rows
    # ------------------------------------------------------------------

    def get_restrictions(self, entity: Entity) -> list[Restriction]:
        return list(
            self.session.scalars(
                select(Restriction).where(
                    Restriction.restrictable_type == entity.entity_type,
                    Restriction.restrictable_id == entity.id,
                )
            )
        )

    def has_grant(self, restrictions: Iterable[Restriction], role_id: int, action: str) -> bool:
        return any(r.role_id == role_id and r.action == action for r in restrictions)

    def set_restrictions(
        self,
        entity: Entity,
        restricted: bool,
        grants: Iterable[tuple[int, str]],
    ) -> None:
        """
        Replace the restriction rows of `entity` with `grants`.

        `grants` is an iterable of (role_id, action) pairs. Actions that do
        not apply to the entity type are ignored.
        """
        allowed = ENTITY_ACTIONS[entity.entity_type]
        entity.restricted = bool(restricted)
        self.delete_restrictions(entity)
        if restricted:
            for role_id, action in set(grants):
                if action not in allowed:
                    continue
                self.session.add(
                    Restriction(
                        restrictable_type=entity.entity_type,
                        restrictable_id=entity.id,
                        role_id=int(role_id),
                        action=action,
                    )
                )
        logger.info("Restrictions updated for %s %s (restricted=%s)", entity.entity_type, entity.id, restricted)

    def delete_restrictions(self, entity: Entity) -> None:
        self.session.execute(
            delete(Restriction).where(
                Restriction.restrictable_type == entity.entity_type,
                Restriction.restrictable_id == entity.id,
            )
        )
