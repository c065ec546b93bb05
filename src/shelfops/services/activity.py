"""
Activity log: who did what to which entity.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..models import ENTITY_MODELS, Activity, Book, Entity, User
from .restrictions import RestrictionService

logger = logging.getLogger(__name__)


class ActivityService:
    def __init__(self, session: Session, user: Optional[User], restrictions: RestrictionService) -> None:
        self.session = session
        self.user = user
        self.restrictions = restrictions

    def add(self, entity: Entity, key: str, book_id: Optional[int] = None, extra: str = "") -> Activity:
        """Record `key` against `entity` for the current user."""
        if book_id is None:
            book_id = entity.id if isinstance(entity, Book) else getattr(entity, "book_id", None)
        activity = Activity(
            key=key,
            extra=extra or "",
            user_id=self.user.id if self.user is not None else None,
            book_id=book_id,
            entity_type=entity.entity_type,
            entity_id=entity.id,
        )
        self.session.add(activity)
        logger.debug("Activity %s on %s %s", key, entity.entity_type, entity.id)
        return activity

    def add_message(self, key: str, book_id: Optional[int] = None, extra: str = "") -> Activity:
        """Record an activity that no longer points at an entity, e.g. a deletion."""
        activity = Activity(
            key=key,
            extra=extra or "",
            user_id=self.user.id if self.user is not None else None,
            book_id=book_id,
        )
        self.session.add(activity)
        return activity

    def remove_entity(self, entity: Entity) -> None:
        """
        Detach activity rows from an entity that is about to be deleted,
        keeping its name in `extra` so the log stays readable.
        """
        self.session.execute(
            update(Activity)
            .where(Activity.entity_type == entity.entity_type, Activity.entity_id == entity.id)
            .values(extra=entity.name, entity_type=None, entity_id=None)
        )

    def move_to_book(self, entity: Entity, book_id: int) -> None:
        self.session.execute(
            update(Activity)
            .where(Activity.entity_type == entity.entity_type, Activity.entity_id == entity.id)
            .values(book_id=book_id)
        )

    def for_entity(self, entity: Entity) -> list[Activity]:
        return list(
            self.session.scalars(
                select(Activity)
                .where(Activity.entity_type == entity.entity_type, Activity.entity_id == entity.id)
                .order_by(Activity.id.desc())
            )
        )

    def latest(self, count: int = 20, page: int = 0) -> list[Activity]:
        stmt = select(Activity).order_by(Activity.id.desc())
        return self._visible(stmt, count, page)

    def entity_activity(self, book: Book, count: int = 20, page: int = 0) -> list[Activity]:
        stmt = select(Activity).where(Activity.book_id == book.id).order_by(Activity.id.desc())
        return self._visible(stmt, count, page)

    def user_activity(self, user: User, count: int = 20, page: int = 0) -> list[Activity]:
        stmt = select(Activity).where(Activity.user_id == user.id).order_by(Activity.id.desc())
        return self._visible(stmt, count, page)

    def _visible(self, stmt, count: int, page: int) -> list[Activity]:
        """
        Page through `stmt`, dropping activities whose entity the current
        user cannot view and attaching the entity to the ones kept.
        """
        results: list[Activity] = []
        offset = page * count
        batch_size = max(count * 2, 20)
        skipped = 0

        while len(results) < count:
            batch = list(self.session.scalars(stmt.limit(batch_size).offset(offset)))
            if not batch:
                break
            offset += len(batch)
            for activity in batch:
                if activity.entity_type is None:
                    results.append(activity)
                    continue
                model = ENTITY_MODELS.get(activity.entity_type)
                if model is None:
                    skipped += 1
                    continue
                entity_stmt = self.restrictions.enforce_entity_restrictions(
                    model, select(model).where(model.id == activity.entity_id)
                )
                entity = self.session.scalar(entity_stmt)
                if entity is None:
                    skipped += 1
                    continue
                activity.entity = entity
                results.append(activity)
                if len(results) >= count:
                    break

        if skipped:
            logger.debug("Hid %d activities the user cannot view", skipped)
        return results
