"""
Per-user view counts, used for "recently viewed" lists.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..models import ENTITY_MODELS, Entity, User, View, utc_now
from .restrictions import RestrictionService


class ViewService:
    def __init__(self, session: Session, user: Optional[User], restrictions: RestrictionService) -> None:
        self.session = session
        self.user = user
        self.restrictions = restrictions

    def add(self, entity: Entity) -> int:
        """Increment the current user's view count for `entity`. Guests are not tracked."""
        if self.user is None:
            return 0

        view = self.session.scalar(
            select(View).where(
                View.user_id == self.user.id,
                View.viewable_type == entity.entity_type,
                View.viewable_id == entity.id,
            )
        )
        if view is None:
            view = View(user_id=self.user.id, viewable_type=entity.entity_type, viewable_id=entity.id, views=0)
            self.session.add(view)
        view.views = (view.views or 0) + 1
        view.updated_at = utc_now()
        return view.views

    def get_user_recently_viewed(self, count: int = 10, page: int = 0, model=None) -> list[Entity]:
        if self.user is None:
            return []

        stmt = select(View).where(View.user_id == self.user.id).order_by(View.updated_at.desc(), View.id.desc())
        if model is not None:
            stmt = stmt.where(View.viewable_type == model.entity_type)

        entities: list[Entity] = []
        for view in self.session.scalars(stmt.offset(page * count)):
            view_model = ENTITY_MODELS.get(view.viewable_type)
            if view_model is None:
                continue
            entity = self.session.scalar(
                self.restrictions.enforce_entity_restrictions(
                    view_model, select(view_model).where(view_model.id == view.viewable_id)
                )
            )
            if entity is not None:
                entities.append(entity)
            if len(entities) >= count:
                break
        return entities

    def delete_views_for(self, entity: Entity) -> None:
        self.session.execute(
            delete(View).where(View.viewable_type == entity.entity_type, View.viewable_id == entity.id)
        )

    def delete_views_by_user(self, user: User) -> None:
        self.session.execute(delete(View).where(View.user_id == user.id))
