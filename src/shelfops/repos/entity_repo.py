"""
Base repository shared by books, chapters and pages.

Every read goes through RestrictionService so callers only ever see what the
current user is allowed to see.
"""

from __future__ import annotations

import hashlib
import random
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import Select, case, func, or_, select
from sqlalchemy.orm import Session

from ..models import Book, Chapter, Entity, Page, User
from ..pagination import Paginator, paginate
from ..services.activity import ActivityService
from ..services.restrictions import RestrictionService
from ..services.views import ViewService
from ..utils import highlight, prepare_search_terms, slugify_title


def random_hash(length: int) -> str:
    return hashlib.md5(str(random.randint(1, 500)).encode("utf-8")).hexdigest()[:length]


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def sort_children(children: Iterable[Any]) -> list[Any]:
    """Order by priority with drafts pushed to the front."""

    def score(child: Any) -> int:
        value = child.priority or 0
        if getattr(child, "draft", False):
            value -= 100
        return value

    return sorted(children, key=score)


class EntityRepo:
    # Set by subclasses
    model: Any = None
    search_fields: Sequence[str] = ("name",)
    # Book-scoped slugs for chapters and pages, global for books
    slug_scoped_to_book = True

    def __init__(
        self,
        session: Session,
        user: Optional[User],
        restrictions: Optional[RestrictionService] = None,
        activity: Optional[ActivityService] = None,
        views: Optional[ViewService] = None,
    ) -> None:
        self.session = session
        self.user = user
        self.restrictions = restrictions or RestrictionService(session, user)
        self.activity = activity or ActivityService(session, user, self.restrictions)
        self.views = views or ViewService(session, user, self.restrictions)

    # ------------------------------------------------------------------
    # Scoped base queries
    # ------------------------------------------------------------------

    def book_query(self, action: str = "view") -> Select:
        return self.restrictions.enforce_book_restrictions(select(Book), action)

    def chapter_query(self, action: str = "view") -> Select:
        return self.restrictions.enforce_chapter_restrictions(select(Chapter), action)

    def page_query(self, action: str = "view") -> Select:
        return self.restrictions.enforce_page_restrictions(select(Page), action)

    def entity_query(self, model=None, action: str = "view") -> Select:
        model = model or self.model
        return self.restrictions.enforce_entity_restrictions(model, select(model), action)

    # ------------------------------------------------------------------
    # Recent lists
    # ------------------------------------------------------------------

    def get_recently_created(
        self,
        model=None,
        count: int = 20,
        page: int = 0,
        created_by: Optional[int] = None,
    ) -> list[Entity]:
        model = model or self.model
        stmt = self.entity_query(model)
        if created_by is not None:
            stmt = stmt.where(model.created_by == created_by)
        stmt = stmt.order_by(model.created_at.desc(), model.id.desc()).limit(count).offset(page * count)
        return list(self.session.scalars(stmt))

    def get_recently_updated(self, model=None, count: int = 20, page: int = 0) -> list[Entity]:
        model = model or self.model
        stmt = self.entity_query(model).order_by(model.updated_at.desc(), model.id.desc())
        return list(self.session.scalars(stmt.limit(count).offset(page * count)))

    def get_recently_viewed(self, count: int = 10, page: int = 0) -> list[Entity]:
        return self.views.get_user_recently_viewed(count, page, self.model)

    # ------------------------------------------------------------------
    # Slugs
    # ------------------------------------------------------------------

    def does_slug_exist(self, slug: str, book_id: Optional[int] = None, current_id: Optional[int] = None) -> bool:
        # Deliberately unscoped: hidden entities still own their slugs
        stmt = select(func.count()).select_from(self.model).where(self.model.slug == slug)
        if self.slug_scoped_to_book:
            stmt = stmt.where(self.model.book_id == book_id)
        if current_id:
            stmt = stmt.where(self.model.id != current_id)
        return (self.session.scalar(stmt) or 0) > 0

    def find_suitable_slug(self, name: str, book_id: Optional[int] = None, current_id: Optional[int] = None) -> str:
        """
        Slug for `name` that is unused in its scope.

        Collisions get "-" plus three hex characters appended until free.
        """
        slug = slugify_title(name)
        if slug == "":
            slug = random_hash(5)
        while self.does_slug_exist(slug, book_id, current_id):
            slug += "-" + random_hash(3)
        return slug

    # ------------------------------------------------------------------
    # Priorities
    # ------------------------------------------------------------------

    def new_book_priority(self, book_id: int) -> int:
        chapter_max = self.session.scalar(select(func.max(Chapter.priority)).where(Chapter.book_id == book_id))
        page_max = self.session.scalar(
            select(func.max(Page.priority)).where(Page.book_id == book_id, Page.chapter_id.is_(None))
        )
        values = [v for v in (chapter_max, page_max) if v is not None]
        return max(values) + 1 if values else 0

    def new_chapter_priority(self, chapter_id: int) -> int:
        last = self.session.scalar(
            select(Page.priority).where(Page.chapter_id == chapter_id).order_by(Page.priority.desc()).limit(1)
        )
        return last + 1 if last is not None else 0

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_statement(self, term: str, where_terms: Optional[dict[str, Any]] = None) -> Optional[Select]:
        """
        Restriction-scoped select matching any search term in any search
        field, best matches first. None when the term is blank.
        """
        terms = prepare_search_terms(term)
        if not terms:
            return None

        model = self.model
        matches = []
        score = None
        for search_term in terms:
            pattern = f"%{_escape_like(search_term.lower())}%"
            match = or_(*[func.lower(getattr(model, f)).like(pattern, escape="\\") for f in self.search_fields])
            matches.append(match)
            term_score = case((match, 1), else_=0)
            score = term_score if score is None else score + term_score

        stmt = self.entity_query(model).where(or_(*matches))
        for column, value in (where_terms or {}).items():
            stmt = stmt.where(getattr(model, column) == value)
        return stmt.order_by(score.desc(), model.updated_at.desc(), model.id.desc())

    def get_by_search(
        self,
        term: str,
        where_terms: Optional[dict[str, Any]] = None,
        count: int = 20,
        appends: Optional[dict[str, Any]] = None,
        page: int = 1,
    ) -> Paginator:
        stmt = self.search_statement(term, where_terms)
        if stmt is None:
            return Paginator(items=[], total=0, page=1, per_page=count, appends=dict(appends or {}))

        results = paginate(self.session, stmt, page=page, per_page=count, appends=appends)
        for entity in results.items:
            entity.search_snippet = highlight(entity.get_excerpt(100), term)
        return results

    # ------------------------------------------------------------------
    # Cleanup shared by destroy()
    # ------------------------------------------------------------------

    def _remove_entity_records(self, entity: Entity) -> None:
        self.activity.remove_entity(entity)
        self.views.delete_views_for(entity)
        self.restrictions.delete_restrictions(entity)

    def _user_id(self) -> Optional[int]:
        return self.user.id if self.user is not None else None
