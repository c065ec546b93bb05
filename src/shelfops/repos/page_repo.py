from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import delete, select

from ..exceptions import NotFoundException
from ..models import Book, Chapter, Page, PageRevision
from ..pagination import Paginator, paginate
from ..utils import clean_html, strip_tags
from .entity_repo import EntityRepo

logger = logging.getLogger(__name__)

# Revisions kept per page; older ones are pruned on save
REVISION_LIMIT = 50


class PageRepo(EntityRepo):
    model = Page
    search_fields = ("name", "text")

    def get_by_id(self, page_id: int) -> Page:
        page = self.session.scalar(self.page_query().where(Page.id == page_id))
        if page is None:
            raise NotFoundException("Page not found")
        return page

    def get_by_slug(self, slug: str, book_id: int) -> Page:
        page = self.session.scalar(self.page_query().where(Page.slug == slug, Page.book_id == book_id))
        if page is None:
            raise NotFoundException("Page not found")
        return page

    def new_from_input(self, data: dict[str, Any]) -> Page:
        html = clean_html(data.get("html") or "")
        return Page(name=(data.get("name") or "").strip(), html=html, text=strip_tags(html))

    def save_new(
        self,
        data: dict[str, Any],
        book: Book,
        chapter: Optional[Chapter] = None,
        draft: bool = False,
    ) -> Page:
        page = self.new_from_input(data)
        page.book_id = book.id
        page.chapter_id = chapter.id if chapter is not None else None
        page.slug = self.find_suitable_slug(page.name, book.id)
        if chapter is not None:
            page.priority = self.new_chapter_priority(chapter.id)
        else:
            page.priority = self.new_book_priority(book.id)
        page.draft = bool(draft)
        page.created_by = self._user_id()
        page.updated_by = self._user_id()
        self.session.add(page)
        self.session.flush()

        self.save_revision(page)
        if not page.draft:
            self.activity.add(page, "page_create", book.id)
        return page

    def update(self, page: Page, book_id: int, data: dict[str, Any]) -> Page:
        """
        Update a page from input and store a revision of the result.

        A "draft" key of False publishes a draft page.
        """
        name = (data.get("name") or "").strip()
        if name and name != page.name:
            page.name = name
            page.slug = self.find_suitable_slug(name, book_id, page.id)
        if "html" in data:
            page.html = clean_html(data.get("html") or "")
            page.text = strip_tags(page.html)

        was_draft = page.draft
        if "draft" in data:
            page.draft = bool(data.get("draft"))
        page.updated_by = self._user_id()
        self.session.flush()

        self.save_revision(page)
        if not page.draft:
            self.activity.add(page, "page_create" if was_draft else "page_update", book_id)
        return page

    # ------------------------------------------------------------------
    # Revisions
    # ------------------------------------------------------------------

    def save_revision(self, page: Page, keep_id: Optional[int] = None) -> PageRevision:
        """
        Store the page's current state as a revision.

        Only the newest REVISION_LIMIT revisions are kept. `keep_id` counts
        towards that limit but is never pruned.
        """
        revision = PageRevision(
            page_id=page.id,
            name=page.name,
            html=page.html,
            text=page.text,
            created_by=self._user_id(),
        )
        self.session.add(revision)
        self.session.flush()

        stale_query = select(PageRevision.id).where(PageRevision.page_id == page.id)
        keep = REVISION_LIMIT
        if keep_id is not None:
            stale_query = stale_query.where(PageRevision.id != keep_id)
            keep -= 1
        stale_ids = list(self.session.scalars(stale_query.order_by(PageRevision.id.desc()).offset(keep)))
        if stale_ids:
            self.session.execute(delete(PageRevision).where(PageRevision.id.in_(stale_ids)))
        self.session.expire(page, ["revisions"])
        return revision

    def get_revisions(self, page: Page) -> list[PageRevision]:
        return list(
            self.session.scalars(
                select(PageRevision).where(PageRevision.page_id == page.id).order_by(PageRevision.id.desc())
            )
        )

    def get_revision(self, page: Page, revision_id: int) -> PageRevision:
        revision = self.session.get(PageRevision, revision_id)
        if revision is None or revision.page_id != page.id:
            raise NotFoundException("Revision not found")
        return revision

    def restore_revision(self, page: Page, book: Book, revision_id: int) -> Page:
        """Snapshot the current state, then bring back the content of `revision_id`."""
        revision = self.get_revision(page, revision_id)
        self.save_revision(page, keep_id=revision.id)

        page.name = revision.name
        page.html = revision.html
        page.text = strip_tags(revision.html)
        page.slug = self.find_suitable_slug(page.name, book.id, page.id)
        page.updated_by = self._user_id()
        self.session.flush()
        self.activity.add(page, "page_restore", book.id)
        return page

    # ------------------------------------------------------------------
    # Moving and deleting
    # ------------------------------------------------------------------

    def change_book(self, book_id: int, page: Page) -> Page:
        """Point a page at another book, keeping its slug unique there."""
        page.book_id = book_id
        self.activity.move_to_book(page, book_id)
        page.slug = self.find_suitable_slug(page.name, book_id, page.id)
        self.session.flush()
        self.session.expire(page, ["book"])
        return page

    def change_parent(self, page: Page, book: Book, chapter: Optional[Chapter] = None) -> Page:
        """Move a page to the end of `chapter`, or of `book` when no chapter is given."""
        if page.book_id != book.id:
            self.change_book(book.id, page)
        if chapter is not None:
            page.chapter_id = chapter.id
            page.priority = self.new_chapter_priority(chapter.id)
        else:
            page.chapter_id = None
            page.priority = self.new_book_priority(book.id)
        self.session.flush()
        self.session.expire(page, ["chapter"])
        self.activity.add(page, "page_move", book.id)
        return page

    def destroy(self, page: Page) -> None:
        self._remove_entity_records(page)
        self.session.delete(page)
        self.session.flush()
        logger.info("Page %s destroyed", page.id)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def get_recently_created_paginated(self, count: int = 20, page: int = 1) -> Paginator:
        stmt = self.page_query().where(Page.draft.is_(False)).order_by(Page.created_at.desc(), Page.id.desc())
        return paginate(self.session, stmt, page=page, per_page=count)

    def get_recently_updated_paginated(self, count: int = 20, page: int = 1) -> Paginator:
        stmt = self.page_query().where(Page.draft.is_(False)).order_by(Page.updated_at.desc(), Page.id.desc())
        return paginate(self.session, stmt, page=page, per_page=count)

    def get_user_drafts(self) -> list[Page]:
        if self.user is None:
            return []
        stmt = (
            self.page_query()
            .where(Page.draft.is_(True), Page.created_by == self.user.id)
            .order_by(Page.updated_at.desc())
        )
        return list(self.session.scalars(stmt))
