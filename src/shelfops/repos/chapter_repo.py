from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update

from ..exceptions import NotFoundException
from ..models import Chapter, Page
from .entity_repo import EntityRepo, sort_children
from .page_repo import PageRepo

logger = logging.getLogger(__name__)


class ChapterRepo(EntityRepo):
    model = Chapter
    search_fields = ("name", "description")

    def id_exists(self, chapter_id: int) -> bool:
        """Check if a visible chapter has the given id."""
        return self.session.scalar(self.chapter_query().where(Chapter.id == chapter_id)) is not None

    def get_by_id(self, chapter_id: int) -> Chapter:
        chapter = self.session.scalar(self.chapter_query().where(Chapter.id == chapter_id))
        if chapter is None:
            raise NotFoundException("Chapter not found")
        return chapter

    def get_all(self) -> list[Chapter]:
        return list(self.session.scalars(self.chapter_query().order_by(Chapter.book_id, Chapter.priority)))

    def get_by_slug(self, slug: str, book_id: int) -> Chapter:
        """Get the chapter with the given slug within the given book."""
        chapter = self.session.scalar(
            self.chapter_query().where(Chapter.slug == slug, Chapter.book_id == book_id)
        )
        if chapter is None:
            raise NotFoundException("Chapter not found")
        return chapter

    def get_children(self, chapter: Chapter) -> list[Page]:
        """Visible pages of the chapter, drafts first then by priority."""
        pages = self.session.scalars(
            self.page_query().where(Page.chapter_id == chapter.id).order_by(Page.priority.asc(), Page.id.asc())
        )
        return sort_children(pages)

    def new_from_input(self, data: dict[str, Any]) -> Chapter:
        return Chapter(
            name=(data.get("name") or "").strip(),
            description=(data.get("description") or "").strip(),
        )

    def create_from_input(self, data: dict[str, Any], book) -> Chapter:
        chapter = self.new_from_input(data)
        chapter.book_id = book.id
        chapter.slug = self.find_suitable_slug(chapter.name, book.id)
        chapter.priority = self.new_book_priority(book.id)
        chapter.created_by = self._user_id()
        chapter.updated_by = self._user_id()
        self.session.add(chapter)
        self.session.flush()
        self.activity.add(chapter, "chapter_create", book.id)
        return chapter

    def update_from_input(self, chapter: Chapter, data: dict[str, Any]) -> Chapter:
        name = (data.get("name") or "").strip()
        if name and name != chapter.name:
            chapter.name = name
            chapter.slug = self.find_suitable_slug(name, chapter.book_id, chapter.id)
        if "description" in data:
            chapter.description = (data.get("description") or "").strip()
        chapter.updated_by = self._user_id()
        self.session.flush()
        self.activity.add(chapter, "chapter_update", chapter.book_id)
        return chapter

    def destroy(self, chapter: Chapter) -> None:
        """
        Delete a chapter. Its pages stay in the book, detached from the chapter.
        """
        self.session.execute(update(Page).where(Page.chapter_id == chapter.id).values(chapter_id=None))
        self._remove_entity_records(chapter)
        # The pages collection may hold stale chapter links after the bulk update
        self.session.expire(chapter, ["pages"])
        self.session.delete(chapter)
        self.session.flush()
        logger.info("Chapter %s destroyed", chapter.id)

    def get_new_priority(self, chapter: Chapter) -> int:
        """Priority for a new page added to the end of the chapter."""
        return self.new_chapter_priority(chapter.id)

    def change_book(self, book_id: int, chapter: Chapter) -> Chapter:
        """
        Move a chapter, and the pages inside it, to another book.

        Activity rows follow the chapter and the slug is regenerated so it
        stays unique in the new book.
        """
        page_repo = PageRepo(self.session, self.user, self.restrictions, self.activity, self.views)

        chapter.book_id = book_id
        self.activity.move_to_book(chapter, book_id)
        chapter.slug = self.find_suitable_slug(chapter.name, book_id, chapter.id)
        self.session.flush()

        for page in list(self.session.scalars(select(Page).where(Page.chapter_id == chapter.id))):
            page_repo.change_book(book_id, page)

        self.session.flush()
        self.session.expire(chapter, ["book"])
        return chapter
