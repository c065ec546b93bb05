from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select

from ..exceptions import NotFoundException
from ..models import Book, Chapter, Page
from ..pagination import Paginator, paginate
from .chapter_repo import ChapterRepo
from .entity_repo import EntityRepo, sort_children
from .page_repo import PageRepo

logger = logging.getLogger(__name__)


class BookRepo(EntityRepo):
    model = Book
    search_fields = ("name", "description")
    slug_scoped_to_book = False

    def _chapter_repo(self) -> ChapterRepo:
        return ChapterRepo(self.session, self.user, self.restrictions, self.activity, self.views)

    def _page_repo(self) -> PageRepo:
        return PageRepo(self.session, self.user, self.restrictions, self.activity, self.views)

    def id_exists(self, book_id: int) -> bool:
        return self.session.scalar(self.book_query().where(Book.id == book_id)) is not None

    def get_by_id(self, book_id: int) -> Book:
        book = self.session.scalar(self.book_query().where(Book.id == book_id))
        if book is None:
            raise NotFoundException("Book not found")
        return book

    def get_all(self, count: int = 10) -> list[Book]:
        stmt = self.book_query().order_by(Book.name.asc())
        if count:
            stmt = stmt.limit(count)
        return list(self.session.scalars(stmt))

    def get_all_paginated(self, count: int = 10, page: int = 1) -> Paginator:
        return paginate(self.session, self.book_query().order_by(Book.name.asc()), page=page, per_page=count)

    def get_by_slug(self, slug: str) -> Book:
        book = self.session.scalar(self.book_query().where(Book.slug == slug))
        if book is None:
            raise NotFoundException("Book not found")
        return book

    def new_from_input(self, data: dict[str, Any]) -> Book:
        return Book(name=(data.get("name") or "").strip(), description=(data.get("description") or "").strip())

    def create_from_input(self, data: dict[str, Any]) -> Book:
        book = self.new_from_input(data)
        book.slug = self.find_suitable_slug(book.name)
        book.created_by = self._user_id()
        book.updated_by = self._user_id()
        self.session.add(book)
        self.session.flush()
        self.activity.add(book, "book_create", book.id)
        return book

    def update_from_input(self, book: Book, data: dict[str, Any]) -> Book:
        name = (data.get("name") or "").strip()
        if name and name != book.name:
            book.name = name
            book.slug = self.find_suitable_slug(name, current_id=book.id)
        if "description" in data:
            book.description = (data.get("description") or "").strip()
        book.updated_by = self._user_id()
        self.session.flush()
        self.activity.add(book, "book_update", book.id)
        return book

    def get_new_priority(self, book: Book) -> int:
        return self.new_book_priority(book.id)

    def get_children(self, book: Book) -> list[Any]:
        """
        Chapters and chapter-less pages of `book` the user may view, ordered
        by priority with drafts first. Each chapter gets `visible_pages`.
        """
        chapters = list(self.session.scalars(self.chapter_query().where(Chapter.book_id == book.id)))
        pages = list(
            self.session.scalars(
                self.page_query().where(Page.book_id == book.id).order_by(Page.priority.asc(), Page.id.asc())
            )
        )

        pages_by_chapter: dict[int, list[Page]] = {}
        loose_pages: list[Page] = []
        for page in pages:
            if page.chapter_id is None:
                loose_pages.append(page)
            else:
                pages_by_chapter.setdefault(page.chapter_id, []).append(page)

        for chapter in chapters:
            chapter.visible_pages = sort_children(pages_by_chapter.get(chapter.id, []))

        return sort_children(chapters + loose_pages)

    def destroy(self, book: Book) -> None:
        page_repo = self._page_repo()
        chapter_repo = self._chapter_repo()

        for page in list(self.session.scalars(select(Page).where(Page.book_id == book.id))):
            page_repo.destroy(page)
        for chapter in list(self.session.scalars(select(Chapter).where(Chapter.book_id == book.id))):
            chapter_repo.destroy(chapter)

        self._remove_entity_records(book)
        self.session.delete(book)
        self.session.flush()
        logger.info("Book %s destroyed", book.id)

    def sort(self, book: Book, sort_tree: list[dict[str, Any]]) -> set[int]:
        """
        Apply a sort tree posted by the sort view.

        Each item is {"id", "type" ("page" or "chapter"), "sort",
        "parentChapter" (chapter id or false), "book"}. Items may move to
        another book; the caller must already have checked update permission
        on every book involved. Returns the ids of the books touched.
        """
        chapter_repo = self._chapter_repo()
        page_repo = self._page_repo()
        touched = {book.id}

        for item in sort_tree:
            item_type = str(item.get("type") or "")
            item_id = int(item.get("id"))
            priority = int(item.get("sort") or 0)
            target_book_id = int(item.get("book") or book.id)

            if not self.id_exists(target_book_id):
                raise NotFoundException("Book not found")
            touched.add(target_book_id)

            if item_type == "chapter":
                chapter = self.session.scalar(self.chapter_query("update").where(Chapter.id == item_id))
                if chapter is None:
                    continue
                if chapter.book_id != target_book_id:
                    chapter_repo.change_book(target_book_id, chapter)
                chapter.priority = priority
            elif item_type == "page":
                page = self.session.scalar(self.page_query("update").where(Page.id == item_id))
                if page is None:
                    continue
                parent = item.get("parentChapter")
                chapter_id = int(parent) if parent not in (None, False, "", "false", 0, "0") else None
                if chapter_id is not None:
                    parent_chapter = self.session.get(Chapter, chapter_id)
                    if parent_chapter is None or parent_chapter.book_id != target_book_id:
                        chapter_id = None
                if page.book_id != target_book_id:
                    page_repo.change_book(target_book_id, page)
                page.chapter_id = chapter_id
                page.priority = priority

        self.session.flush()
        self.activity.add(book, "book_sort", book.id)
        return touched
