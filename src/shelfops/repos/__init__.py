"""
Repositories: data access for entities, users and roles.

Entity repos apply restriction scoping to every read, so a repo built for a
user never returns content that user cannot view.
"""

from __future__ import annotations

from .book_repo import BookRepo
from .chapter_repo import ChapterRepo
from .entity_repo import EntityRepo, sort_children
from .page_repo import PageRepo
from .role_repo import RoleRepo
from .user_repo import UserRepo

__all__ = [
    "BookRepo",
    "ChapterRepo",
    "EntityRepo",
    "PageRepo",
    "RoleRepo",
    "UserRepo",
    "sort_children",
]
