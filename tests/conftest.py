# tests/conftest.py
# Shared pytest fixtures for ShelfWiki tests

from __future__ import annotations

from types import SimpleNamespace
from typing import Iterable, Optional

import pytest

from config import TestingConfig
from extensions import db
from shelf_app import create_app
from shelfops.models import ENTITY_MODELS, Role, User
from shelfops.repos import BookRepo, ChapterRepo, PageRepo, UserRepo
from shelfops.security import hash_password
from shelfops.seed import seed_defaults
from shelfops.services import RestrictionService, SettingService

ADMIN_EMAIL = "admin@admin.com"
ADMIN_PASSWORD = "password"


def make_config(base, tmp_path, **overrides):
    """Config subclass writing to `tmp_path` with an in-memory database."""
    attrs = {"WIKI_DATA_ROOT": tmp_path, "DATABASE_URL": "sqlite://"}
    attrs.update(overrides)
    return type("TestConfig", (base,), attrs)


def flashes(client) -> list[str]:
    """Messages flashed but not yet rendered for `client`."""
    with client.session_transaction() as sess:
        return [message for _category, message in sess.get("_flashes", [])]


class Factory:
    """Creates rows directly through the repos, outside of any request."""

    def __init__(self, app):
        self.app = app

    def _user(self, user_id: Optional[int]) -> Optional[User]:
        return db.session.get(User, user_id) if user_id is not None else None

    def admin_id(self) -> int:
        with self.app.app_context():
            return UserRepo(db.session).get_by_email(ADMIN_EMAIL).id

    def role_id(self, name: str) -> int:
        with self.app.app_context():
            return Role.get_role(db.session, name).id

    def user(
        self,
        name: str = "Test User",
        email: str = "user@example.com",
        role: Optional[str] = "viewer",
        password: str = "password",
        confirmed: bool = True,
    ) -> int:
        with self.app.app_context():
            role_ids = [Role.get_role(db.session, role).id] if role else []
            user = UserRepo(db.session).create(
                name, email, hash_password(password, 4), email_confirmed=confirmed, role_ids=role_ids
            )
            db.session.commit()
            return user.id

    def book(self, name: str = "Test Book", owner_id: Optional[int] = None, description: str = "") -> SimpleNamespace:
        with self.app.app_context():
            repo = BookRepo(db.session, self._user(owner_id))
            book = repo.create_from_input({"name": name, "description": description})
            db.session.commit()
            return SimpleNamespace(id=book.id, slug=book.slug, url=book.get_url())

    def chapter(self, book, name: str = "Test Chapter", owner_id: Optional[int] = None) -> SimpleNamespace:
        with self.app.app_context():
            repo = ChapterRepo(db.session, self._user(owner_id))
            parent = db.session.get(ENTITY_MODELS["book"], book.id)
            chapter = repo.create_from_input({"name": name, "description": ""}, parent)
            db.session.commit()
            return SimpleNamespace(id=chapter.id, slug=chapter.slug, book_id=book.id, url=chapter.get_url())

    def page(
        self,
        book,
        name: str = "Test Page",
        html: str = "<p>Some page content</p>",
        chapter=None,
        owner_id: Optional[int] = None,
        draft: bool = False,
    ) -> SimpleNamespace:
        with self.app.app_context():
            repo = PageRepo(db.session, self._user(owner_id))
            parent_book = db.session.get(ENTITY_MODELS["book"], book.id)
            parent_chapter = db.session.get(ENTITY_MODELS["chapter"], chapter.id) if chapter else None
            page = repo.save_new({"name": name, "html": html}, parent_book, parent_chapter, draft=draft)
            db.session.commit()
            return SimpleNamespace(id=page.id, slug=page.slug, book_id=book.id, url=page.get_url())

    def restrict(self, entity_type: str, entity_id: int, grants: Iterable[tuple[str, str]] = ()) -> None:
        """Restrict an entity, granting (role name, action) pairs."""
        with self.app.app_context():
            entity = db.session.get(ENTITY_MODELS[entity_type], entity_id)
            role_grants = [(Role.get_role(db.session, role).id, action) for role, action in grants]
            RestrictionService(db.session, None).set_restrictions(entity, True, role_grants)
            db.session.commit()

    def setting(self, key: str, value) -> None:
        with self.app.app_context():
            SettingService(db.session).put(key, value)
            db.session.commit()


@pytest.fixture
def app(tmp_path):
    """Application with a seeded in-memory database."""
    app = create_app(make_config(TestingConfig, tmp_path))
    with app.app_context():
        db.create_all()
        seed_defaults(db.session, admin_email=ADMIN_EMAIL, admin_password=ADMIN_PASSWORD, bcrypt_rounds=4)
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def factory(app):
    return Factory(app)


@pytest.fixture
def client_for(app):
    """Build a test client signed in as the given user id."""

    def _client_for(user_id: int):
        client = app.test_client()
        with client.session_transaction() as sess:
            sess["user_id"] = user_id
        return client

    return _client_for


@pytest.fixture
def admin_client(factory, client_for):
    return client_for(factory.admin_id())


@pytest.fixture
def editor_id(factory):
    return factory.user("Eddie Editor", "editor@example.com", role="editor")


@pytest.fixture
def editor_client(editor_id, client_for):
    return client_for(editor_id)


@pytest.fixture
def viewer_id(factory):
    return factory.user("Vera Viewer", "viewer@example.com", role="viewer")


@pytest.fixture
def viewer_client(viewer_id, client_for):
    return client_for(viewer_id)


@pytest.fixture
def build_app(tmp_path):
    """Create an unseeded app from a config base class plus overrides."""

    def _build_app(base=TestingConfig, **overrides):
        return create_app(make_config(base, tmp_path, **overrides))

    return _build_app
