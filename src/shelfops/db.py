# shelfops/db.py
# SQLAlchemy engine and session wiring

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Base for all ORM models."""


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for `database_url`.

    SQLite needs a special flag when used in a multi-threaded web app, and an
    in-memory SQLite database must share one connection or every checkout
    would see an empty database.
    """
    connect_args: dict[str, object] = {}
    kwargs: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    return create_engine(
        database_url,
        echo=echo,
        future=True,
        connect_args=connect_args,
        **kwargs,
    )


class Database:
    """
    Engine plus a scoped session, bound to a Flask app with init_app().

    The session is removed when the app context tears down, so each request
    gets a fresh one.
    """

    def __init__(self) -> None:
        self.engine: Optional[Engine] = None
        self.session = scoped_session(
            sessionmaker(autoflush=False, expire_on_commit=False, class_=Session)
        )

    def init_app(self, app) -> None:
        self.session.remove()
        if self.engine is not None:
            self.engine.dispose()

        self.engine = build_engine(app.config["DATABASE_URL"], echo=app.config.get("SQLALCHEMY_ECHO", False))
        self.session.configure(bind=self.engine)

        app.extensions["db"] = self
        app.teardown_appcontext(self._teardown)

    def _teardown(self, exc: Optional[BaseException]) -> None:
        if exc is not None:
            self.session.rollback()
        self.session.remove()

    def create_all(self) -> None:
        # Models register themselves on Base.metadata when imported
        from shelfops import models  # noqa: F401

        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        from shelfops import models  # noqa: F401

        Base.metadata.drop_all(self.engine)

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        Commit on success, roll back and re-raise on error.

            with db.transaction() as session:
                session.add(book)
        """
        session = self.session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
