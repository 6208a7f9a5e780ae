from __future__ import annotations

from collections.abc import Callable
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from labreview.errors import PersistenceError


SessionFactory = Callable[[], Session]


def create_engine_for_url(database_url: str) -> Engine:
    """Create an engine for ``database_url``.

    In-memory SQLite databases live inside a single connection, so they get a
    StaticPool shared across threads; every other URL uses the default pool.
    """

    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_engine(
            database_url,
            future=True,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(database_url, future=True)


def create_sqlalchemy_session_factory(engine: Engine) -> SessionFactory:
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, class_=Session)

    def _factory() -> Session:
        return SessionLocal()

    return _factory


@contextmanager
def session_scope(session_factory: SessionFactory) -> Iterator[Session]:
    """Yield a session, always closing it and translating driver errors.

    Repositories above this layer only see PersistenceError, never
    SQLAlchemy exceptions.
    """

    session = session_factory()
    try:
        yield session
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(f"Database operation failed: {exc.__class__.__name__}") from exc
    finally:
        session.close()
