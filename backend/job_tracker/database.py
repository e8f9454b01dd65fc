"""Database engine, session management, and initialization."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

import structlog
from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from job_tracker.config import AppConfig
from job_tracker.models import Base

logger = structlog.get_logger(__name__)


def _enable_sqlite_pragmas(dbapi_conn: object, _connection_record: object) -> None:
    """Enable WAL mode and foreign keys for SQLite connections."""
    cursor = dbapi_conn.cursor()  # type: ignore[union-attr]
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str) -> Engine:
    """Build an engine for ``database_url`` with SQLite tweaks applied."""
    is_sqlite = database_url.startswith("sqlite")
    kwargs: dict[str, object] = {"echo": False, "pool_pre_ping": True}
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            # One shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_pragmas)
    return engine


def init_db(config: AppConfig) -> sessionmaker[Session]:
    """Create the engine and tables, and return a session factory bound to it."""
    engine = create_db_engine(config.database_url)
    Base.metadata.create_all(bind=engine)
    logger.info("database_initialized", url=engine.url.render_as_string(hide_password=True))
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """Return the session factory attached to the running app."""
    factory = getattr(request.app.state, "session_factory", None)
    if factory is None:
        raise RuntimeError("Database not initialized; call init_db() first")
    return factory


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Context manager yielding a database session with auto-commit/rollback."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db(request: Request) -> Generator[Session, None, None]:
    """FastAPI dependency that yields a request-scoped database session."""
    with session_scope(get_session_factory(request)) as session:
        yield session
