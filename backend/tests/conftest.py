"""Shared fixtures: in-memory SQLite database and an API client bound to it."""

from __future__ import annotations

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from job_tracker.config import AppConfig
from job_tracker.database import create_db_engine
from job_tracker.main import create_app
from job_tracker.models import Base, User

USER_EMAIL = "candidate@example.com"
OTHER_EMAIL = "someone-else@example.com"


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Create an in-memory SQLite database for testing."""
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def user(db_session: Session) -> User:
    user = User(email=USER_EMAIL)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def other_user(db_session: Session) -> User:
    user = User(email=OTHER_EMAIL)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def client(session_factory: sessionmaker[Session]) -> TestClient:
    """API client sharing the test database (lifespan is not run)."""
    app = create_app(AppConfig(database_url="sqlite:///:memory:"))
    app.state.session_factory = session_factory
    return TestClient(app)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"x-user-email": USER_EMAIL}
