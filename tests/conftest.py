"""
Pytest fixtures for testing
"""
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from progression.application.notifications import ProgressionNotifier
from progression.application.progression import ProgressionFacade
from progression.infrastructure.db.session import Base
import progression.infrastructure.db.models  # noqa: F401  (registers tables on Base.metadata)
from progression.utils.calendar import FixedClock


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads (TestClient runs sync routes in a pool)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def fixed_clock():
    """2026-03-10 09:00 UTC; advance with fixed_clock.advance(days=1)"""
    return FixedClock(datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    return ProgressionNotifier()


@pytest.fixture
def events(notifier):
    """Every event emitted through the notifier fixture, in order"""
    received = []
    notifier.subscribe(received.append)
    return received


@pytest.fixture
def facade(db_session, fixed_clock, notifier) -> ProgressionFacade:
    return ProgressionFacade(db_session, clock=fixed_clock, notifier=notifier)


@pytest.fixture
def user_id():
    return "user-1"
