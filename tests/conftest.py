"""
Shared fixtures: a SQLite-backed document store and a controllable clock
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.db import Base, get_db
from app.core.dependencies import get_clock
from app.models import StoredDocument  # noqa: F401
from app.services.ballot_service import BallotService
from app.services.event_service import EventService
from app.services.group_service import GroupService
from app.services.sql_store import ChangeFeed, SqlDocumentStore
from app.utils.security import rate_limiter
from main import app

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_game_night.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

START = datetime(2025, 3, 1, 18, 0, tzinfo=timezone.utc)


class InterleavingStore(SqlDocumentStore):
    """Runs a competing write right before each conditional update"""

    def __init__(self, db, feed, competing_write, times=1):
        super().__init__(db, feed=feed)
        self.competing_write = competing_write
        self.times = times

    def update_document(self, path, data, expected_version=None):
        if expected_version is not None and self.times > 0:
            self.times -= 1
            self.competing_write()
        super().update_document(path, data, expected_version=expected_version)


class FakeClock:
    """Clock that only moves when told to"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def db_session():
    """Create test database session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)

@pytest.fixture
def feed():
    return ChangeFeed()

@pytest.fixture
def store(db_session, feed):
    return SqlDocumentStore(db_session, feed=feed)

@pytest.fixture
def racing_store(db_session, feed):
    """Build a store that loses its next conditional writes to competing_write"""
    def build(competing_write, times=1):
        return InterleavingStore(db_session, feed, competing_write, times=times)
    return build

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def groups(store, clock):
    return GroupService(store, clock=clock)

@pytest.fixture
def events(store, clock):
    return EventService(store, clock=clock, host_fallback="first_member")

@pytest.fixture
def ballot(store, clock):
    return BallotService(store, clock=clock, max_attempts=3)

@pytest.fixture
def board_game_group(groups):
    """Group with members alice, bob and carol, in that order"""
    return groups.create_group("Board Game Club", ["alice", "bob", "carol"], created_by="alice")

@pytest.fixture
def client(db_session, clock):
    """HTTP client bound to the test session and clock"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    rate_limiter.clear()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
