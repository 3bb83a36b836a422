"""
Test configuration and fixtures.
"""
import os
import tempfile
from datetime import datetime, timezone
from typing import Generator

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session
from fastapi.testclient import TestClient

# Configure the app for tests before importing it
_TEST_DB_DIR = tempfile.mkdtemp(prefix="portal_auth_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
os.environ["SESSION_CACHE_BACKEND"] = "memory"
os.environ["SESSION_COOKIE_SECURE"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"

from portal_auth.main import app
from portal_auth.db.base import Base
from portal_auth.db.session import SessionLocal, engine
import portal_auth.models  # noqa: F401
from portal_auth.models.user import User
from portal_auth.core.security import hash_password
from portal_auth.sessions.cache import InMemoryCacheBackend
from portal_auth.sessions.durable import SqlAlchemyDurableBackend
from portal_auth.sessions.manager import SessionManager
from portal_auth.sessions.types import RequestContext
from helpers import BROWSER_UA, TEST_PASSWORD, FakeClock

Base.metadata.create_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables() -> Generator[None, None, None]:
    """Empty the tables after every test."""
    yield
    with engine.begin() as conn:
        conn.execute(text("DELETE FROM otp_codes"))
        conn.execute(text("DELETE FROM user_sessions"))
        conn.execute(text("DELETE FROM users"))


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a database session for the test."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def durable() -> SqlAlchemyDurableBackend:
    return SqlAlchemyDurableBackend(SessionLocal)


@pytest.fixture
def manager(durable: SqlAlchemyDurableBackend, clock: FakeClock) -> SessionManager:
    return SessionManager(InMemoryCacheBackend(), durable, clock=clock)


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(user_agent=BROWSER_UA, ip="203.0.113.24")


@pytest.fixture
def make_user(db: Session):
    """Factory creating users with a known password."""
    def _make_user(email: str = "testuser@example.com", role: str = "client", is_active: bool = True) -> User:
        user = User(
            email=email,
            hashed_password=hash_password(TEST_PASSWORD),
            full_name="Test User",
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def test_user(make_user) -> User:
    return make_user()


@pytest.fixture(scope="function")
def client() -> Generator[TestClient, None, None]:
    """Test client running the app lifespan (session manager, cleanup timer)."""
    with TestClient(app) as c:
        yield c

