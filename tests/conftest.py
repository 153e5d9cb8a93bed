"""
Pytest configuration and shared fixtures.

Test environment variables are set here, before any inbox import, so the
cached settings and the engine pick them up.
"""

import itertools
import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_inbox.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("OPERATOR_SECRET", "test-operator-secret")
os.environ.setdefault("SESSION_SECRET", "test-session-signing-key")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from inbox.config import get_settings  # noqa: E402

get_settings.cache_clear()

from inbox import models, storage  # noqa: E402,F401
from inbox.main import app  # noqa: E402
from inbox.storage import Base, SessionLocal, engine  # noqa: E402


OPERATOR_SECRET = os.environ["OPERATOR_SECRET"]


@pytest.fixture(scope="function")
def db():
    """Database session on freshly created tables."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def auth_headers(client):
    """Bearer header for a freshly logged-in operator."""
    response = client.post("/auth/login", json={"secret": OPERATOR_SECRET})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def clock(monkeypatch):
    """
    Deterministic creation timestamps, one minute apart, starting 2025-01-15.

    Explicit moments (used for token expiry bookkeeping) are formatted as usual.
    """
    real_timestamp = storage.utc_timestamp
    start = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)
    ticks = (start + timedelta(minutes=n) for n in itertools.count())

    def fake_timestamp(moment=None):
        return real_timestamp(moment or next(ticks))

    monkeypatch.setattr(storage, "utc_timestamp", fake_timestamp)
    return fake_timestamp
