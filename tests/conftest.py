# tests/conftest.py
import uuid

import pytest
from fastapi.testclient import TestClient

from booking_service.config import Settings
from booking_service.db import build_engine, build_session_factory, init_db
from booking_service.main import create_app
from booking_service.models import User
from booking_service.seed import seed_counselors

TEST_PASSWORD = "longenough1"


def make_settings(tmp_path, **overrides) -> Settings:
    """Development settings on a per-test SQLite file, cheap Argon2, no rate limits."""
    values = dict(
        environment="development",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        session_secret="test-session-secret",
        session_ttl_minutes=30,
        max_accounts_per_ip=3,
        argon2_memory_cost=1024,
        argon2_time_cost=1,
        argon2_parallelism=1,
        rate_limit_enabled=False,
        global_rate_limit="100 per 15 minutes",
        auth_rate_limit="5 per 15 minutes",
        booking_rate_limit="10 per minute",
        frontend_url=None,
        max_body_bytes=1024 * 1024,
    )
    values.update(overrides)
    return Settings(**values)


def unique_username() -> str:
    return f"user_{uuid.uuid4().hex[:12]}"


def register(client: TestClient, username: str = None, password: str = TEST_PASSWORD):
    payload = {"username": username or unique_username(), "password": password}
    return client.post("/api/auth/register", json=payload)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_client(app):
    """
    Client with a signed-in user.
    1. Registers a new unique user (registration also starts the session).
    2. Returns the client, whose cookie jar carries the session cookie.
    """
    c = TestClient(app)
    r = register(c)
    assert r.status_code == 201, f"Expected 201 on registration, got {r.status_code}: {r.text}"
    return c


@pytest.fixture
def session_factory(tmp_path):
    """Storage without the HTTP layer: schema created and counselors seeded."""
    engine = build_engine(f"sqlite:///{tmp_path / 'storage.db'}")
    init_db(engine)
    factory = build_session_factory(engine)
    db = factory()
    try:
        seed_counselors(db)
    finally:
        db.close()
    yield factory
    engine.dispose()


@pytest.fixture
def make_user(session_factory):
    """Inserts users directly; the hash is irrelevant for storage tests."""
    def _make_user(username: str = None, signup_ip: str = "10.0.0.1") -> int:
        db = session_factory()
        try:
            user = User(username=username or unique_username(), password_hash="not-a-real-hash", signup_ip=signup_ip)
            db.add(user)
            db.commit()
            return user.id
        finally:
            db.close()
    return _make_user
