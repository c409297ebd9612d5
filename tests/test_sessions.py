# tests/test_sessions.py
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from booking_service.errors import SessionInvalid
from booking_service.sessions import SessionManager
from conftest import register


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, minutes):
        self.now += timedelta(minutes=minutes)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(clock):
    return SessionManager(secret="unit-test-secret", ttl_minutes=30, cookie_secure=True, clock=clock)


# --- SessionManager ---

def test_validate_refreshes_expiry(manager, clock):
    record = manager.create(1, "bob123", "Mozilla/5.0")
    assert record.expires_at == clock.now + timedelta(minutes=30)

    clock.advance(20)
    refreshed = manager.validate(record.session_id, "Mozilla/5.0")
    assert refreshed is not None
    assert refreshed.expires_at == clock.now + timedelta(minutes=30)

    clock.advance(20)
    assert manager.validate(record.session_id, "Mozilla/5.0") is not None, "Rolling expiry should keep the session alive"


def test_expired_session_is_removed(manager, clock):
    record = manager.create(1, "bob123", "Mozilla/5.0")
    clock.advance(30)

    assert manager.validate(record.session_id, "Mozilla/5.0") is None
    assert manager.store.get(record.session_id) is None


def test_fingerprint_mismatch_destroys_session(manager):
    record = manager.create(1, "bob123", "Mozilla/5.0")

    with pytest.raises(SessionInvalid):
        manager.validate(record.session_id, "curl/8.0")

    assert manager.store.get(record.session_id) is None
    assert manager.validate(record.session_id, "Mozilla/5.0") is None


def test_fingerprint_is_not_the_raw_user_agent(manager):
    record = manager.create(1, "bob123", "Mozilla/5.0")
    assert record.fingerprint != "Mozilla/5.0"
    assert len(record.fingerprint) == 64


def test_destroy_is_idempotent(manager):
    record = manager.create(1, "bob123", "Mozilla/5.0")
    manager.destroy(record.session_id)
    manager.destroy(record.session_id)
    manager.destroy(None)
    assert manager.validate(record.session_id, "Mozilla/5.0") is None


def test_unknown_session_id(manager):
    assert manager.validate("does-not-exist", "Mozilla/5.0") is None
    assert manager.validate(None, "Mozilla/5.0") is None


def test_create_purges_expired_sessions(manager, clock):
    manager.create(1, "first", "ua")
    manager.create(2, "second", "ua")
    clock.advance(31)

    manager.create(3, "third", "ua")
    assert len(manager.store) == 1


def test_session_ids_are_unique(manager):
    ids = {manager.create(1, "bob123", "ua").session_id for _ in range(50)}
    assert len(ids) == 50


# --- Through the HTTP layer ---

def test_user_agent_change_invalidates_then_expires(client):
    """
    1. A request from a different User-Agent gets SESSION_INVALID.
    2. Every later request, even from the original User-Agent, gets SESSION_EXPIRED.
    """
    register(client)
    assert client.get("/api/bookings").status_code == 200

    r = client.get("/api/bookings", headers={"User-Agent": "SomethingElse/1.0"})
    assert r.status_code == 401
    assert r.json() == {"error": "SESSION_INVALID", "message": "Session expired or invalidated"}

    r = client.get("/api/bookings")
    assert r.status_code == 401
    assert r.json()["error"] == "SESSION_EXPIRED"


def test_unauthenticated_request_is_rejected(client):
    r = client.get("/api/bookings")
    assert r.status_code == 401
    assert r.json()["error"] == "SESSION_EXPIRED"


def test_idle_session_expires(app):
    clock = FakeClock()
    app.state.session_manager.clock = clock
    client = TestClient(app)
    register(client)

    clock.advance(20)
    assert client.get("/api/bookings").status_code == 200
    clock.advance(20)
    assert client.get("/api/bookings").status_code == 200

    clock.advance(31)
    r = client.get("/api/bookings")
    assert r.status_code == 401
    assert r.json()["error"] == "SESSION_EXPIRED"
    assert client.get("/api/auth/session").json() == {"authenticated": False}


def test_authenticated_response_renews_cookie(auth_client):
    r = auth_client.get("/api/bookings")
    assert r.status_code == 200
    assert r.headers.get("set-cookie", "").startswith("counselor.sid=")


def test_logout_ends_session(auth_client):
    assert auth_client.post("/api/auth/logout").status_code == 200

    r = auth_client.get("/api/bookings")
    assert r.status_code == 401
    assert r.json()["error"] == "SESSION_EXPIRED"
