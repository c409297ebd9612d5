# tests/test_auth.py
from fastapi.testclient import TestClient

from booking_service.models import User
from conftest import TEST_PASSWORD, register, unique_username


def test_register_login_and_session(client):
    """
    Full authentication cycle.
    1. Register: 201 and the user is signed in straight away.
    2. Logout: the session endpoint reports unauthenticated.
    3. Login: 200 and the session endpoint reports the (normalized) username.
    """
    r = register(client, "  Carol_1 ")
    assert r.status_code == 201, f"Expected 201 but got {r.status_code}: {r.text}"
    assert r.json() == {"success": True, "message": "Account created successfully"}

    r = client.get("/api/auth/session")
    assert r.json()["authenticated"] is True
    assert r.json()["user"]["username"] == "carol_1"

    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    assert r.json() == {"success": True}
    assert client.get("/api/auth/session").json() == {"authenticated": False}

    r = client.post("/api/auth/login", json={"username": "CAROL_1", "password": TEST_PASSWORD})
    assert r.status_code == 200, f"Expected 200 but got {r.status_code}: {r.text}"
    assert r.json()["success"] is True

    session = client.get("/api/auth/session").json()
    assert session["authenticated"] is True
    assert session["user"]["username"] == "carol_1"
    assert isinstance(session["user"]["id"], int)


def test_session_cookie_attributes(client):
    r = register(client)
    cookie = r.headers.get("set-cookie", "").lower()

    assert cookie.startswith("counselor.sid="), f"Unexpected cookie: {cookie}"
    assert "httponly" in cookie
    assert "samesite=strict" in cookie
    assert "max-age=1800" in cookie
    assert "path=/" in cookie


def test_register_duplicate_username_is_case_insensitive(client):
    """Registering 'Alice' then 'alice' is a conflict."""
    assert register(client, "Alice").status_code == 201

    r = register(client, "alice")
    assert r.status_code == 409, f"Expected 409 but got {r.status_code}"
    assert r.json() == {"error": "USERNAME_TAKEN", "message": "Username already exists"}


def test_register_rejects_invalid_shapes(client):
    cases = [
        {"username": "ab", "password": TEST_PASSWORD},
        {"username": "x" * 31, "password": TEST_PASSWORD},
        {"username": unique_username(), "password": "short"},
        {"username": 12345, "password": TEST_PASSWORD},
        {"username": unique_username(), "password": ["not", "a", "string"]},
        {"username": unique_username()},
        {"username": "   ", "password": TEST_PASSWORD},
    ]
    for payload in cases:
        r = client.post("/api/auth/register", json=payload)
        assert r.status_code == 400, f"Expected 400 for {payload!r} but got {r.status_code}"
        assert r.json()["error"] == "VALIDATION_ERROR"


def test_validation_message_never_echoes_the_password(client):
    r = client.post("/api/auth/register", json={"username": "ab", "password": "hunter2!!"})
    assert r.status_code == 400
    assert "hunter2" not in r.text


def test_account_limit_per_ip(client):
    """The fourth account from the same address is refused."""
    for _ in range(3):
        r = register(client)
        assert r.status_code == 201, f"Expected 201 but got {r.status_code}: {r.text}"

    r = register(client)
    assert r.status_code == 403, f"Expected 403 but got {r.status_code}"
    assert r.json() == {"error": "ACCESS_DENIED", "message": "Account limit reached for this IP address"}


def test_login_invalid_credentials(client):
    """Unknown user and wrong password fail the same way."""
    username = unique_username()
    register(client, username)

    unknown = client.post("/api/auth/login", json={"username": unique_username(), "password": TEST_PASSWORD})
    wrong = client.post("/api/auth/login", json={"username": username, "password": "wrongpassword"})

    for r in (unknown, wrong):
        assert r.status_code == 401, f"Expected 401 but got {r.status_code}"
        assert r.json() == {"error": "INVALID_CREDENTIALS", "message": "Invalid credentials"}


def test_login_requires_string_fields(client):
    r = client.post("/api/auth/login", json={"username": ["admin"], "password": TEST_PASSWORD})
    assert r.status_code == 400
    assert r.json()["error"] == "VALIDATION_ERROR"


def test_logout_without_session_is_harmless(client):
    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    assert r.json() == {"success": True}


def test_login_replaces_previous_session(app):
    """A new login never keeps the session id the client arrived with."""
    client = TestClient(app)
    username = unique_username()
    register(client, username)
    old_id = client.cookies.get("counselor.sid")

    r = client.post("/api/auth/login", json={"username": username, "password": TEST_PASSWORD})
    assert r.status_code == 200
    new_id = client.cookies.get("counselor.sid")

    assert new_id and new_id != old_id
    assert app.state.session_manager.store.get(old_id) is None


def test_password_is_stored_as_argon2id_hash(app, client):
    username = unique_username()
    register(client, username)

    db = app.state.session_factory()
    try:
        user = db.query(User).filter(User.username == username).one()
    finally:
        db.close()

    assert user.password_hash.startswith("$argon2id$")
    assert TEST_PASSWORD not in user.password_hash
    assert user.signup_ip == "testclient"
