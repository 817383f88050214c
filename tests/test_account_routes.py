"""
tests/test_account_routes.py -- Integration tests for /api/v1/account/*.

Covers:
  - signup returns 201 {"created": true}; duplicate username is 400
  - GET /me returns ProtectedAccount without password, secret or nonce
  - PUT /account/{id}: self rename works, another account is 401,
    foreign-table id is 400, taken username is 400
  - GET /account/{id}/permissions: self, other without grant (401),
    other with account.permission.get, unknown account is an empty list
  - machine sessions: bypass permission gates but cannot use account routes
"""

from __future__ import annotations

from api.main import app
from auth.models import SessionTarget
from auth.permissions import ACCOUNT_PERMISSION_GET, NEWS_CREATE, grant_permission
from conftest import PASSWORD, bearer, unique_username


def _account_id(store, username: str) -> str:
    return str(store.get_account_by_username(username).id)


# ---------------------------------------------------------------------------
# Signup and /me
# ---------------------------------------------------------------------------


def test_signup_and_duplicate(api_client):
    client, store = api_client
    username = unique_username()
    resp = client.post("/api/v1/account/signup", json={"username": username, "password": PASSWORD})
    assert resp.status_code == 201
    assert resp.json() == {"created": True}
    account = store.get_account_by_username(username)
    assert account.totp is False

    resp = client.post("/api/v1/account/signup", json={"username": username, "password": PASSWORD})
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_me_is_protected_view(api_client, signup_login):
    client, store = api_client
    username, session = signup_login()
    resp = client.get("/api/v1/account/me", headers=bearer(session))
    assert resp.status_code == 200
    body = resp.json()
    assert set(body) == {"id", "username", "uuid", "totp", "locked", "createdAt"}
    assert body["id"] == _account_id(store, username)
    assert body["username"] == username
    assert body["totp"] is False
    assert body["locked"] is False


# ---------------------------------------------------------------------------
# Username change
# ---------------------------------------------------------------------------


def test_rename_self(api_client, signup_login):
    client, store = api_client
    username, session = signup_login()
    new_name = unique_username("renamed")
    resp = client.put(
        f"/api/v1/account/{_account_id(store, username)}",
        json={"username": new_name},
        headers=bearer(session),
    )
    assert resp.status_code == 200
    assert resp.json()["username"] == new_name
    assert store.get_account_by_username(new_name) is not None
    assert store.get_account_by_username(username) is None


def test_rename_other_account_is_401(api_client, signup_login):
    client, store = api_client
    _, session = signup_login()
    other, _ = signup_login()
    resp = client.put(
        f"/api/v1/account/{_account_id(store, other)}",
        json={"username": unique_username()},
        headers=bearer(session),
    )
    assert resp.status_code == 401
    assert store.get_account_by_username(other) is not None


def test_rename_with_foreign_table_id_is_400(api_client, signup_login):
    client, _ = api_client
    _, session = signup_login()
    resp = client.put("/api/v1/account/schematic:abc", json={"username": "x"}, headers=bearer(session))
    assert resp.status_code == 400
    assert resp.json() == {"error": "invalid id"}


def test_rename_to_taken_username_is_400(api_client, signup_login):
    client, store = api_client
    username, session = signup_login()
    other, _ = signup_login()
    resp = client.put(
        f"/api/v1/account/{_account_id(store, username)}",
        json={"username": other},
        headers=bearer(session),
    )
    assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Permission listing
# ---------------------------------------------------------------------------


def test_list_own_permissions(api_client, signup_login):
    client, store = api_client
    username, session = signup_login()
    account = store.get_account_by_username(username)
    grant_permission(store, account, NEWS_CREATE)

    resp = client.get(f"/api/v1/account/{account.id}/permissions", headers=bearer(session))
    assert resp.status_code == 200
    assert resp.json() == ["news.create"]


def test_list_other_permissions_requires_grant(api_client, signup_login):
    client, store = api_client
    username, session = signup_login()
    other, _ = signup_login()
    path = f"/api/v1/account/{_account_id(store, other)}/permissions"

    assert client.get(path, headers=bearer(session)).status_code == 401

    grant_permission(store, store.get_account_by_username(username), ACCOUNT_PERMISSION_GET)
    resp = client.get(path, headers=bearer(session))
    assert resp.status_code == 200
    assert resp.json() == []


def test_list_permissions_of_unknown_account(api_client, signup_login):
    client, store = api_client
    username, session = signup_login()
    grant_permission(store, store.get_account_by_username(username), ACCOUNT_PERMISSION_GET)
    resp = client.get("/api/v1/account/account:doesnotexist/permissions", headers=bearer(session))
    assert resp.status_code == 200
    assert resp.json() == []


# ---------------------------------------------------------------------------
# Machine sessions
# ---------------------------------------------------------------------------


def test_machine_session_cannot_use_account_routes(api_client):
    client, _ = api_client
    manager = app.state.session_manager
    session = manager.init(SessionTarget.machine("news-service"))
    headers = {"Authorization": f"Bearer {session.id}"}

    assert client.get("/api/v1/account/me", headers=headers).status_code == 401
    # Logout is gated on any session, so machines may end their own.
    resp = client.post("/api/v1/auth/logout", headers=headers)
    assert resp.status_code == 200
    assert manager.get(session.id) is None
