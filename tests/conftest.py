"""
tests/conftest.py -- Shared test fixtures for PlayPlanet auth tests.

This module provides:
  - store: a fresh in-memory AuthStore with the permission catalog loaded
  - make_account: factory that persists an account with a known password
  - FakeClock / clock: a controllable epoch-seconds clock for SessionManager
  - api_client: TestClient over the real app with an isolated store
  - signup_login: factory that signs up through the API and logs in

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for api_client because TestClient runs route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

Environment variables must be set before any api/auth/core import, because
get_settings() is cached on first call.
"""

from __future__ import annotations

import itertools
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any api/auth/core import so the cached Settings see them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.authentication import new_account
from auth.models import Account
from auth.permissions import init_permissions
from auth.session import SessionManager
from auth.store import AuthStore

PASSWORD = "correct horse battery staple"

_usernames = itertools.count(1)


def unique_username(prefix: str = "player") -> str:
    return f"{prefix}{next(_usernames)}"


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock whose time only moves when a test advances it."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> Generator[AuthStore, None, None]:
    s = AuthStore("sqlite:///:memory:")
    init_permissions(s)
    yield s
    s.close()


@pytest.fixture
def make_account(store: AuthStore) -> Callable[..., Account]:
    """Return a factory that persists an account whose password is PASSWORD by default."""

    def _make(username: str | None = None, password: str = PASSWORD) -> Account:
        return store.create_account(new_account(username or unique_username(), password))

    return _make


# ---------------------------------------------------------------------------
# API fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(auth_store: AuthStore):
    """Return a lifespan that wires the pre-created test store into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        init_permissions(auth_store)
        app.state.auth_store = auth_store
        app.state.session_manager = SessionManager(auth_store)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, AuthStore], None, None]:
    """Yield (client, store) for API integration tests.

    Tests hit the real route handlers but use an isolated in-memory store
    named after the test module.
    """
    name = request.module.__name__.rsplit(".", 1)[-1]
    auth_store = AuthStore(f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true")

    app.router.lifespan_context = _patch_lifespan(auth_store)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, auth_store

    auth_store.close()


@pytest.fixture
def signup_login(api_client) -> Callable[..., tuple[str, dict]]:
    """Return a factory that signs up a fresh account and logs it in.

    The factory returns (username, session JSON).
    """
    client, _ = api_client

    def _signup_login(password: str = PASSWORD) -> tuple[str, dict]:
        username = unique_username()
        resp = client.post("/api/v1/account/signup", json={"username": username, "password": password})
        assert resp.status_code == 201, resp.text
        resp = client.post("/api/v1/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        return username, resp.json()

    return _signup_login


def bearer(session: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {session['id']}"}
