"""
tests/conftest.py -- Shared test fixtures for Secret Notes.

This module provides:
  - store / sessions / hasher: isolated in-memory components for unit tests
  - _make_test_components(): named shared-memory DBs for integration tests
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - web_client: TestClient with follow_redirects=False for route tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
integration tests because TestClient runs sync route handlers in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

The DEBUG env var must be set before any api/ import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import httpx
import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.gate import AuthorizationGate
from auth.local import LocalAuthStrategy
from auth.passwords import PasswordHasher
from auth.sessions import SessionManager
from auth.store import AccountStore
from core.config import get_settings

PROFILE_URL = "https://idp.example/userinfo"
AUTHORIZE_URL = "https://idp.example/authorize?client_id=test&state=abc123"

# ---------------------------------------------------------------------------
# Unit-test components
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def sessions() -> Generator[SessionManager, None, None]:
    s = SessionManager("sqlite:///:memory:", expire_seconds=3600)
    yield s
    s.close()


@pytest.fixture
def hasher() -> PasswordHasher:
    # Minimum bcrypt cost keeps the suite fast.
    return PasswordHasher(rounds=4)


@pytest.fixture
def local_auth(store: AccountStore, hasher: PasswordHasher) -> LocalAuthStrategy:
    return LocalAuthStrategy(store, hasher)


def make_fake_oauth_client(
    profile: dict | None = None,
    profile_status: int = 200,
    exchange_error: Exception | None = None,
) -> MagicMock:
    """Build a stand-in for an authlib StarletteOAuth2App.

    No network: the authorization URL, the token exchange and the profile
    request are all canned.
    """
    client = MagicMock()
    client.create_authorization_url = AsyncMock(return_value={"url": AUTHORIZE_URL, "state": "abc123"})
    client.save_authorize_data = AsyncMock(return_value=None)
    if exchange_error is not None:
        client.authorize_access_token = AsyncMock(side_effect=exchange_error)
    else:
        client.authorize_access_token = AsyncMock(return_value={"access_token": "at", "token_type": "Bearer"})
    client.get = AsyncMock(
        return_value=httpx.Response(
            profile_status,
            json=profile if profile is not None else {},
            request=httpx.Request("GET", PROFILE_URL),
        )
    )
    return client


@pytest.fixture
def fake_oauth_client():
    """Factory fixture: fake_oauth_client(profile=..., profile_status=..., exchange_error=...)."""
    return make_fake_oauth_client


# ---------------------------------------------------------------------------
# Integration helpers
# ---------------------------------------------------------------------------


def _make_test_components(db_suffix: str) -> tuple[AccountStore, SessionManager]:
    """Create a store and session manager over one named shared-memory DB."""
    url = f"sqlite:///file:test_{db_suffix}?mode=memory&cache=shared&uri=true"
    return AccountStore(url), SessionManager(url, expire_seconds=3600)


def _patch_lifespan(store: AccountStore, sessions: SessionManager, federation=None):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test components into app.state so TestClient routes see
    isolated test DBs rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = get_settings()
        app.state.account_store = store
        app.state.session_manager = sessions
        app.state.local_auth = LocalAuthStrategy(store, PasswordHasher(rounds=4))
        app.state.gate = AuthorizationGate(store)
        app.state.federation = federation
        yield

    return test_lifespan


@pytest.fixture
def web_client() -> Generator[tuple[TestClient, AccountStore, SessionManager], None, None]:
    """Yield (client, store, sessions) for route tests.

    Function-scoped: every test starts with an empty database and an empty
    cookie jar. follow_redirects=False is essential: tests assert on redirect
    locations, which are invisible once the client follows them.
    """
    store, sessions = _make_test_components(uuid.uuid4().hex)
    app.router.lifespan_context = _patch_lifespan(store, sessions)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client, store, sessions

    sessions.close()
    store.close()
