"""Tests for the real application lifespan in api/main.py.

The route tests replace the lifespan; this module runs it against a
throwaway SQLite file to check startup housekeeping.
"""

import asyncio
import logging
import time

import pytest
from fastapi import FastAPI

from api.main import lifespan
from auth.sessions import SessionManager
from auth.store import AccountStore
from core.config import get_settings


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'startup.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("OAUTH_CLIENT_ID", "")
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


def test_startup_reports_accounts_and_purges_expired_sessions(db_url: str, caplog) -> None:
    seed = AccountStore(db_url)
    seed.create_local("alice", b"hash", b"salt")
    seed.close()
    stale = SessionManager(db_url, expire_seconds=0)
    stale.establish("acct-1")
    stale.close()
    time.sleep(0.01)

    async def run() -> bool:
        application = FastAPI()
        async with lifespan(application):
            return application.state.federation is None

    with caplog.at_level(logging.INFO, logger="secretnotes.api"):
        federation_disabled = asyncio.run(run())

    assert federation_disabled
    assert "1 accounts, 1 expired sessions purged" in caplog.text
