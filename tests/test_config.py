"""Unit tests for core/config.py -- SECRET_KEY policy and provider toggle."""

import pytest
from pydantic import ValidationError

from core.config import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    monkeypatch.delenv("DEBUG", raising=False)


def test_production_requires_secret_key() -> None:
    with pytest.raises(ValidationError):
        Settings(debug=False, secret_key="", _env_file=None)


def test_short_secret_key_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(debug=True, secret_key="too-short", _env_file=None)


def test_debug_generates_secret_key() -> None:
    settings = Settings(debug=True, secret_key="", _env_file=None)
    assert len(settings.secret_key) >= 32


def test_oauth_enabled_needs_id_and_secret() -> None:
    base = {"secret_key": "s" * 32, "_env_file": None}
    assert Settings(**base).oauth_enabled is False
    assert Settings(oauth_client_id="id", **base).oauth_enabled is False
    assert Settings(oauth_client_id="id", oauth_client_secret="secret", **base).oauth_enabled is True
