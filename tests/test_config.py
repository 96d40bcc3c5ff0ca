"""Unit tests for core/config.py -- the JWT_SECRET policy and derived settings.

Settings are built directly (not through get_settings()) with _env_file=None so
a developer's local .env cannot leak into the results.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings

GOOD_SECRET = "k" * 32


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("ENVIRONMENT", "JWT_SECRET", "ACCESS_TOKEN_EXPIRE_SECONDS", "FRONTEND_URL"):
        monkeypatch.delenv(name, raising=False)


def test_production_requires_secret() -> None:
    with pytest.raises(ValidationError, match="JWT_SECRET is required"):
        Settings(_env_file=None)


def test_development_generates_secret(monkeypatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "development")
    settings = Settings(_env_file=None)
    assert settings.is_development
    assert len(settings.jwt_secret) >= 32


def test_short_secret_rejected_in_any_mode(monkeypatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("JWT_SECRET", "too-short")
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(_env_file=None)


def test_production_with_secret(monkeypatch) -> None:
    monkeypatch.setenv("JWT_SECRET", GOOD_SECRET)
    settings = Settings(_env_file=None)
    assert not settings.is_development
    assert settings.jwt_secret == GOOD_SECRET
    assert settings.access_token_expire_seconds == 900
    assert settings.refresh_token_expire_seconds == 7 * 24 * 3600
    assert settings.bind_refresh_to_session is False


def test_non_positive_lifetime_rejected(monkeypatch) -> None:
    monkeypatch.setenv("JWT_SECRET", GOOD_SECRET)
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_SECONDS", "0")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_allowed_origins_deduplicated(monkeypatch) -> None:
    monkeypatch.setenv("JWT_SECRET", GOOD_SECRET)
    monkeypatch.setenv("FRONTEND_URL", "http://localhost:3000")
    assert Settings(_env_file=None).allowed_origins == ["http://localhost:3000", "http://localhost:5173"]
