"""
tests/conftest.py -- Shared test fixtures for AuthGate.

This module provides:
  - store / codec / service: unit-level fixtures over a private in-memory DB
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - api_client: TestClient over the real app with an isolated store

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the process.

ENVIRONMENT must be set before any api/core import so get_settings()
auto-generates JWT_SECRET in development mode instead of raising. bcrypt
rounds are lowered to the minimum so hashing does not dominate test time.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass

# CRITICAL: set before any api/core import.
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_auth_service
from auth.service import AuthService
from auth.store import AuthStore
from auth.tokens import TokenCodec
from core.config import get_settings

TEST_SECRET = "test-secret-" + "x" * 40
TEST_ROUNDS = 4


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AuthStore, None, None]:
    """Fresh private in-memory AuthStore per test."""
    s = AuthStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(TEST_SECRET)


@pytest.fixture
def service(store: AuthStore, codec: TokenCodec) -> AuthService:
    return AuthService(store, codec, bcrypt_rounds=TEST_ROUNDS)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    store: AuthStore
    service: AuthService


def _patch_lifespan(store: AuthStore, service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown can cancel a real
    asyncio.Task, as the production lifespan does.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_store = store
        app.state.auth_service = service
        app.state.token_codec = service.codec
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()
        with suppress(asyncio.CancelledError):
            await app.state.purge_task

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness for API integration tests.

    One isolated shared-memory DB per test module, named after the module so
    modules never see each other's users.
    """
    db_name = request.module.__name__.replace(".", "_")
    store = AuthStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    service = build_auth_service(get_settings(), store)

    app.router.lifespan_context = _patch_lifespan(store, service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, store=store, service=service)

    store.close()
