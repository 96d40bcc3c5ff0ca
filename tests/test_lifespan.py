"""Tests for the API lifespan and the background expired-session sweep.

No async test plugin is used: each test drives its coroutine with asyncio.run().
Stores are SQLite files under tmp_path because the sweep runs the store call in
a worker thread, and a plain :memory: database is private to one connection.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI

import api.main as api_main
from auth.ids import new_session_id, new_user_id
from auth.models import Session, User
from auth.store import AuthStore


def test_shutdown_waits_for_purge_task(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(api_main._settings, "database_url", f"sqlite:///{tmp_path / 'lifespan.db'}")
    target = FastAPI()

    async def run() -> asyncio.Task:
        async with api_main.lifespan(target):
            assert not target.state.purge_task.done()
            assert target.state.token_codec is target.state.auth_service.codec
        return target.state.purge_task

    task = asyncio.run(run())
    assert task.done()
    assert task.cancelled()


def test_purge_loop_removes_expired_sessions(tmp_path) -> None:
    store = AuthStore(f"sqlite:///{tmp_path / 'sweep.db'}")
    try:
        user = User(id=new_user_id(), email="a@x.com", name="Ann")
        store.create_user(user)
        now = datetime.now(timezone.utc)
        store.create_session(Session(id=new_session_id(), user_id=user.id, expires_at=now - timedelta(minutes=1)))
        live = Session(id=new_session_id(), user_id=user.id, expires_at=now + timedelta(days=1))
        store.create_session(live)

        target = FastAPI()
        target.state.auth_store = store

        async def run() -> None:
            task = asyncio.create_task(api_main._purge_loop(target, 0))
            for _ in range(100):
                await asyncio.sleep(0.01)
                if store.count_sessions() == 1:
                    break
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        asyncio.run(run())
        assert store.count_sessions() == 1
        assert store.get_session_by_id(live.id) is not None
    finally:
        store.close()
