"""Unit tests for auth/store.py -- AuthStore over an in-memory SQLite database.

Covers:
- user insert/lookup by id and email, duplicate email rejected by the DB
- session insert/lookup, active listing (expired excluded, newest first)
- single and per-user session deletion, expired-session purge
- OAuth account linking and the (provider, account id) uniqueness rule
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.ids import new_oauth_account_id, new_session_id, new_user_id
from auth.models import OAuthAccount, Session, User
from auth.store import AuthStore


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _make_user(store: AuthStore, email: str = "a@x.com", **kwargs) -> User:
    user = User(id=new_user_id(), email=email, name=kwargs.pop("name", "Ann"), **kwargs)
    user.created_at, user.updated_at = store.create_user(user)
    return user


def _make_session(store: AuthStore, user: User, expires_in: timedelta = timedelta(days=7), **kwargs) -> Session:
    session = Session(id=new_session_id(), user_id=user.id, expires_at=_now() + expires_in, **kwargs)
    session.created_at = store.create_session(session)
    return session


class TestUsers:
    def test_create_and_get_by_id(self, store: AuthStore) -> None:
        user = _make_user(store, password_hash="$2b$04$hash", role="admin")
        loaded = store.get_user_by_id(user.id)
        assert loaded is not None
        assert loaded.email == "a@x.com"
        assert loaded.role == "admin"
        assert loaded.password_hash == "$2b$04$hash"
        assert loaded.email_verified is False

    def test_get_by_email(self, store: AuthStore) -> None:
        user = _make_user(store, email="b@x.com")
        assert store.get_user_by_email("b@x.com").id == user.id

    def test_missing_user_is_none(self, store: AuthStore) -> None:
        assert store.get_user_by_id("user_missing") is None
        assert store.get_user_by_email("nobody@x.com") is None

    def test_timestamps_are_aware_utc(self, store: AuthStore) -> None:
        user = _make_user(store)
        loaded = store.get_user_by_id(user.id)
        assert loaded.created_at.tzinfo is not None
        assert loaded.created_at.utcoffset() == timedelta(0)
        assert abs(loaded.created_at - user.created_at) < timedelta(seconds=1)

    def test_duplicate_email_raises_integrity_error(self, store: AuthStore) -> None:
        _make_user(store, email="dup@x.com")
        with pytest.raises(IntegrityError):
            _make_user(store, email="dup@x.com")

    def test_password_hash_is_optional(self, store: AuthStore) -> None:
        user = _make_user(store, email="oauth@x.com")
        assert store.get_user_by_id(user.id).password_hash is None

    def test_ping(self, store: AuthStore) -> None:
        assert store.ping() is True


class TestSessions:
    def test_create_and_get(self, store: AuthStore) -> None:
        user = _make_user(store)
        session = _make_session(store, user, user_agent="pytest", ip_address="10.0.0.1")
        loaded = store.get_session_by_id(session.id)
        assert loaded.user_id == user.id
        assert loaded.user_agent == "pytest"
        assert loaded.ip_address == "10.0.0.1"
        assert abs(loaded.expires_at - session.expires_at) < timedelta(seconds=1)

    def test_missing_session_is_none(self, store: AuthStore) -> None:
        assert store.get_session_by_id("sess_missing") is None

    def test_session_requires_existing_user(self, store: AuthStore) -> None:
        orphan = Session(id=new_session_id(), user_id="user_missing", expires_at=_now() + timedelta(days=1))
        with pytest.raises(IntegrityError):
            store.create_session(orphan)

    def test_list_active_excludes_expired_and_other_users(self, store: AuthStore) -> None:
        ann = _make_user(store, email="ann@x.com")
        bob = _make_user(store, email="bob@x.com")
        live = _make_session(store, ann)
        _make_session(store, ann, expires_in=timedelta(seconds=-1))
        _make_session(store, bob)
        assert [s.id for s in store.list_active_sessions(ann.id)] == [live.id]

    def test_list_active_newest_first(self, store: AuthStore) -> None:
        user = _make_user(store)
        ids = []
        for _ in range(3):
            ids.append(_make_session(store, user).id)
            time.sleep(0.002)
        assert [s.id for s in store.list_active_sessions(user.id)] == list(reversed(ids))

    def test_list_active_honours_explicit_now(self, store: AuthStore) -> None:
        user = _make_user(store)
        _make_session(store, user, expires_in=timedelta(hours=1))
        assert len(store.list_active_sessions(user.id, _now())) == 1
        assert store.list_active_sessions(user.id, _now() + timedelta(hours=2)) == []

    def test_list_active_empty_for_unknown_user(self, store: AuthStore) -> None:
        assert store.list_active_sessions("user_missing") == []

    def test_delete_session(self, store: AuthStore) -> None:
        user = _make_user(store)
        session = _make_session(store, user)
        assert store.delete_session(session.id) is True
        assert store.get_session_by_id(session.id) is None
        assert store.delete_session(session.id) is False

    def test_delete_user_sessions(self, store: AuthStore) -> None:
        ann = _make_user(store, email="ann@x.com")
        bob = _make_user(store, email="bob@x.com")
        _make_session(store, ann)
        _make_session(store, ann)
        kept = _make_session(store, bob)
        assert store.delete_user_sessions(ann.id) == 2
        assert store.delete_user_sessions(ann.id) == 0
        assert store.get_session_by_id(kept.id) is not None

    def test_purge_expired(self, store: AuthStore) -> None:
        user = _make_user(store)
        live = _make_session(store, user)
        _make_session(store, user, expires_in=timedelta(minutes=-5))
        _make_session(store, user, expires_in=timedelta(days=-1))
        assert store.count_sessions() == 3
        assert store.purge_expired_sessions() == 2
        assert store.count_sessions() == 1
        assert store.get_session_by_id(live.id) is not None


class TestOAuthAccounts:
    def test_link_and_lookup(self, store: AuthStore) -> None:
        user = _make_user(store)
        account = OAuthAccount(
            id=new_oauth_account_id(),
            user_id=user.id,
            provider="facebook",
            provider_account_id="12345",
            access_token="fb-token",
        )
        store.create_oauth_account(account)
        loaded = store.get_oauth_account("facebook", "12345")
        assert loaded.user_id == user.id
        assert loaded.access_token == "fb-token"
        assert store.get_oauth_account("google", "12345") is None

    def test_provider_account_linked_once(self, store: AuthStore) -> None:
        ann = _make_user(store, email="ann@x.com")
        bob = _make_user(store, email="bob@x.com")
        store.create_oauth_account(
            OAuthAccount(id=new_oauth_account_id(), user_id=ann.id, provider="google", provider_account_id="g-1")
        )
        with pytest.raises(IntegrityError):
            store.create_oauth_account(
                OAuthAccount(id=new_oauth_account_id(), user_id=bob.id, provider="google", provider_account_id="g-1")
            )
