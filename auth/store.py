"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. AuthStore is the repository for users,
sessions and linked OAuth accounts; _row_to_user / _row_to_session /
_row_to_oauth_account are the mappers. Service and route code never touches
SQL directly.

This is the storage collaborator the auth core depends on. Contract:
  get_user_by_id / get_user_by_email     -> User | None
  create_user(user)                      -> (created_at, updated_at);
                                            IntegrityError on duplicate email
  create_session(session)                -> created_at
  get_session_by_id(id)                  -> Session | None
  list_active_sessions(user_id)          -> newest first, expired excluded
  delete_session(id)                     -> False if no such session

Concurrency: no in-process locks. Email uniqueness is a UNIQUE constraint, so
two concurrent registrations for the same address cannot both succeed; the
loser gets IntegrityError and the service maps it to Conflict.

Timestamps: the domain uses aware UTC datetimes. Columns hold naive UTC so
SQLite and PostgreSQL compare them the same way. _to_db / _from_db convert.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import OAuthAccount, Session, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(64), primary_key=True),  # user_<typeid>
    Column("email", String(255), nullable=False, unique=True),  # normalized
    Column("password_hash", Text),  # NULL for OAuth-only users
    Column("name", String(255), nullable=False),
    Column("avatar_url", Text),
    Column("role", String(20), nullable=False, server_default="user"),
    Column("email_verified", Boolean, nullable=False, server_default="0"),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),  # sess_<typeid>
    Column("user_id", String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("user_agent", Text),
    Column("ip_address", String(45)),
    Column("expires_at", DateTime, nullable=False),
    Column("created_at", DateTime, nullable=False),
    Index("ix_sessions_user_id", "user_id"),
    Index("ix_sessions_expires_at", "expires_at"),
)

_oauth_accounts = Table(
    "oauth_accounts",
    _metadata,
    Column("id", String(64), primary_key=True),  # oauth_<typeid>
    Column("user_id", String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("provider", String(20), nullable=False),
    Column("provider_account_id", String(255), nullable=False),
    Column("access_token", Text),
    Column("refresh_token", Text),
    Column("expires_at", DateTime),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
    UniqueConstraint("provider", "provider_account_id", name="uq_oauth_provider_account"),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign keys on every new SQLite connection.

    SQLite PRAGMAs are per-connection and not inherited from the pool, so this
    runs on each connect. WAL lets readers proceed while a write is in flight.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuthStore:
    """Repository for User, Session and OAuthAccount records.

    Usage:
        store = AuthStore("sqlite:///auth.db")
        store.create_user(User(id=new_user_id(), email="a@x.com", name="Ann"))
        user = store.get_user_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> tuple[datetime, datetime]:
        """Insert a user and return (created_at, updated_at).

        Raises sqlalchemy.exc.IntegrityError if the email is already taken.
        The caller normalizes the email first; the UNIQUE constraint is on the
        normalized value.
        """
        now = _utcnow()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user.id,
                    email=user.email,
                    password_hash=user.password_hash,
                    name=user.name,
                    avatar_url=user.avatar_url,
                    role=user.role,
                    email_verified=user.email_verified,
                    created_at=_to_db(now),
                    updated_at=_to_db(now),
                )
            )
            conn.commit()
        return now, now

    def get_user_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_email(self, email: str) -> User | None:
        """Look up a user by normalized email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session: Session) -> datetime:
        """Insert a session and return its created_at."""
        now = _utcnow()
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session.id,
                    user_id=session.user_id,
                    user_agent=session.user_agent,
                    ip_address=session.ip_address,
                    expires_at=_to_db(session.expires_at),
                    created_at=_to_db(now),
                )
            )
            conn.commit()
        return now

    def get_session_by_id(self, session_id: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_active_sessions(self, user_id: str, now: datetime | None = None) -> list[Session]:
        """Return the user's unexpired sessions, newest first.

        Ties on created_at fall back to id, which is time-sortable.
        """
        cutoff = _to_db(now or _utcnow())
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select()
                .where((_sessions.c.user_id == user_id) & (_sessions.c.expires_at > cutoff))
                .order_by(_sessions.c.created_at.desc(), _sessions.c.id.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def delete_session(self, session_id: str) -> bool:
        """Delete one session. Returns False if it did not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0

    def delete_user_sessions(self, user_id: str) -> int:
        """Delete every session owned by user_id. Returns the number removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def count_sessions(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_sessions)).scalar() or 0

    def purge_expired_sessions(self, now: datetime | None = None) -> int:
        """Delete sessions whose expires_at has passed. Returns rows removed."""
        cutoff = _to_db(now or _utcnow())
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= cutoff))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # OAuth accounts (storage only; no login flow uses them yet)
    # ------------------------------------------------------------------

    def create_oauth_account(self, account: OAuthAccount) -> tuple[datetime, datetime]:
        """Link a provider identity to a user.

        Raises IntegrityError if (provider, provider_account_id) is already linked.
        """
        now = _utcnow()
        with self.engine.connect() as conn:
            conn.execute(
                _oauth_accounts.insert().values(
                    id=account.id,
                    user_id=account.user_id,
                    provider=account.provider,
                    provider_account_id=account.provider_account_id,
                    access_token=account.access_token,
                    refresh_token=account.refresh_token,
                    expires_at=_to_db(account.expires_at),
                    created_at=_to_db(now),
                    updated_at=_to_db(now),
                )
            )
            conn.commit()
        return now, now

    def get_oauth_account(self, provider: str, provider_account_id: str) -> OAuthAccount | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _oauth_accounts.select().where(
                    (_oauth_accounts.c.provider == provider)
                    & (_oauth_accounts.c.provider_account_id == provider_account_id)
                )
            ).fetchone()
        return _row_to_oauth_account(row) if row is not None else None

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        role=row.role,
        password_hash=row.password_hash,
        avatar_url=row.avatar_url,
        email_verified=bool(row.email_verified),
        created_at=_from_db(row.created_at),
        updated_at=_from_db(row.updated_at),
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        user_agent=row.user_agent,
        ip_address=row.ip_address,
        expires_at=_from_db(row.expires_at),
        created_at=_from_db(row.created_at),
    )


def _row_to_oauth_account(row) -> OAuthAccount:
    return OAuthAccount(
        id=row.id,
        user_id=row.user_id,
        provider=row.provider,
        provider_account_id=row.provider_account_id,
        access_token=row.access_token,
        refresh_token=row.refresh_token,
        expires_at=_from_db(row.expires_at),
        created_at=_from_db(row.created_at),
        updated_at=_from_db(row.updated_at),
    )
