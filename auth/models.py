"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store and service do the work. API response models in api/models.py
map from these and decide what leaves the process -- password hashes and
provider tokens never do.

Timestamps are timezone-aware UTC datetimes everywhere in the domain layer.
The store converts at the database boundary.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLE_MODERATOR = "moderator"
ROLES = frozenset({ROLE_ADMIN, ROLE_USER, ROLE_MODERATOR})

TOKEN_ACCESS = "access"
TOKEN_REFRESH = "refresh"
TOKEN_TYPES = frozenset({TOKEN_ACCESS, TOKEN_REFRESH})

OAUTH_PROVIDERS = frozenset({"google", "facebook", "twitter"})


@dataclass
class User:
    """An identity record.

    email is always stored normalized (trimmed, lowercased). password_hash is
    None for OAuth-only accounts, which can never log in with a password.
    created_at / updated_at are filled in by the store on insert.
    """

    id: str
    email: str
    name: str
    role: str = ROLE_USER
    password_hash: str | None = None
    avatar_url: str | None = None
    email_verified: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Session:
    """Server-side record of one refresh-token lineage (one device/client).

    Valid only while now < expires_at.
    """

    id: str
    user_id: str
    expires_at: datetime
    user_agent: str | None = None
    ip_address: str | None = None
    created_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at


@dataclass
class OAuthAccount:
    """A third-party identity linked to a User.

    access_token / refresh_token are the provider's credentials, kept for
    server-side API calls only.
    """

    id: str
    user_id: str
    provider: str
    provider_account_id: str
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Claims recovered from a validated token."""

    sub: str
    email: str
    role: str
    type: str
    iat: datetime
    exp: datetime
    sid: str | None = None


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as resolved from an access token."""

    user_id: str
    email: str
    role: str


@dataclass(frozen=True)
class AuthResult:
    user: User
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in seconds


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    expires_in: int
