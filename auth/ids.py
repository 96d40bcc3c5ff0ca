"""
auth/ids.py -- Type-tagged, time-sortable identifiers.

Format: <prefix>_<26 chars>, e.g. user_01jb9v3w7h8q2x4m6n0p5r7s9t.

Ids are TypeIDs (typeid-python): a UUIDv7 suffix in lowercase Crockford
base32 behind a type prefix. Ids generated in different milliseconds sort in
creation order as plain strings, so "newest first" is a string sort and
primary-key indexes stay append-mostly.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from typeid import TypeID
from typeid.errors import TypeIDException

PREFIX_USER = "user"
PREFIX_SESSION = "sess"
PREFIX_OAUTH_ACCOUNT = "oauth"


def new_id(prefix: str) -> str:
    """Return a fresh identifier tagged with prefix."""
    return str(TypeID(prefix=prefix))


def new_user_id() -> str:
    return new_id(PREFIX_USER)


def new_session_id() -> str:
    return new_id(PREFIX_SESSION)


def new_oauth_account_id() -> str:
    return new_id(PREFIX_OAUTH_ACCOUNT)


def is_valid_type_id(value: str, prefix: str | None = None) -> bool:
    """Return True if value is a well-formed prefixed id, optionally with the given prefix."""
    if not value:
        return False
    try:
        parsed = TypeID.from_string(value)
    except (TypeIDException, ValueError):
        return False
    # from_string fills an empty suffix with a fresh one; require a round trip.
    if not parsed.prefix or str(parsed) != value:
        return False
    return prefix is None or parsed.prefix == prefix
