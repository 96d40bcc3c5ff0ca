"""
auth/passwords.py -- Password hashing and verification.

Passwords: bcrypt directly (no passlib wrapper). bcrypt embeds a random
per-call salt and its cost factor in the output, so hashing the same password
twice yields different strings, and the cost factor makes brute-forcing
low-entropy passwords expensive.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection feeds bcrypt a password longer than 72 bytes, which bcrypt
4.x+ rejects with an explicit error.

Timing equalization [C1]: when the account does not exist or has no password,
the caller runs verify_dummy() so the response time matches a real bcrypt
check and does not reveal whether the email is registered.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from functools import lru_cache

import bcrypt

DEFAULT_ROUNDS = 12


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return a bcrypt hash of plain.

    Callers enforce the 72-byte ceiling (auth.validation.is_valid_password);
    bcrypt 5 raises ValueError beyond it.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if plain matches hashed. Never raises.

    Malformed hashes, missing hashes and over-long inputs all return False.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


@lru_cache(maxsize=4)
def _dummy_hash(rounds: int) -> str:
    return hash_password("authgate_timing_dummy", rounds)


def verify_dummy(plain: str, rounds: int = DEFAULT_ROUNDS) -> None:
    """Burn one bcrypt verification at the given cost. Result is discarded."""
    verify_password(plain, _dummy_hash(rounds))
