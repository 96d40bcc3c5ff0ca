"""
auth/validation.py -- Input normalization and acceptance policy.

These helpers run inside AuthService, not in the Pydantic request models, so
the same policy applies whether the service is driven by HTTP, the CLI, or a
test. The request models only bound raw sizes.
"""

from __future__ import annotations

import re

MIN_PASSWORD_LENGTH = 8
# bcrypt only consumes the first 72 bytes of its input; longer passwords would
# silently share a hash with their 72-byte prefix.
MAX_PASSWORD_BYTES = 72

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str) -> str:
    """Trim and lowercase. Apply before every lookup and write."""
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def is_valid_password(password: str) -> bool:
    """At least 8 characters and at most 72 bytes of UTF-8. No complexity rules."""
    return len(password) >= MIN_PASSWORD_LENGTH and len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES


def is_valid_name(name: str) -> bool:
    return bool(name and name.strip())
