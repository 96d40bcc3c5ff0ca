"""
auth/errors.py -- Error taxonomy for the auth core.

Every failure the core can produce is one of six kinds. Each kind carries the
HTTP status the boundary should use, so api/main.py can render any AuthError
with a single exception handler instead of per-route try/except blocks.

Subclasses narrow the reason (ExpiredToken vs InvalidToken) for logging and
tests, but callers that only care about the kind can catch the base class.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error raised by the auth core."""

    kind = "internal_error"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Kinds
# ---------------------------------------------------------------------------


class BadRequest(AuthError):
    kind = "bad_request"
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(AuthError):
    kind = "unauthorized"
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(AuthError):
    kind = "forbidden"
    status_code = 403
    default_message = "Insufficient permissions"


class NotFound(AuthError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found"


class Conflict(AuthError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflict"


class InternalError(AuthError):
    pass


# ---------------------------------------------------------------------------
# Unauthorized reasons
# ---------------------------------------------------------------------------


class InvalidToken(Unauthorized):
    """Malformed, unsigned, wrongly signed, or incomplete token."""

    default_message = "Invalid or expired token"


class ExpiredToken(Unauthorized):
    default_message = "Invalid or expired token"


class InvalidTokenType(Unauthorized):
    default_message = "Invalid token type"


class MalformedHeader(Unauthorized):
    default_message = "Invalid authorization header format"


class InvalidCredentials(Unauthorized):
    # Same message for unknown email, wrong password and OAuth-only accounts.
    default_message = "Invalid email or password"


class UserNotFound(Unauthorized):
    default_message = "User not found"
