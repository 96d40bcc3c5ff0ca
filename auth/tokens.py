"""
auth/tokens.py -- Signed, time-bound token issuance and validation.

Security design decisions:
  JWT: python-jose with an HMAC algorithm (HS256 by default). Tokens carry
       sub (user id), email, role, type ("access" | "refresh"), iat and exp.
       The secret is constructor state on TokenCodec -- never a module global
       -- so tests and multi-tenant callers can hold codecs with different
       secrets side by side.

  Algorithm confusion: decode() only accepts HS256/HS384/HS512. A token whose
       header names "none" or an asymmetric algorithm (RS256, ES256, ...) is
       rejected before any signature check, so a public key can never be
       abused as an HMAC secret.

  Expiry: checked here against the codec's clock rather than inside jose, so
       the rule is exactly "valid while now < exp" and tests can move time.

  Token type: an access token is never accepted where a refresh token is
       required, and vice versa. Callers pass expected_type to validate().

Errors map onto auth.errors: InvalidToken (malformed, unsigned, wrong
signature, missing claims), ExpiredToken, InvalidTokenType, MalformedHeader.
All are Unauthorized subclasses.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import ExpiredToken, InvalidToken, InvalidTokenType, MalformedHeader
from auth.models import ROLES, TOKEN_ACCESS, TOKEN_REFRESH, TOKEN_TYPES, TokenClaims, User

logger = logging.getLogger("authgate.auth.tokens")

ACCESS_TOKEN_TTL = timedelta(minutes=15)
REFRESH_TOKEN_TTL = timedelta(days=7)

HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")
BEARER_PREFIX = "Bearer "

# jose checks the signature and sub; exp is compared in validate() against the
# codec clock. require_exp would switch jose's own wall-clock exp check back on,
# so iat/exp presence is enforced in _claims_from_payload instead.
_DECODE_OPTIONS = {
    "verify_exp": False,
    "require_sub": True,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def extract_bearer(header_value: str | None) -> str:
    """Return the token from an "Authorization: Bearer <token>" header value.

    The prefix is exact and case-sensitive ("Bearer " with one space) and the
    remainder must be non-empty. Raises MalformedHeader otherwise.
    """
    if not header_value or not header_value.startswith(BEARER_PREFIX):
        raise MalformedHeader()
    token = header_value[len(BEARER_PREFIX) :]
    if not token:
        raise MalformedHeader()
    return token


class TokenCodec:
    """Issues and validates HMAC-signed JWTs under a single secret.

    Usage:
        codec = TokenCodec(secret)
        token = codec.issue_access(user)
        claims = codec.validate(token, expected_type="access")
    """

    def __init__(
        self,
        secret: str,
        access_ttl: timedelta = ACCESS_TOKEN_TTL,
        refresh_ttl: timedelta = REFRESH_TOKEN_TTL,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret:
            raise ValueError("TokenCodec requires a non-empty secret.")
        if algorithm not in HMAC_ALGORITHMS:
            raise ValueError(f"Unsupported signing algorithm {algorithm!r}; expected one of {HMAC_ALGORITHMS}.")
        self._secret = secret
        self._algorithm = algorithm
        self._clock = clock
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @property
    def access_expires_in(self) -> int:
        """Access token lifetime in whole seconds (the expires_in field)."""
        return int(self.access_ttl.total_seconds())

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(
        self,
        subject_id: str,
        email: str,
        role: str,
        token_type: str,
        ttl: timedelta,
        session_id: str | None = None,
    ) -> str:
        """Sign a token with claims {sub, email, role, type, iat, exp[, sid]}."""
        if token_type not in TOKEN_TYPES:
            raise ValueError(f"Unknown token type {token_type!r}")
        now = int(self._clock().timestamp())
        claims = {
            "sub": subject_id,
            "email": email,
            "role": role,
            "type": token_type,
            "iat": now,
            "exp": now + int(ttl.total_seconds()),
        }
        if session_id is not None:
            claims["sid"] = session_id
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def issue_access(self, user: User) -> str:
        return self.issue(user.id, user.email, user.role, TOKEN_ACCESS, self.access_ttl)

    def issue_refresh(self, user: User, session_id: str | None = None) -> str:
        return self.issue(user.id, user.email, user.role, TOKEN_REFRESH, self.refresh_ttl, session_id)

    # ------------------------------------------------------------------
    # Validate
    # ------------------------------------------------------------------

    def validate(self, token: str, expected_type: str | None = None) -> TokenClaims:
        """Verify signature, expiry, claim shape and (optionally) token type.

        Raises:
            InvalidToken:     malformed, unsigned, non-HMAC, bad signature, or
                              missing/ill-typed claims.
            ExpiredToken:     now >= exp.
            InvalidTokenType: type claim differs from expected_type.
        """
        try:
            payload = jwt.decode(token, self._secret, algorithms=list(HMAC_ALGORITHMS), options=_DECODE_OPTIONS)
        except JWTError as exc:
            logger.debug("Token rejected: %s", exc)
            raise InvalidToken() from exc

        claims = _claims_from_payload(payload)
        if self._clock() >= claims.exp:
            raise ExpiredToken()
        if expected_type is not None and claims.type != expected_type:
            raise InvalidTokenType()
        return claims


def _claims_from_payload(payload: dict) -> TokenClaims:
    email = payload.get("email")
    role = payload.get("role")
    token_type = payload.get("type")
    iat = payload.get("iat")
    exp = payload.get("exp")
    sid = payload.get("sid")
    if not isinstance(email, str) or role not in ROLES or token_type not in TOKEN_TYPES:
        raise InvalidToken()
    if isinstance(iat, bool) or isinstance(exp, bool) or not isinstance(iat, int) or not isinstance(exp, int):
        raise InvalidToken()
    if sid is not None and not isinstance(sid, str):
        raise InvalidToken()
    return TokenClaims(
        sub=payload["sub"],
        email=email,
        role=role,
        type=token_type,
        iat=datetime.fromtimestamp(iat, tz=timezone.utc),
        exp=datetime.fromtimestamp(exp, tz=timezone.utc),
        sid=sid,
    )
