"""
auth/dependencies.py -- Request authorization: bearer-token checks and role gates.

authorize() is the framework-free core: give it the request headers and a
TokenCodec and it returns the caller's Identity, None (optional mode), or
raises Unauthorized / Forbidden. The FastAPI Depends() helpers below wrap it:

  get_identity()       -- required auth. Raises 401 if unauthenticated.
  try_get_identity()   -- optional auth. Returns None on any failure.
  require_roles(*r)    -- role gate layered on get_identity(). Raises 403.

The resolved Identity is the dependency's return value and reaches handlers
as an explicit parameter. Nothing is stashed in request.state.

Only access tokens are accepted here. A refresh token presented as a bearer
credential is rejected like any other invalid token.

Layer rule: no imports from api/ or core/. This module may import from
fastapi because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Mapping

from fastapi import Depends, Request

from auth.errors import Forbidden, Unauthorized
from auth.models import TOKEN_ACCESS, Identity
from auth.tokens import TokenCodec, extract_bearer

logger = logging.getLogger("authgate.auth.dependencies")


def authorize(
    headers: Mapping[str, str],
    codec: TokenCodec,
    required: bool = True,
    roles: Collection[str] | None = None,
) -> Identity | None:
    """Resolve the caller from an Authorization: Bearer header.

    required=True:  missing header, malformed bearer, invalid/expired token or
                    a non-access token raise Unauthorized.
    required=False: any of those return None instead.
    roles:          when given, an authenticated caller whose role is not a
                    member raises Forbidden. Anonymous callers never pass a
                    role gate.
    """
    header = headers.get("authorization") or headers.get("Authorization")
    identity: Identity | None = None
    try:
        if not header:
            raise Unauthorized("Missing authorization header")
        token = extract_bearer(header)
        claims = codec.validate(token, expected_type=TOKEN_ACCESS)
        identity = Identity(user_id=claims.sub, email=claims.email, role=claims.role)
    except Unauthorized as exc:
        if required or roles is not None:
            logger.debug("Rejected bearer credential: %s", exc.message)
            raise
        return None

    if roles is not None and identity.role not in roles:
        raise Forbidden()
    return identity


def get_client_ip(request: Request) -> str:
    """Best-effort client address: X-Forwarded-For[0], then X-Real-IP, then the peer."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        first = forwarded.split(",", 1)[0].strip()
        if first:
            return first
    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip
    return request.client.host if request.client else ""


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def _codec(request: Request) -> TokenCodec:
    return request.app.state.token_codec


def get_identity(request: Request) -> Identity:
    """Require an access token. Raises Unauthorized (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_identity)): ...
    """
    return authorize(request.headers, _codec(request), required=True)


def try_get_identity(request: Request) -> Identity | None:
    """Optional auth: the caller's Identity, or None if absent or invalid. Never raises."""
    return authorize(request.headers, _codec(request), required=False)


def require_roles(*roles: str) -> Callable[..., Identity]:
    """Build a dependency that admits only callers whose role is in roles.

    Runs after get_identity(), so unauthenticated callers get 401 before the
    role check can return 403.

        @router.get("/admin")
        def route(identity: Identity = Depends(require_roles("admin"))): ...
    """
    allowed = frozenset(roles)

    def _role_gate(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in allowed:
            raise Forbidden()
        return identity

    return _role_gate
