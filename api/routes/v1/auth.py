"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register        -- create account; 201 with tokens
  POST /api/v1/auth/login           -- password login; 200 with tokens
  POST /api/v1/auth/refresh         -- exchange refresh token for access token
  POST /api/v1/auth/logout          -- end caller's session(s) (requires auth)
  GET  /api/v1/auth/me              -- current user (requires auth)
  GET  /api/v1/auth/sessions        -- caller's active sessions (requires auth)
  GET  /api/v1/auth/status          -- anonymous vs authenticated (optional auth)
  GET  /api/v1/auth/users/{id}      -- look up a user (admin or moderator)

Handlers are plain `def`: AuthService does blocking database I/O, and FastAPI
runs sync handlers in its worker thread pool.

Errors: AuthService raises auth.errors types; the AuthError handler in
api/main.py renders them as {success: false, error} with the matching status.
Handlers do not catch them.

Security:
  [H2] POST /login is rate-limited per client address (LOGIN_RATE_LIMIT).
  [C1] AuthService.login() provides timing equalization and a single error
       message for every credential failure.
  [M5] Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter, login_rate_limit
from api.models import (
    ApiResponse,
    AuthResponse,
    AuthStatusResponse,
    LoginRequest,
    LogoutRequest,
    LogoutResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    SessionResponse,
    UserResponse,
)
from auth.dependencies import get_client_ip, get_identity, require_roles, try_get_identity
from auth.models import ROLE_ADMIN, ROLE_MODERATOR, AuthResult, Identity
from auth.service import AuthService

# Auth policy:
# - POST /auth/register, /auth/login, /auth/refresh: public
# - POST /auth/logout, GET /auth/me, GET /auth/sessions: get_identity
# - GET  /auth/status: try_get_identity
# - GET  /auth/users/{id}: require_roles(admin, moderator)
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _auth_payload(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        user=UserResponse.from_user(result.user),
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=result.expires_in,
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=ApiResponse[AuthResponse], status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> ApiResponse[AuthResponse]:
    """Create a password account and open its first session.

    400 on invalid email, short password or blank name; 409 if the email is
    already registered (case-insensitive).
    """
    result = _service(request).register(
        body.email,
        body.password,
        body.name,
        user_agent=request.headers.get("User-Agent"),
        ip_address=get_client_ip(request),
    )
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return ApiResponse[AuthResponse].ok(_auth_payload(result))


@router.post("/auth/login", response_model=ApiResponse[AuthResponse])
@limiter.limit(login_rate_limit)  # [H2] router registers the limited wrapper
def login(request: Request, response: Response, body: LoginRequest) -> ApiResponse[AuthResponse]:
    """Authenticate with email and password.

    Unknown email and wrong password produce the identical 401 body.
    """
    result = _service(request).login(
        body.email,
        body.password,
        user_agent=request.headers.get("User-Agent"),
        ip_address=get_client_ip(request),
    )
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return ApiResponse[AuthResponse].ok(_auth_payload(result))


@router.post("/auth/refresh", response_model=ApiResponse[RefreshResponse])
def refresh(request: Request, response: Response, body: RefreshRequest) -> ApiResponse[RefreshResponse]:
    """Exchange a refresh token for a new access token. The refresh token is not rotated."""
    result = _service(request).refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return ApiResponse[RefreshResponse].ok(
        RefreshResponse(access_token=result.access_token, expires_in=result.expires_in)
    )


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=ApiResponse[LogoutResponse])
def logout(
    request: Request,
    body: Optional[LogoutRequest] = None,
    identity: Identity = Depends(get_identity),
) -> ApiResponse[LogoutResponse]:
    """End one session (session_id given) or all of the caller's sessions.

    The caller's current access token keeps working until it expires; only
    future refreshes are affected.
    """
    session_id = body.session_id if body is not None else None
    removed = _service(request).logout(identity, session_id)
    return ApiResponse[LogoutResponse].ok(LogoutResponse(message="Logged out successfully", sessions_removed=removed))


@router.get("/auth/me", response_model=ApiResponse[UserResponse])
def me(request: Request, identity: Identity = Depends(get_identity)) -> ApiResponse[UserResponse]:
    """Return the authenticated user's record."""
    user = _service(request).get_current_user(identity)
    return ApiResponse[UserResponse].ok(UserResponse.from_user(user))


@router.get("/auth/sessions", response_model=ApiResponse[list[SessionResponse]])
def sessions(request: Request, identity: Identity = Depends(get_identity)) -> ApiResponse[list[SessionResponse]]:
    """List the caller's unexpired sessions, newest first."""
    active = _service(request).list_sessions(identity)
    return ApiResponse[list[SessionResponse]].ok([SessionResponse.from_session(s) for s in active])


@router.get("/auth/status", response_model=ApiResponse[AuthStatusResponse])
def auth_status(identity: Optional[Identity] = Depends(try_get_identity)) -> ApiResponse[AuthStatusResponse]:
    """Report whether the request carried a valid access token. Never 401s."""
    if identity is None:
        return ApiResponse[AuthStatusResponse].ok(AuthStatusResponse(authenticated=False))
    return ApiResponse[AuthStatusResponse].ok(
        AuthStatusResponse(authenticated=True, user_id=identity.user_id, role=identity.role)
    )


@router.get("/auth/users/{user_id}", response_model=ApiResponse[UserResponse])
def get_user(
    request: Request,
    user_id: str,
    identity: Identity = Depends(require_roles(ROLE_ADMIN, ROLE_MODERATOR)),
) -> ApiResponse[UserResponse]:
    """Look up any user by id. Admins and moderators only."""
    user = _service(request).get_user(user_id)
    return ApiResponse[UserResponse].ok(UserResponse.from_user(user))
