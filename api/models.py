"""
API request and response models for AuthGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Every response body is an ApiResponse[T] envelope: {success, data?, error?}.
The type parameter is fixed per route, so the OpenAPI schema documents the
concrete payload of each endpoint.

Secrets never cross this boundary: UserResponse has no password hash field,
so there is nothing to forget to strip.
"""

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Session, User

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class ApiResponse(BaseModel, Generic[T]):
    """Tagged result envelope. success=True carries data; success=False carries error."""

    model_config = ConfigDict(frozen=True)

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: T) -> "ApiResponse[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str) -> "ApiResponse[T]":
        return cls(success=False, error=message)


# ---------------------------------------------------------------------------
# Request models
#
# Sizes are bounded here; content policy (email format, password length,
# blank names) is enforced by AuthService so it applies outside HTTP too.
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    email: str = Field(max_length=255)
    password: str = Field(max_length=255)
    name: str = Field(default="", max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(max_length=255)
    password: str = Field(max_length=255)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh."""

    refresh_token: str = Field(min_length=1, max_length=4096)


class LogoutRequest(BaseModel):
    """Optional body for POST /api/v1/auth/logout. Omit session_id to end every session."""

    session_id: Optional[str] = Field(default=None, max_length=64)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Outward view of a User. Deliberately has no password_hash field."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    avatar_url: Optional[str] = None
    role: str
    email_verified: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            avatar_url=user.avatar_url,
            role=user.role,
            email_verified=user.email_verified,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class SessionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    expires_at: datetime
    created_at: Optional[datetime] = None

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id,
            user_id=session.user_id,
            user_agent=session.user_agent,
            ip_address=session.ip_address,
            expires_at=session.expires_at,
            created_at=session.created_at,
        )


class AuthResponse(BaseModel):
    """Payload for register and login."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # access token lifetime, seconds


class RefreshResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class LogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    sessions_removed: int


class AuthStatusResponse(BaseModel):
    """Payload for GET /api/v1/auth/status (optional auth)."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool
    user_id: Optional[str] = None
    role: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
