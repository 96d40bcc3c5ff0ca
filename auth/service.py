"""
auth/service.py -- Authentication use cases: register, login, refresh, logout,
current user and active sessions.

AuthService orchestrates the credential verifier (auth.passwords), the token
codec (auth.tokens), the input policy (auth.validation) and the storage
collaborator (auth.store). Every operation is a single request/response; no
state is kept between calls.

Error policy:
  Validation and authorization failures are raised as auth.errors types at
  the point they are detected. Storage errors other than "row absent" and the
  unique-email violation become InternalError (original exception chained and
  logged). Nothing retries.

Account enumeration [C1]:
  login() raises the same InvalidCredentials for an unknown email, a wrong
  password and a password-less (OAuth-only) account, and runs a dummy bcrypt
  check on the first and last so the timing matches too.

Revocation model:
  Logout deletes session records. Access tokens are not revocable and stay
  valid until their own exp (at most 15 minutes). Refresh tokens are
  stateless unless bind_refresh_to_session is set, in which case each refresh
  token carries its session id and refresh() requires that session to be live.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    BadRequest,
    Conflict,
    Forbidden,
    InternalError,
    InvalidCredentials,
    InvalidToken,
    NotFound,
    UserNotFound,
)
from auth.ids import new_session_id, new_user_id
from auth.models import ROLE_USER, ROLES, TOKEN_REFRESH, AuthResult, Identity, RefreshResult, Session, User
from auth.passwords import DEFAULT_ROUNDS, hash_password, verify_dummy, verify_password
from auth.store import AuthStore
from auth.tokens import TokenCodec
from auth.validation import is_valid_email, is_valid_name, is_valid_password, normalize_email

logger = logging.getLogger("authgate.auth.service")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    """Authentication use cases over an AuthStore and a TokenCodec.

    Usage:
        service = AuthService(store, TokenCodec(secret))
        result = service.register("a@x.com", "password1", "Ann")
        identity = Identity(result.user.id, result.user.email, result.user.role)
        service.list_sessions(identity)
    """

    def __init__(
        self,
        store: AuthStore,
        codec: TokenCodec,
        bcrypt_rounds: int = DEFAULT_ROUNDS,
        bind_refresh_to_session: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.codec = codec
        self.bcrypt_rounds = bcrypt_rounds
        self.bind_refresh_to_session = bind_refresh_to_session
        self._clock = clock

    # ------------------------------------------------------------------
    # Register / login
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        name: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> AuthResult:
        """Create a password account (role "user") and open its first session.

        Raises BadRequest on invalid input and Conflict if the email (compared
        case-insensitively) is already registered.
        """
        user = self.create_user(email, password, name)
        return self._open_session(user, user_agent, ip_address)

    def create_user(self, email: str, password: str, name: str, role: str = ROLE_USER) -> User:
        """Validate input and insert a password account. Opens no session.

        register() uses this with the default role; operators use it through
        the CLI to bootstrap admins and moderators.
        """
        email = normalize_email(email)
        if not is_valid_email(email):
            raise BadRequest("Invalid email address")
        if not is_valid_password(password):
            raise BadRequest("Password must be at least 8 characters (and at most 72 bytes)")
        if not is_valid_name(name):
            raise BadRequest("Name is required")
        if role not in ROLES:
            raise BadRequest(f"Unknown role {role!r}")

        if self._call_store(self.store.get_user_by_email, email) is not None:
            raise Conflict("Email already registered")

        user = User(
            id=new_user_id(),
            email=email,
            name=name.strip(),
            role=role,
            password_hash=hash_password(password, self.bcrypt_rounds),
            email_verified=False,
        )
        try:
            user.created_at, user.updated_at = self.store.create_user(user)
        except IntegrityError as exc:
            # A concurrent registration won the UNIQUE(email) race.
            raise Conflict("Email already registered") from exc
        except SQLAlchemyError as exc:
            logger.exception("create_user failed")
            raise InternalError("Failed to create user") from exc

        logger.info("Created user %s (role=%s)", user.id, role)
        return user

    def login(
        self,
        email: str,
        password: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> AuthResult:
        """Verify a password and open a new session.

        Raises InvalidCredentials for every credential failure, whatever the cause.
        """
        email = normalize_email(email)
        user = self._call_store(self.store.get_user_by_email, email)
        if user is None or user.password_hash is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            verify_dummy(password, self.bcrypt_rounds)
            logger.warning("Failed login (ip=%s)", ip_address or "unknown")
            raise InvalidCredentials()
        if not verify_password(password, user.password_hash):
            logger.warning("Failed login for user %s (ip=%s)", user.id, ip_address or "unknown")
            raise InvalidCredentials()

        return self._open_session(user, user_agent, ip_address)

    def _open_session(self, user: User, user_agent: str | None, ip_address: str | None) -> AuthResult:
        """Issue an access/refresh pair and record the refresh lineage as a Session."""
        session = Session(
            id=new_session_id(),
            user_id=user.id,
            expires_at=self._clock() + self.codec.refresh_ttl,
            user_agent=user_agent or None,
            ip_address=ip_address or None,
        )
        access_token = self.codec.issue_access(user)
        refresh_token = self.codec.issue_refresh(user, session.id if self.bind_refresh_to_session else None)
        try:
            session.created_at = self.store.create_session(session)
        except SQLAlchemyError as exc:
            logger.exception("create_session failed for user %s", user.id)
            raise InternalError("Failed to create session") from exc

        return AuthResult(
            user=user,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.codec.access_expires_in,
        )

    # ------------------------------------------------------------------
    # Refresh / logout
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str) -> RefreshResult:
        """Mint a new access token from a refresh token.

        Raises InvalidToken / ExpiredToken / InvalidTokenType from the codec,
        UserNotFound if the subject no longer exists, and (with session
        binding on) InvalidToken if the session was deleted or has expired.
        """
        claims = self.codec.validate(refresh_token, expected_type=TOKEN_REFRESH)

        if self.bind_refresh_to_session:
            if claims.sid is None:
                raise InvalidToken()
            session = self._call_store(self.store.get_session_by_id, claims.sid)
            if session is None or session.user_id != claims.sub or not session.is_active(self._clock()):
                raise InvalidToken("Session has been revoked or has expired")

        user = self._call_store(self.store.get_user_by_id, claims.sub)
        if user is None:
            raise UserNotFound()

        return RefreshResult(access_token=self.codec.issue_access(user), expires_in=self.codec.access_expires_in)

    def logout(self, identity: Identity, session_id: str | None = None) -> int:
        """Delete the caller's sessions and return how many were removed.

        With session_id, only that session is deleted; it must belong to the
        caller (Forbidden otherwise) and must exist (NotFound otherwise).
        Already-issued access tokens remain valid until they expire.
        """
        if session_id is None:
            removed = self._call_store(self.store.delete_user_sessions, identity.user_id)
            logger.info("Logged out user %s (%d sessions removed)", identity.user_id, removed)
            return removed

        session = self._call_store(self.store.get_session_by_id, session_id)
        if session is None:
            raise NotFound("Session not found")
        if session.user_id != identity.user_id:
            raise Forbidden("Session belongs to another user")
        if not self._call_store(self.store.delete_session, session_id):
            # Deleted concurrently between the read and the delete.
            raise NotFound("Session not found")
        logger.info("User %s ended session %s", identity.user_id, session_id)
        return 1

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_current_user(self, identity: Identity) -> User:
        user = self._call_store(self.store.get_user_by_id, identity.user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def get_user(self, user_id: str) -> User:
        """Look up any user by id (for privileged callers)."""
        user = self._call_store(self.store.get_user_by_id, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def list_sessions(self, identity: Identity) -> list[Session]:
        """Active sessions for the caller, newest first."""
        return self._call_store(self.store.list_active_sessions, identity.user_id, self._clock())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _call_store(self, fn, *args):
        try:
            return fn(*args)
        except SQLAlchemyError as exc:
            logger.exception("Storage error in %s", getattr(fn, "__name__", "store call"))
            raise InternalError("Database error") from exc
