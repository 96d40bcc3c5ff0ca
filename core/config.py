"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AuthGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Explicit injection: the values read here are passed into TokenCodec and
      AuthService constructors during the FastAPI lifespan. Components never
      call get_settings() themselves, so tests can build codecs with their own
      secrets without touching process-wide state.

  @model_validator(mode="after"): cross-field validation after all fields are
      resolved. Development mode generates a JWT secret with a warning;
      production mode refuses to start without one.

Security notes:
  [M6] JWT_SECRET shorter than 32 chars is rejected outright. HMAC signing
       relies on key entropy -- a short key makes offline brute-force feasible.

  [M7] In production mode a missing JWT_SECRET is a hard startup failure.
       Running with a random key would silently log everyone out on restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authgate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'authgate.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (with ENVIRONMENT=development).

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `jwt_secret` reads from JWT_SECRET, `environment` from ENVIRONMENT.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    environment: str = "production"  # "development" or "production"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    jwt_secret: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens and sessions
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 60 * 60
    # bcrypt cost factor. 12 is the production default; tests lower it.
    bcrypt_rounds: int = 12
    # When true, refresh tokens carry their session id and refresh requires
    # the session record to still exist. Off by default (stateless refresh).
    bind_refresh_to_session: bool = False
    session_purge_interval_seconds: int = 6 * 60 * 60

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    frontend_url: str = "http://localhost:5173"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def allowed_origins(self) -> list[str]:
        """Frontend origin plus the usual local dev servers, deduplicated in order."""
        origins = [self.frontend_url, "http://localhost:5173", "http://localhost:3000"]
        return list(dict.fromkeys(o for o in origins if o))

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "Settings":
        """Enforce the JWT_SECRET policy [M6][M7].

        Development mode: auto-generate a random key with a warning. Tokens
            will not survive a restart -- acceptable for local dev.

        Production mode: refuse to start if JWT_SECRET is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.jwt_secret:
            if self.is_development:
                self.jwt_secret = secrets.token_hex(32)
                logger.warning("Using auto-generated JWT_SECRET. Issued tokens will not survive a restart.")
            else:
                raise ValueError(
                    "JWT_SECRET is required in production mode. "
                    "Set JWT_SECRET in your environment or .env file. "
                    "To run in development mode, set ENVIRONMENT=development."
                )
        if len(self.jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        if self.access_token_expire_seconds <= 0 or self.refresh_token_expire_seconds <= 0:
            raise ValueError("Token lifetimes must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
