"""
api/main.py -- FastAPI application entry point for AuthGate.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the configured frontend origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the auth components from Settings exactly once (store, token
codec, service) and hangs them on app.state; it also runs the expired-session
sweep and tears everything down symmetrically on shutdown.

Every response body, success or failure, is the {success, data?, error?}
envelope from api.models.ApiResponse.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ApiResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError
from auth.service import AuthService
from auth.store import AuthStore
from auth.tokens import TokenCodec
from core.config import Settings, get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authgate.api")

_settings = get_settings()


def build_auth_service(settings: Settings, store: AuthStore) -> AuthService:
    """Wire a TokenCodec and AuthService from settings. Shared with the CLI."""
    codec = TokenCodec(
        settings.jwt_secret,
        access_ttl=timedelta(seconds=settings.access_token_expire_seconds),
        refresh_ttl=timedelta(seconds=settings.refresh_token_expire_seconds),
    )
    return AuthService(
        store,
        codec,
        bcrypt_rounds=settings.bcrypt_rounds,
        bind_refresh_to_session=settings.bind_refresh_to_session,
    )


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Delete expired sessions every interval_seconds.

    The store call is blocking, so it runs in a worker thread. CancelledError
    from task.cancel() during shutdown propagates out of asyncio.sleep and
    unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await asyncio.to_thread(app.state.auth_store.purge_expired_sessions)
        except Exception:
            logger.exception("Expired-session purge failed")
            continue
        if removed:
            logger.info("Purged %d expired sessions", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create auth components on startup; dispose of them on shutdown.

    Startup order matters: the store must exist before the service that wraps
    it and before the purge task that sweeps it.
    """
    logger.info("AuthGate API starting up (environment=%s)", _settings.environment)
    app.state.auth_store = AuthStore(_settings.database_url)
    app.state.auth_service = build_auth_service(_settings, app.state.auth_store)
    app.state.token_codec = app.state.auth_service.codec
    logger.info("Auth initialized (bind_refresh_to_session=%s)", _settings.bind_refresh_to_session)
    app.state.purge_task = asyncio.create_task(_purge_loop(app, _settings.session_purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    with suppress(asyncio.CancelledError):
        await app.state.purge_task
    app.state.auth_store.close()
    logger.info("AuthGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AuthGate API",
    description="Credential verification, signed tokens and server-side sessions.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette makes the LAST-added middleware the outermost, so these are added
# innermost-first to get TrustedHost -> CORS -> SlowAPI on the way in.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=["Content-Length"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same envelope so clients can parse errors without
# choosing a schema by status code. Internal error text is passed through
# only in development mode.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ApiResponse.fail(message).model_dump(exclude_none=True))


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any auth-core error with its own status code."""
    message = exc.message
    if exc.status_code >= 500 and not _settings.is_development:
        message = "Internal server error"
    response = _error(exc.status_code, message)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "Too many requests.")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are BadRequest (400), not 422."""
    message = "Invalid request body"
    if _settings.is_development:
        message = f"{message}: {exc.errors()}"
    return _error(400, message)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Wrap FastAPI/Starlette HTTP exceptions (404 routes, 405 methods) in the envelope."""
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error(exc.status_code, message)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The traceback goes to the log. The client sees the exception text only in
    development mode.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    message = str(exc) if _settings.is_development else "Internal server error"
    return _error(500, message)


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is reachable regardless of router
# registration state. No rate limit and no auth.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> ApiResponse[HealthResponse]:
    """Return liveness, version and database reachability."""
    try:
        database = "ok" if request.app.state.auth_store.ping() else "error"
    except Exception:
        logger.exception("Health check database ping failed")
        database = "error"
    return ApiResponse[HealthResponse].ok(
        HealthResponse(version=__version__, components={"app": "ok", "database": database})
    )
