"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware) and api/routes/v1/auth.py
(per-route limits via @limiter.limit()). A single shared instance means every
route counts against the same in-memory store; one limiter per module would
give each its own counters and the limits would never trigger.

Keyed on the transport peer address, not X-Forwarded-For: the forwarded
header is client-controlled and would let a caller pick a fresh bucket per
request.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Current login limit string (e.g. "10/minute"), read from settings per request."""
    return get_settings().login_rate_limit
