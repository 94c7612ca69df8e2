"""
Request rate limiting (slowapi).

Routes under ``/api`` carry explicit limits per client IP:
- polls (``GET /api/groups/{code}``): ``RATE_LIMIT_POLL``, one tick per second
  plus overlapping ticks
- location, chat and votes: ``RATE_LIMIT_WRITE``
- join/create: ``RATE_LIMIT_JOIN``
- fight schedule: ``RATE_LIMIT_DEFAULT``

Everything else (root, health) falls back to ``RATE_LIMIT_DEFAULT`` through
``SlowAPIMiddleware``.
"""
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from venue_tracker.core.config import settings


def get_rate_limit_key(request: Request) -> str:
    """
    Rate limit key for a request.

    Uses the first X-Forwarded-For address when behind a proxy, the peer
    address otherwise.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri="memory://",
    enabled=settings.RATE_LIMIT_ENABLED,
)


def rate_limit_poll(endpoint_func):
    """Limit for the per-second group poll."""
    return limiter.limit(settings.RATE_LIMIT_POLL)(endpoint_func)


def rate_limit_write(endpoint_func):
    """Limit for location pushes, chat and votes."""
    return limiter.limit(settings.RATE_LIMIT_WRITE)(endpoint_func)


def rate_limit_join(endpoint_func):
    """Limit for joining and creating groups."""
    return limiter.limit(settings.RATE_LIMIT_JOIN)(endpoint_func)


def rate_limit_general(endpoint_func):
    """Limit for read-only reference data."""
    return limiter.limit(settings.RATE_LIMIT_DEFAULT)(endpoint_func)
