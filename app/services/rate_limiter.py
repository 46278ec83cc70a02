"""
Rate Limiting Service

Per-client rate limiting for the feed API using slowapi.

Feed requests are the expensive ones: a cache miss fans out to three
providers and several database queries. Limits:
- Default (every route): rate_limit_default, 100 requests/minute
- Feed composition: FEED_RATE_LIMIT
- Writes (mark-seen): WRITE_RATE_LIMIT

Counters live in Redis when rate limiting is enabled so that every worker
shares them; tests disable limiting entirely via RATE_LIMIT_ENABLED=false.
"""

import logging

from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

FEED_RATE_LIMIT = "60/minute"
WRITE_RATE_LIMIT = "30/minute"


def get_client_ip(request: Request) -> str:
    """
    Client address used as the rate limit key.

    Proxies put the real client first in X-Forwarded-For; nginx sets
    X-Real-IP. Without either, the socket peer address is used.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


def create_limiter(settings: Settings | None = None) -> Limiter:
    """
    Build the limiter from settings.

    Returns:
        Limiter keyed by client IP, Redis-backed when enabled
    """
    settings = settings or get_settings()
    storage_uri = settings.redis_url if settings.rate_limit_enabled else "memory://"

    limiter = Limiter(
        key_func=get_client_ip,
        default_limits=[settings.rate_limit_default],
        storage_uri=storage_uri,
        strategy="fixed-window",
        enabled=settings.rate_limit_enabled,
    )

    logger.info(
        f"Rate limiter initialized - enabled: {settings.rate_limit_enabled}, "
        f"default: {settings.rate_limit_default}"
    )
    return limiter


# Route decorators need the instance at import time
limiter = create_limiter()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    429 response for clients over their limit.

    Returns:
        JSONResponse with the exceeded limit and a Retry-After header
    """
    limit_detail = str(exc.detail)

    response = JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": "Too many feed requests. Please slow down.",
            "detail": limit_detail,
        },
    )
    response.headers["Retry-After"] = "60"
    response.headers["X-RateLimit-Limit"] = limit_detail

    logger.warning(f"Rate limit exceeded for {get_client_ip(request)}: {limit_detail}")
    return response
