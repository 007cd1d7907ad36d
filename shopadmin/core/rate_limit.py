"""
Rate limiting for the inventory API

SlowAPI limiter keyed on the caller's address. Counters live in Redis when
REDIS_URL is set so limits are shared across instances; otherwise in memory.

Routes pick a scope instead of a raw limit string:

    @router.post("/reservations")
    @scoped_limit("reservation")
    async def create_reservation(request: Request, ...):
"""
import logging
from typing import Dict

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from shopadmin.core.config import settings

logger = logging.getLogger(__name__)

SCOPE_LIMITS: Dict[str, str] = {
    "read": settings.RATE_LIMIT_INVENTORY_READ,
    "reservation": settings.RATE_LIMIT_RESERVATION,
    "adjustment": settings.RATE_LIMIT_ADJUSTMENT,
}


def get_client_ip(request: Request) -> str:
    """Left-most X-Forwarded-For entry when proxied, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_client_ip,
    enabled=settings.RATE_LIMIT_ENABLED,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=settings.REDIS_URL or "memory://",
)


def scoped_limit(scope: str):
    """Limit decorator for one of SCOPE_LIMITS."""
    return limiter.limit(SCOPE_LIMITS[scope])


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        f"[RATE_LIMIT] {get_client_ip(request)} exceeded {exc.detail} on {request.method} {request.url.path}"
    )

    window = exc.detail.split("per", 1)[-1].strip() if exc.detail else "minute"

    return JSONResponse(
        status_code=429,
        content={
            "error": "RATE_LIMITED",
            "message": f"Too many inventory requests. Limit is {exc.detail}.",
            "details": {"limit": exc.detail, "window": window},
        },
        headers={"Retry-After": "60"},
    )
