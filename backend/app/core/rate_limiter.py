"""Shared SlowAPI rate limiter configuration."""
from __future__ import annotations

import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from .config import settings

logger = logging.getLogger(__name__)


def _user_or_ip_key(request: Request) -> str:
    """Return the rate limit bucket key for the current request."""

    # Prefer the verified Clerk id so that clients behind the same proxy
    # do not throttle each other.
    external_id = getattr(request.state, "external_id", None)
    if external_id:
        return str(external_id)

    return get_remote_address(request)


limiter = Limiter(key_func=_user_or_ip_key, enabled=settings.RATE_LIMIT_ENABLED)


def _retry_after(exc: RateLimitExceeded) -> int:
    # Seconds in the window of the limit that was hit, e.g. 60 for "12/minute".
    item = getattr(getattr(exc, "limit", None), "limit", None)
    if item is None:
        return 60
    return int(item.get_expiry())


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return a JSON response when a rate limit is exceeded."""

    retry_after = _retry_after(exc)
    logger.warning(
        "Rate limit exceeded for path=%s limit=%s retry_after=%s", request.url.path, exc.detail, retry_after
    )
    return JSONResponse(
        {"detail": "Rate limit exceeded"},
        status_code=exc.status_code,
        headers={"Retry-After": str(retry_after)},
    )
