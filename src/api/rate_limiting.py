"""
Rate limiting for the unauthenticated auth endpoints, using slowapi.

Code issuance and the credential-checking endpoints are keyed on the
client address. Limits are read from settings at request time, so an app
built by ``create_app`` applies its own settings.

Usage in routers:
    from src.api.rate_limiting import auth_limit, limiter

    @router.post("/login")
    @limiter.limit(auth_limit)
    def login(request: Request, ...):
        ...
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from src.api.errors import error_response
from src.config.settings import Settings

logger = logging.getLogger(__name__)

# In-memory storage; one counter set per process
limiter = Limiter(key_func=get_remote_address)

# Replaced by configure_rate_limits when an app is created
_limits = {"otp": "5/15minute", "auth": "10/15minute"}


def configure_rate_limits(settings: Settings) -> None:
    """Apply settings to the shared limiter and start from empty counters."""
    limiter.enabled = settings.rate_limit_enabled
    _limits["otp"] = settings.otp_rate_limit
    _limits["auth"] = settings.auth_rate_limit
    limiter.reset()


def otp_limit() -> str:
    """Limit for requests that email a verification code."""
    return _limits["otp"]


def auth_limit() -> str:
    """Limit for requests that check a code or a password."""
    return _limits["auth"]


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Answer 429 in the standard error envelope with a Retry-After header."""
    try:
        retry_after = str(exc.limit.limit.get_expiry())
    except AttributeError:
        retry_after = "60"
    logger.warning("Rate limit hit on %s %s: %s", request.method, request.url.path, exc.detail)
    response = error_response(
        status.HTTP_429_TOO_MANY_REQUESTS,
        "Too many requests, please try again later",
        "TOO_MANY_REQUESTS",
    )
    response.headers["Retry-After"] = retry_after
    return response
