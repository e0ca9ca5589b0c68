"""
P1-3: Rate Limiting Configuration

Uses SlowAPI for in-memory rate limiting (multi-instance deployments should
point storage_uri at Redis). Limits come from Settings via configure_limiter().
"""
import logging
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse

from app.core.config import Settings
from app.core.request_utils import extract_client_ip

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Limiter key: the proxied client address, else the socket peer."""
    return extract_client_ip(request) or get_remote_address(request)


_limits = {
    "auth": "10/minute",
    "default": "100/minute",
}


def auth_limit() -> str:
    """Rate limit for auth endpoints (stricter)."""
    return _limits["auth"]


def default_limit() -> str:
    return _limits["default"]


# Uses in-memory storage by default (suitable for single-instance)
limiter = Limiter(
    key_func=get_client_ip,
    default_limits=[default_limit],
)


def configure_limiter(settings: Settings) -> Limiter:
    """Apply the configured limits; called once per create_app()."""
    limiter.enabled = settings.RATE_LIMIT_ENABLED
    _limits["auth"] = settings.RATE_LIMIT_AUTH
    _limits["default"] = settings.RATE_LIMIT_DEFAULT
    return limiter


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom handler for rate limit exceeded errors.
    Returns structured JSON response with retry-after header.
    """
    logger.warning(
        f"Rate limit exceeded: {get_client_ip(request)} on {request.url.path}"
    )

    retry_after = exc.detail.split("per")[0].strip() if exc.detail else "1 minute"

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": f"Too many requests. Please try again in {retry_after}.",
            "retry_after": retry_after,
        },
        headers={"Retry-After": "60"},
    )
