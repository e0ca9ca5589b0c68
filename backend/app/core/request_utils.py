"""
Request utility functions

Shared by the auth routes, the rate limiter and the operation log middleware.
"""
from typing import Optional
from fastapi import Request

SUPPORTED_LANGUAGES = ("zh-CN", "en-US")
DEFAULT_LANGUAGE = "en-US"


def extract_client_ip(request: Request) -> Optional[str]:
    """
    Extract client IP from request, handling proxy headers.

    Checks X-Forwarded-For header first (for requests behind load balancers),
    then falls back to the direct client IP.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs; first is the original client
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def extract_user_agent(request: Request) -> Optional[str]:
    """Extract user agent string from request."""
    return request.headers.get("user-agent")


def normalize_language(lang: Optional[str]) -> str:
    """Collapse any language tag onto one of the two template languages."""
    if lang and "zh" in lang.lower():
        return "zh-CN"
    return DEFAULT_LANGUAGE


def resolve_language(request: Request, requested: Optional[str] = None) -> str:
    """
    Pick the email language for a request.

    Body value first, then Accept-Language, then the default.
    """
    if requested and requested.strip():
        return normalize_language(requested)
    header = request.headers.get("accept-language")
    if header:
        return normalize_language(header)
    return DEFAULT_LANGUAGE
