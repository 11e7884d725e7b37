"""Shared rate limiter instance.

Kept out of main.py to avoid circular imports when route modules
need to apply per-endpoint rate limits via ``@limiter.limit()``.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.config import get_settings
from app.security.client_ip import resolve_client_ip


def get_client_ip(request: Request) -> str:
    """Rate-limit key: the client IP, honouring forwarded headers from trusted proxies only."""
    return resolve_client_ip(request.scope) or get_remote_address(request)


def issue_rate_limit() -> str:
    """Per-client limit for token issuance, read from settings."""
    return get_settings().issue_rate_limit


limiter = Limiter(key_func=get_client_ip, default_limits=["120/minute"])
