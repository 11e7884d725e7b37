"""Pure-ASGI middlewares: request ids, security headers, IP status list."""

import json
import logging
import re
import uuid

from redis.exceptions import RedisError
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from structlog.contextvars import bound_contextvars

from app.security.client_ip import resolve_client_ip
from app.security.ip_status import IpStatus, IpStatusRepository

logger = logging.getLogger(__name__)

# Caller-supplied ids end up in every log line of the request
_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")

_SECURITY_HEADERS: list[tuple[bytes, bytes]] = [
    (b"x-content-type-options", b"nosniff"),
    (b"x-frame-options", b"DENY"),
    (b"referrer-policy", b"no-referrer"),
    (b"cache-control", b"no-store"),
    (b"content-security-policy", b"default-src 'none'; frame-ancestors 'none'"),
]
_HSTS = (b"strict-transport-security", b"max-age=63072000; includeSubDomains; preload")

# Health checks must keep working for blocked load balancers too
_EXEMPT_PATHS = frozenset({"/health", "/ready"})

_FORBIDDEN_BODY = json.dumps({"detail": {"code": "ip_blocked", "message": "Forbidden"}}).encode()


def _with_headers(message: Message, extra: list[tuple[bytes, bytes]]) -> Message:
    if message["type"] == "http.response.start":
        message["headers"] = [*message.get("headers", []), *extra]
    return message


class RequestIDMiddleware:
    """Tag each request with an id, echo it back and bind it for logging.

    A well-formed ``X-Request-ID`` from the caller is reused; anything
    else is replaced by a fresh UUID.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        supplied = dict(scope.get("headers", [])).get(b"x-request-id", b"").decode("latin-1")
        request_id = supplied if _REQUEST_ID.match(supplied) else str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id
        extra = [(b"x-request-id", request_id.encode())]

        async def send_with_request_id(message: Message) -> None:
            await send(_with_headers(message, extra))

        with bound_contextvars(request_id=request_id):
            await self.app(scope, receive, send_with_request_id)


class SecurityHeadersMiddleware:
    """Add security headers to every response.

    ``cache-control: no-store`` keeps issued tokens out of shared caches.
    """

    def __init__(self, app: ASGIApp, hsts: bool = False) -> None:
        self.app = app
        self.headers = [*_SECURITY_HEADERS, _HSTS] if hsts else list(_SECURITY_HEADERS)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_security_headers(message: Message) -> None:
            await send(_with_headers(message, self.headers))

        await self.app(scope, receive, send_with_security_headers)


class IPStatusMiddleware:
    """Reject requests from blocked IPs with 403 before they reach a route.

    The address comes from :func:`resolve_client_ip`, so forwarded headers
    count only when sent by a trusted proxy.  Lookup failures fail open:
    the request continues and the token checks still apply.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path") in _EXEMPT_PATHS:
            await self.app(scope, receive, send)
            return

        ip = resolve_client_ip(scope)
        redis = getattr(scope["app"].state, "redis", None) if "app" in scope else None
        status = IpStatus.NONE
        if ip and redis is not None:
            try:
                status = await IpStatusRepository(redis).read(ip)
            except (RedisError, OSError) as exc:
                logger.warning("IP status lookup failed for %s: %r", ip, exc)

        scope.setdefault("state", {})["ip_status"] = status
        if status is IpStatus.BLOCKED:
            logger.info("Rejected request from blocked ip=%s path=%s", ip, scope.get("path"))
            await send(
                {
                    "type": "http.response.start",
                    "status": 403,
                    "headers": [(b"content-type", b"application/json")],
                }
            )
            await send({"type": "http.response.body", "body": _FORBIDDEN_BODY})
            return

        await self.app(scope, receive, send)
