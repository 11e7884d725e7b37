"""Audit logging for privileged actions."""

import logging

from fastapi import Request

from app.auth.dependencies import CurrentClaims
from app.security.client_ip import resolve_client_ip

logger = logging.getLogger("audit")


def audit_logged(action: str):
    """Dependency factory that logs privileged actions.

    Usage::

        @router.post("/revoke", dependencies=[Depends(audit_logged("revoke_token"))])
    """

    async def _log(request: Request, claims: CurrentClaims) -> None:
        client_ip = resolve_client_ip(request.scope) or "unknown"
        request_id = getattr(request.state, "request_id", "n/a")
        logger.info(
            "AUDIT action=%s sub=%s jti=%s ip=%s request_id=%s path=%s",
            action,
            claims.sub,
            claims.jti,
            client_ip,
            request_id,
            request.url.path,
        )

    return _log
