"""FastAPI dependencies for bearer-token authentication."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.auth.errors import StoreUnavailable, TokenError
from app.config import get_settings
from app.dependencies import Engine
from app.schemas.auth import TokenClaims

bearer_scheme = HTTPBearer(auto_error=False)

_STORE_RETRY_AFTER_SECONDS = "1"


def token_error_to_http(exc: TokenError) -> HTTPException:
    """Map an engine error on a presented credential to an HTTP error."""
    if isinstance(exc, StoreUnavailable):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": exc.code, "message": "Token store unavailable, retry later"},
            headers={"Retry-After": _STORE_RETRY_AFTER_SECONDS},
        )
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": exc.code, "message": "Invalid or expired token"},
        headers={"WWW-Authenticate": f'Bearer error="invalid_token", error_description="{exc.code}"'},
    )


async def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str:
    """Extract the raw bearer token from the Authorization header."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "missing_token", "message": "Not authenticated"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


BearerToken = Annotated[str, Depends(get_bearer_token)]


async def get_current_claims(token: BearerToken, engine: Engine) -> TokenClaims:
    """Verify the bearer token (signature, expiry, deny-list) and return its claims."""
    try:
        return await engine.verify(token)
    except TokenError as exc:
        raise token_error_to_http(exc) from exc


# Convenience type alias
CurrentClaims = Annotated[TokenClaims, Depends(get_current_claims)]


async def require_admin(claims: CurrentClaims) -> TokenClaims:
    """Allow only subjects listed in ``ADMIN_SUBJECTS``.

    Subjects are Ethereum addresses, compared case-insensitively.
    """
    admins = {subject.lower() for subject in get_settings().admin_subjects}
    if claims.sub.lower() not in admins:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "forbidden", "message": "Administrator token required"},
        )
    return claims
