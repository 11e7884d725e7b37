"""Authentication API endpoints for the bearer of a token."""

from fastapi import APIRouter, Request, Response, status

from app.auth.dependencies import CurrentClaims, token_error_to_http
from app.auth.errors import TokenError
from app.dependencies import Engine
from app.rate_limit import limiter
from app.schemas.auth import ClaimsResponse

router = APIRouter()


@router.get("/me", response_model=ClaimsResponse)
@limiter.limit("30/minute")
async def get_current_token_info(request: Request, claims: CurrentClaims) -> ClaimsResponse:
    """Return the verified claims of the bearer token."""
    return ClaimsResponse.from_claims(claims)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(claims: CurrentClaims, engine: Engine) -> Response:
    """Revoke the bearer token so it can no longer be used."""
    try:
        await engine.revoke(claims.jti, claims.exp)
    except TokenError as exc:
        raise token_error_to_http(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
