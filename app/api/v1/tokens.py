"""Token issuance, verification and revocation endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from app.auth.dependencies import require_admin, token_error_to_http
from app.auth.errors import InvalidProof, MalformedToken, SigningFailure, TokenError
from app.auth.signed_message import verify_signed_message
from app.config import get_settings
from app.dependencies import Engine
from app.rate_limit import issue_rate_limit, limiter
from app.schemas.auth import (
    ClaimsResponse,
    SignedMessage,
    TokenResponse,
    TokenRevokeRequest,
    TokenVerifyRequest,
)
from app.utils.audit import audit_logged

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(issue_rate_limit)
async def issue_token(request: Request, body: SignedMessage, engine: Engine) -> TokenResponse:
    """Issue a token for the address that signed ``date_message``.

    The subject of the token is the signer's checksum address.
    """
    try:
        subject = verify_signed_message(
            body, max_validity_seconds=get_settings().proof_max_validity_seconds
        )
    except InvalidProof as exc:
        logger.info("Rejected issuance proof for %s: %s", body.address, exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": exc.code, "message": str(exc)},
        ) from exc

    try:
        issued = engine.issue(subject)
    except SigningFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": exc.code, "message": "Token could not be signed"},
        ) from exc

    return TokenResponse(
        access_token=issued.token,
        token_id=issued.claims.jti,
        expires_in=issued.claims.exp - issued.claims.iat,
        expires_at=issued.claims.exp,
    )


@router.post("/verify", response_model=ClaimsResponse)
async def verify_token(body: TokenVerifyRequest, engine: Engine) -> ClaimsResponse:
    """Verify a token and return its claims."""
    try:
        claims = await engine.verify(body.token)
    except TokenError as exc:
        raise token_error_to_http(exc) from exc
    return ClaimsResponse.from_claims(claims)


@router.post(
    "/revoke",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin), Depends(audit_logged("revoke_token"))],
)
async def revoke_token(body: TokenRevokeRequest, engine: Engine) -> Response:
    """Revoke any token by id until its natural expiry. Admin only, idempotent."""
    try:
        await engine.revoke(body.token_id, body.expires_at)
    except MalformedToken as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": exc.code, "message": str(exc)},
        ) from exc
    except TokenError as exc:
        raise token_error_to_http(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
