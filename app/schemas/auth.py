"""Pydantic schemas for token issuance, verification and revocation."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

# 9999-12-31T23:59:59Z
MAX_TIMESTAMP = 253_402_300_799


class TokenClaims(BaseModel):
    """Claims signed into every token.

    Validated strictly, and only after the signature has been checked.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    sub: str = Field(min_length=1)
    iat: int
    exp: int
    jti: str = Field(min_length=1)

    @model_validator(mode="after")
    def exp_after_iat(self) -> "TokenClaims":
        if self.exp <= self.iat:
            raise ValueError("exp must be later than iat")
        return self

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=UTC)


class SignedMessage(BaseModel):
    """Request schema for ``POST /tokens``: a validity date signed by ``address``."""

    address: str = Field(min_length=1, max_length=64, examples=["0xbAB36286672fbdc7B250804bf6D14Be0dF69fa29"])
    date_message: str = Field(min_length=1, max_length=64, examples=["2030-01-01 12:00:00 +0000"])
    signature: str = Field(min_length=1, max_length=256)


class TokenResponse(BaseModel):
    """Response schema for a freshly issued token."""

    access_token: str
    token_type: str = "bearer"
    token_id: str
    expires_in: int
    expires_at: int


class TokenVerifyRequest(BaseModel):
    """Request schema for ``POST /tokens/verify``."""

    token: str = Field(min_length=1)


class TokenRevokeRequest(BaseModel):
    """Request schema for ``POST /tokens/revoke``."""

    token_id: str = Field(min_length=1, max_length=128)
    expires_at: int = Field(
        ge=0,
        le=MAX_TIMESTAMP,
        description="The token's exp claim (seconds since epoch)",
    )


class ClaimsResponse(BaseModel):
    """Verified claims returned to callers."""

    subject: str
    token_id: str
    issued_at: int
    expires_at: int

    @classmethod
    def from_claims(cls, claims: TokenClaims) -> "ClaimsResponse":
        return cls(
            subject=claims.sub,
            token_id=claims.jti,
            issued_at=claims.iat,
            expires_at=claims.exp,
        )
