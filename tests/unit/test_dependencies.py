"""Unit tests for auth/dependencies.py: bearer token validation."""

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from app.auth.dependencies import (
    get_bearer_token,
    get_current_claims,
    require_admin,
    token_error_to_http,
)
from app.auth.errors import (
    InvalidSignature,
    MalformedToken,
    StoreUnavailable,
    TokenExpired,
    TokenRevoked,
)
from app.auth.token_engine import TokenEngine
from app.config import get_settings
from app.schemas.auth import TokenClaims
from tests.helpers.proofs import ADMIN_ADDRESS, USER_ADDRESS
from tests.helpers.stores import UnavailableStore
from tests.helpers.token_factory import replace_claims


class TestTokenErrorToHttp:
    @pytest.mark.parametrize("error", [MalformedToken, InvalidSignature, TokenExpired, TokenRevoked])
    def test_credential_errors_are_401(self, error):
        exc = token_error_to_http(error())

        assert exc.status_code == 401
        assert exc.detail["code"] == error.code
        assert exc.headers["WWW-Authenticate"].startswith("Bearer")

    def test_store_unavailable_is_503_with_retry_after(self):
        exc = token_error_to_http(StoreUnavailable())

        assert exc.status_code == 503
        assert exc.detail["code"] == "store_unavailable"
        assert "Retry-After" in exc.headers


class TestGetBearerToken:
    async def test_extracts_credentials(self):
        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="abc.def.ghi")
        assert await get_bearer_token(creds) == "abc.def.ghi"

    async def test_missing_header_is_401(self):
        with pytest.raises(HTTPException) as exc:
            await get_bearer_token(None)
        assert exc.value.status_code == 401
        assert exc.value.detail["code"] == "missing_token"


class TestGetCurrentClaims:
    async def test_valid_token_returns_claims(self, engine):
        issued = engine.issue("user-abc")

        claims = await get_current_claims(issued.token, engine)

        assert claims.sub == "user-abc"
        assert claims.jti == issued.claims.jti

    async def test_expired_token_raises_401(self, engine, clock):
        issued = engine.issue("user-abc")
        clock.advance(3600)

        with pytest.raises(HTTPException) as exc:
            await get_current_claims(issued.token, engine)
        assert exc.value.status_code == 401
        assert exc.value.detail["code"] == "token_expired"

    async def test_tampered_token_raises_401(self, engine):
        issued = engine.issue("user-x")

        with pytest.raises(HTTPException) as exc:
            await get_current_claims(replace_claims(issued.token, sub="admin"), engine)
        assert exc.value.detail["code"] == "invalid_signature"

    async def test_revoked_token_raises_401(self, engine):
        issued = engine.issue("user-x")
        await engine.revoke(issued.claims.jti, issued.claims.exp)

        with pytest.raises(HTTPException) as exc:
            await get_current_claims(issued.token, engine)
        assert exc.value.detail["code"] == "token_revoked"

    async def test_invalid_token_string_raises_401(self, engine):
        with pytest.raises(HTTPException) as exc:
            await get_current_claims("not.a.valid.jwt", engine)
        assert exc.value.status_code == 401

    async def test_store_outage_raises_503(self, key_pair):
        engine = TokenEngine(key_pair, UnavailableStore(), expiry_seconds=60)
        issued = engine.issue("user-x")

        with pytest.raises(HTTPException) as exc:
            await get_current_claims(issued.token, engine)
        assert exc.value.status_code == 503


class TestRequireAdmin:
    def _claims(self, sub: str) -> TokenClaims:
        return TokenClaims(sub=sub, iat=100, exp=200, jti="abc")

    async def test_admin_passes(self):
        claims = self._claims(ADMIN_ADDRESS)
        assert await require_admin(claims) is claims

    async def test_admin_match_ignores_case(self):
        claims = self._claims(ADMIN_ADDRESS.lower())
        assert await require_admin(claims) is claims

    async def test_other_subject_forbidden(self):
        with pytest.raises(HTTPException) as exc:
            await require_admin(self._claims(USER_ADDRESS))
        assert exc.value.status_code == 403
        assert exc.value.detail["code"] == "forbidden"

    async def test_no_admins_configured(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "admin_subjects", [])
        with pytest.raises(HTTPException):
            await require_admin(self._claims(ADMIN_ADDRESS))
