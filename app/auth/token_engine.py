"""Token issuance, verification and revocation.

Tokens are compact RS256 JWS strings (``header.claims.signature``).
Verification is an ordered pipeline and the first failing step decides
the error kind:

1. parse        -> :class:`MalformedToken` (segments, base64url, header)
2. signature    -> :class:`InvalidSignature`
3. claims       -> :class:`MalformedToken` (JSON object, schema)
4. expiry       -> :class:`TokenExpired`
5. deny-list    -> :class:`TokenRevoked` / :class:`StoreUnavailable`

The claims segment is not even JSON-decoded before step 2 succeeds, so
any edit that keeps it valid base64url surfaces as :class:`InvalidSignature`.

Concurrency model: a ``TokenEngine`` holds only the immutable key pair,
its settings and a store handle, so one instance is shared by every
request.  Store calls are the only awaits and each one is bounded by
``store_timeout``.  Nothing is retried here; callers own retry policy
for :class:`StoreUnavailable`.
"""

import asyncio
import json
import math
import re
import secrets
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from jose import jwt
from jose.exceptions import JOSEError
from jose.utils import base64url_decode, base64url_encode
from pydantic import ValidationError
from redis.exceptions import RedisError, ResponseError

from app.auth.errors import (
    InvalidSignature,
    InvalidSubject,
    MalformedToken,
    SigningFailure,
    StoreUnavailable,
    TokenError,
    TokenExpired,
    TokenRevoked,
)
from app.auth.keys import KeyPair
from app.auth.token_revocation import RevocationStore
from app.config import Settings
from app.schemas.auth import TokenClaims
from app.utils.logging import get_logger

logger = get_logger(__name__)

_SEGMENT = re.compile(rb"^[A-Za-z0-9_-]+$")

# Errors that mean "the store could not answer", as opposed to a bug
_STORE_ERRORS = (TimeoutError, RedisError, OSError)


@dataclass(frozen=True)
class IssuedToken:
    """A freshly minted token together with the claims signed into it."""

    token: str
    claims: TokenClaims


@dataclass(frozen=True)
class _ParsedToken:
    header: dict[str, Any]
    claims_bytes: bytes
    signing_input: bytes
    signature: bytes
    signature_segment: bytes


def _decode_segment(segment: bytes) -> bytes:
    if not _SEGMENT.match(segment):
        raise ValueError("segment is not base64url")
    return base64url_decode(segment)


class TokenEngine:
    """Issues, verifies and revokes RS256 tokens."""

    def __init__(
        self,
        keys: KeyPair,
        store: RevocationStore,
        *,
        expiry_seconds: int,
        leeway_seconds: int = 0,
        store_timeout: float = 1.0,
        clock: Callable[[], float] = time.time,
    ):
        if expiry_seconds <= 0:
            raise ValueError("expiry_seconds must be positive")
        if leeway_seconds < 0:
            raise ValueError("leeway_seconds must not be negative")
        self._keys = keys
        self._store = store
        self.expiry_seconds = expiry_seconds
        self.leeway_seconds = leeway_seconds
        self.store_timeout = store_timeout
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings, keys: KeyPair, store: RevocationStore
    ) -> "TokenEngine":
        return cls(
            keys,
            store,
            expiry_seconds=settings.token_expiry,
            leeway_seconds=settings.token_leeway_seconds,
            store_timeout=settings.store_timeout_seconds,
        )

    @property
    def max_revocation_ttl(self) -> int:
        """Longest time any token issued here can still be accepted."""
        return self.expiry_seconds + self.leeway_seconds

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(self, subject: str) -> IssuedToken:
        """Mint a signed token for *subject*.

        Raises:
            InvalidSubject: If *subject* is empty or blank.
            SigningFailure: If the private key cannot sign.
        """
        if not isinstance(subject, str) or not subject.strip():
            raise InvalidSubject("subject must be a non-empty string")

        issued_at = int(self._clock())
        claims = TokenClaims(
            sub=subject,
            iat=issued_at,
            exp=issued_at + self.expiry_seconds,
            jti=secrets.token_hex(16),
        )
        try:
            token = jwt.encode(
                claims.model_dump(),
                self._keys.signing_key,
                algorithm=self._keys.algorithm,
            )
        except JOSEError as exc:
            logger.error("token_signing_failed", jti=claims.jti, error=str(exc))
            raise SigningFailure("private key could not sign the token") from exc

        logger.info("token_issued", jti=claims.jti, sub=claims.sub, exp=claims.exp)
        return IssuedToken(token=token, claims=claims)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    async def verify(self, token: str) -> TokenClaims:
        """Return the claims of *token* if it is authentic, current and not revoked.

        Raises:
            MalformedToken, InvalidSignature, TokenExpired, TokenRevoked,
            StoreUnavailable: For the first failing verification step.
        """
        try:
            parsed = self._parse(token)
            self._check_signature(parsed)
            claims = self._validate_claims(parsed.claims_bytes)
            self._check_expiry(claims)
            await self._check_revocation(claims)
        except TokenError as exc:
            logger.info("token_rejected", reason=exc.code)
            raise
        return claims

    @staticmethod
    def _parse(token: str) -> _ParsedToken:
        if not isinstance(token, str) or not token:
            raise MalformedToken("token must be a non-empty string")
        try:
            raw = token.encode("ascii")
        except UnicodeEncodeError as exc:
            raise MalformedToken("token contains non-ASCII characters") from exc

        segments = raw.split(b".")
        if len(segments) != 3 or not all(segments):
            raise MalformedToken("token must have three non-empty segments")
        header_segment, claims_segment, signature_segment = segments

        try:
            header = json.loads(_decode_segment(header_segment))
            claims_bytes = _decode_segment(claims_segment)
            signature = _decode_segment(signature_segment)
        except ValueError as exc:
            raise MalformedToken("token segments are not valid base64url") from exc
        if not isinstance(header, dict):
            raise MalformedToken("token header must be a JSON object")

        return _ParsedToken(
            header=header,
            claims_bytes=claims_bytes,
            signing_input=header_segment + b"." + claims_segment,
            signature=signature,
            signature_segment=signature_segment,
        )

    def _check_signature(self, parsed: _ParsedToken) -> None:
        alg = parsed.header.get("alg")
        if alg != self._keys.algorithm:
            raise InvalidSignature(f"algorithm {alg!r} is not accepted")
        # Padding bits in the last character are ignored by the decoder
        if base64url_encode(parsed.signature) != parsed.signature_segment:
            raise InvalidSignature("signature encoding is not canonical")
        if not self._keys.verification_key.verify(parsed.signing_input, parsed.signature):
            raise InvalidSignature("signature does not match")

    @staticmethod
    def _validate_claims(claims_bytes: bytes) -> TokenClaims:
        try:
            payload = json.loads(claims_bytes)
        except ValueError as exc:
            raise MalformedToken("token claims are not valid JSON") from exc
        if not isinstance(payload, dict):
            raise MalformedToken("token claims must be a JSON object")
        try:
            return TokenClaims.model_validate(payload)
        except ValidationError as exc:
            raise MalformedToken("token claims are incomplete or invalid") from exc

    def _check_expiry(self, claims: TokenClaims) -> None:
        if self._clock() >= claims.exp + self.leeway_seconds:
            raise TokenExpired(f"token expired at {claims.exp}")

    async def _check_revocation(self, claims: TokenClaims) -> None:
        entry = await self._call_store(
            self._store.get(claims.jti), "revocation_lookup_failed", claims.jti
        )
        if entry is not None:
            raise TokenRevoked(f"token {claims.jti} has been revoked")

    async def _call_store(self, awaitable: Awaitable[Any], event: str, token_id: str) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.store_timeout)
        except ResponseError:
            # The store answered and refused the command: not an outage
            raise
        except _STORE_ERRORS as exc:
            logger.warning(event, jti=token_id, error=repr(exc))
            raise StoreUnavailable("revocation store is unavailable") from exc

    # ------------------------------------------------------------------
    # Revoke
    # ------------------------------------------------------------------

    async def revoke(self, token_id: str, expires_at: float) -> bool:
        """Add *token_id* to the deny-list until the token stops being accepted.

        The entry lives until ``expires_at`` plus the verification leeway,
        capped at :attr:`max_revocation_ttl`.  Returns ``True`` when a new
        entry was written.  Revoking an expired token or one that is
        already revoked succeeds without changing the store.

        Raises:
            MalformedToken: If *token_id* is empty.
            StoreUnavailable: If the entry could not be written.
        """
        if not isinstance(token_id, str) or not token_id:
            raise MalformedToken("token_id must be a non-empty string")

        now = self._clock()
        remaining = expires_at + self.leeway_seconds - now
        if remaining <= 0:
            logger.info("revocation_skipped_expired", jti=token_id)
            return False

        ttl = min(math.ceil(remaining), self.max_revocation_ttl)
        created = await self._call_store(
            self._store.set(token_id, str(int(now)), ttl), "revocation_write_failed", token_id
        )

        if created:
            logger.info("token_revoked", jti=token_id, ttl=ttl)
        else:
            logger.info("token_already_revoked", jti=token_id)
        return created

    async def reinstate(self, token_id: str) -> bool:
        """Remove *token_id* from the deny-list. Returns ``True`` if an entry existed."""
        if not isinstance(token_id, str) or not token_id:
            raise MalformedToken("token_id must be a non-empty string")
        removed = await self._call_store(
            self._store.delete(token_id), "revocation_delete_failed", token_id
        )
        if removed:
            logger.info("token_reinstated", jti=token_id)
        return removed
