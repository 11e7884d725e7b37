"""Proof of key ownership required before a token is issued.

A caller signs a validity date with its Ethereum key (``personal_sign``,
EIP-191) and sends ``{address, date_message, signature}``.  The proof is
accepted when:

- ``address`` is ``0x``-prefixed and in EIP-55 checksum form,
- ``date_message`` parses as ``%Y-%m-%d %H:%M:%S %z``, has not passed and
  is no further ahead than the configured maximum validity,
- the signer recovered from ``signature`` is ``address``.

The checksum address then becomes the token subject.
"""

import time
from datetime import UTC, datetime, timedelta

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import ValidationError as SignatureValidationError
from eth_utils import is_checksum_address, is_hex_address

from app.auth.errors import InvalidProof
from app.schemas.auth import SignedMessage

VALIDATION_DATE_FORMAT = "%Y-%m-%d %H:%M:%S %z"

_SIGNATURE_LENGTH = 65


def format_validity_date(moment: datetime) -> str:
    """Render *moment* the way a client must sign it."""
    return moment.strftime(VALIDATION_DATE_FORMAT)


def _checked_address(address: str) -> str:
    if not address.startswith("0x"):
        raise InvalidProof("address must be prefixed with 0x")
    if not is_hex_address(address):
        raise InvalidProof("address is not a 20-byte hex value")
    if not is_checksum_address(address):
        raise InvalidProof("invalid address checksum")
    return address


def _valid_until(date_message: str) -> datetime:
    try:
        return datetime.strptime(date_message, VALIDATION_DATE_FORMAT)
    except ValueError as exc:
        raise InvalidProof(f"date_message must match {VALIDATION_DATE_FORMAT!r}") from exc


def _signature_bytes(signature: str) -> bytes:
    try:
        raw = bytes.fromhex(signature.removeprefix("0x"))
    except ValueError as exc:
        raise InvalidProof("signature is not hex") from exc
    if len(raw) != _SIGNATURE_LENGTH:
        raise InvalidProof(f"signature must be {_SIGNATURE_LENGTH} bytes")
    # Accept raw recovery ids (0/1) as well as the 27/28 form
    if raw[-1] in (0, 1):
        raw = raw[:-1] + bytes([raw[-1] + 27])
    return raw


def verify_signed_message(
    message: SignedMessage,
    *,
    max_validity_seconds: int,
    now: float | None = None,
) -> str:
    """Check *message* and return the signer's checksum address.

    Raises:
        InvalidProof: If any check fails.
    """
    address = _checked_address(message.address)

    current = datetime.fromtimestamp(time.time() if now is None else now, tz=UTC)
    valid_until = _valid_until(message.date_message)
    if current > valid_until:
        raise InvalidProof("proof has expired")
    if valid_until - current > timedelta(seconds=max_validity_seconds):
        raise InvalidProof("proof validity date is too far in the future")

    signature = _signature_bytes(message.signature)
    try:
        signer = Account.recover_message(encode_defunct(text=message.date_message), signature=signature)
    except (ValueError, TypeError, SignatureValidationError) as exc:
        raise InvalidProof("signature cannot be recovered") from exc
    if signer != address:
        raise InvalidProof("signature was not made by address")
    return address
