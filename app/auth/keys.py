"""RSA key material loading.

Keys are read from PEM files exactly once at startup and wrapped in an
immutable :class:`KeyPair` that is handed to the token engine.  Any
problem with the files raises :class:`KeyLoadFailure`; the application
refuses to start rather than serve with partial key material.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk
from jose.backends.base import Key
from jose.exceptions import JWKError

from app.auth.errors import KeyLoadFailure

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"
MIN_KEY_SIZE = 2048

_PAIR_CHECK_MESSAGE = b"key-pair-check"


@dataclass(frozen=True)
class KeyPair:
    """Loaded signing and verification keys."""

    signing_key: Key
    verification_key: Key
    key_size: int
    algorithm: str = ALGORITHM


def _read_pem(path: Path) -> bytes:
    try:
        data = Path(path).read_bytes()
    except FileNotFoundError as exc:
        raise KeyLoadFailure(path, "file not found") from exc
    except PermissionError as exc:
        raise KeyLoadFailure(path, "permission denied") from exc
    except OSError as exc:
        raise KeyLoadFailure(path, exc.strerror or str(exc)) from exc
    if not data.strip():
        raise KeyLoadFailure(path, "file is empty")
    return data


def _construct(path: Path, pem: bytes) -> Key:
    try:
        return jwk.construct(pem.decode("ascii"), algorithm=ALGORITHM)
    except (JWKError, UnicodeDecodeError) as exc:
        raise KeyLoadFailure(path, f"unusable {ALGORITHM} key ({exc})") from exc


def _check_key_size(path: Path, key_size: int) -> None:
    if key_size < MIN_KEY_SIZE:
        raise KeyLoadFailure(path, f"RSA key is {key_size} bits, need at least {MIN_KEY_SIZE}")


def load_private_key(path: Path) -> tuple[Key, int]:
    """Load a PEM RSA private key and return ``(jose_key, key_size)``."""
    pem = _read_pem(path)
    try:
        parsed = serialization.load_pem_private_key(pem, password=None)
    except TypeError as exc:
        # Raised for encrypted keys when no password is given
        raise KeyLoadFailure(path, "encrypted private keys are not supported") from exc
    except ValueError as exc:
        raise KeyLoadFailure(path, "malformed PEM private key") from exc
    if not isinstance(parsed, rsa.RSAPrivateKey):
        raise KeyLoadFailure(path, f"expected an RSA private key, got {type(parsed).__name__}")
    _check_key_size(path, parsed.key_size)
    return _construct(path, pem), parsed.key_size


def load_public_key(path: Path) -> tuple[Key, int]:
    """Load a PEM RSA public key and return ``(jose_key, key_size)``."""
    pem = _read_pem(path)
    try:
        parsed = serialization.load_pem_public_key(pem)
    except ValueError as exc:
        raise KeyLoadFailure(path, "malformed PEM public key") from exc
    if not isinstance(parsed, rsa.RSAPublicKey):
        raise KeyLoadFailure(path, f"expected an RSA public key, got {type(parsed).__name__}")
    _check_key_size(path, parsed.key_size)
    return _construct(path, pem), parsed.key_size


def generate_rsa_keypair(key_size: int = 3072) -> tuple[bytes, bytes]:
    """Generate an RSA key pair and return ``(private_pem, public_pem)``.

    The private key is unencrypted PKCS8; the public key is SubjectPublicKeyInfo.
    """
    if key_size < MIN_KEY_SIZE:
        raise ValueError(f"key_size must be at least {MIN_KEY_SIZE}")
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem, public_pem


def load_key_pair(private_key_path: Path, public_key_path: Path) -> KeyPair:
    """Load both keys and check that the public key belongs to the private key.

    Raises:
        KeyLoadFailure: If either key cannot be loaded or they do not match.
    """
    signing_key, key_size = load_private_key(private_key_path)
    verification_key, _ = load_public_key(public_key_path)

    signature = signing_key.sign(_PAIR_CHECK_MESSAGE)
    if not verification_key.verify(_PAIR_CHECK_MESSAGE, signature):
        raise KeyLoadFailure(public_key_path, "public key does not match the private key")

    logger.info(
        "Loaded %s key pair (%d bits) from %s and %s",
        ALGORITHM,
        key_size,
        private_key_path,
        public_key_path,
    )
    return KeyPair(
        signing_key=signing_key,
        verification_key=verification_key,
        key_size=key_size,
    )
