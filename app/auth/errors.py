"""Error kinds raised by the token engine and its collaborators.

Every expected failure (bad input, expired or revoked tokens, an
unreachable store) is a :class:`TokenError` subclass with a stable
``code`` so the API layer can map each kind to its own status without
string matching.  Only :class:`StoreUnavailable` is ``retryable``.
"""


class TokenError(Exception):
    """Base class for all token engine errors."""

    code: str = "token_error"
    retryable: bool = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)


# Issuance / startup


class InvalidSubject(TokenError):
    """Raised when a token is requested for an empty subject."""

    code = "invalid_subject"


class InvalidProof(TokenError):
    """Raised when a signed issuance proof is malformed, expired or forged."""

    code = "invalid_proof"


class SigningFailure(TokenError):
    """Raised when the private key cannot produce a signature."""

    code = "signing_failure"


class KeyLoadFailure(TokenError):
    """Raised when PEM key material is missing, unreadable or not RSA."""

    code = "key_load_failure"

    def __init__(self, path: object, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load key from '{path}': {reason}")


# Verification / revocation


class MalformedToken(TokenError):
    """Raised when a token cannot be decoded into header, claims and signature."""

    code = "malformed_token"


class InvalidSignature(TokenError):
    """Raised when the signature does not match the header and claims."""

    code = "invalid_signature"


class TokenExpired(TokenError):
    """Raised when the token's exp claim has been reached."""

    code = "token_expired"


class TokenRevoked(TokenError):
    """Raised when the token's jti is present in the deny-list."""

    code = "token_revoked"


class StoreUnavailable(TokenError):
    """Raised when the revocation store cannot be reached in time."""

    code = "store_unavailable"
    retryable = True
