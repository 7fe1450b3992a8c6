"""
core/errors.py -- Domain exceptions shared by auth/, vault/, and audit/.

Each exception carries the error `code` and caller-facing `message` used by the
API layer's exception handler. Messages are deliberately opaque: an
authentication failure never says which check failed.

Layer rule: no imports from api/, auth/, vault/, or audit/.
"""

from __future__ import annotations


class IdamError(Exception):
    """Base class for every error this core raises on purpose."""

    status_code: int = 500
    code: str = "internal_error"
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class AuthenticationFailure(IdamError):
    status_code = 401
    code = "bad_credentials"
    message = "Invalid credentials"


class AccountDeactivated(AuthenticationFailure):
    code = "account_deactivated"
    message = "Account is deactivated"


class InvalidTOTP(IdamError):
    status_code = 401
    code = "invalid_totp"
    message = "Invalid TOTP code"


class TokenInvalid(IdamError):
    status_code = 401
    code = "unauthorized"
    message = "Invalid token"


class AuthorizationDenied(IdamError):
    status_code = 403
    code = "forbidden"
    message = "Admin access required."


class SecretNotFound(IdamError):
    """Raised for a missing secret AND for a secret owned by someone else."""

    status_code = 404
    code = "not_found"
    message = "Secret not found"


class KeyProviderError(IdamError):
    code = "crypto_error"
    message = "Encryption key unavailable"


class EncryptionFailure(IdamError):
    code = "crypto_error"
    message = "Failed to encrypt secret"


class DecryptionFailure(IdamError):
    code = "crypto_error"
    message = "Failed to decrypt secret"
