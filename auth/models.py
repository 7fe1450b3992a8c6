"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these own the domain shape.

Layer rule: no imports from api/, vault/, or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Identity:
    """A local account.

    password_hash is the "<salt hex>:<derived key hex>" record produced by
    auth.passwords.CredentialVerifier.hash(). The plaintext is never stored.

    totp_secret is None until the second factor is enabled.

    id is None before the record is written to the database.
    """

    username: str
    password_hash: str
    id: str | None = None
    email: str | None = None
    totp_secret: str | None = None
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None
    roles: list[str] = field(default_factory=list)  # filled on demand by routes

    @property
    def totp_enabled(self) -> bool:
        return bool(self.totp_secret)


@dataclass
class Role:
    name: str
    id: str | None = None
    description: str = ""


@dataclass(frozen=True)
class RoleBinding:
    """The (identity, role) relation. "admin" is the only role with built-in meaning."""

    identity_id: str
    role_name: str


@dataclass(frozen=True)
class TokenClaims:
    """Verified token contents. Reconstructed per request, never persisted."""

    subject_id: str
    username: str
    issued_at: datetime
    expires_at: datetime
