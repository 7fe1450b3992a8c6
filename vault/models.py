"""
vault/models.py -- Domain dataclass for stored secrets.

Pure data container. envelope is the SecretCipher output; the plaintext is
never a field of this class.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class SecretRecord:
    """A secret owned by exactly one identity (owner_id). No sharing."""

    name: str
    envelope: str
    owner_id: str
    description: str = ""
    id: str | None = None
    created_at: str = ""
    updated_at: str = ""
