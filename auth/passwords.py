"""
auth/passwords.py -- Password hashing and verification.

Security design decisions:
  KDF: argon2id via argon2-cffi's low-level API with fixed cost parameters
       (1 pass, 64 MiB, 4 lanes, 32-byte output). The memory cost is what makes
       offline brute force expensive on GPUs; the fixed parameters mean a stored
       record needs only its salt to be re-derived.

  Record format: "<salt hex>:<derived key hex>". A fresh 16-byte salt per call
       means identical passwords never produce identical records.

  Comparison: hmac.compare_digest, so verification time does not depend on how
       many leading bytes of the derived key match.

  Malformed records (wrong field count, bad hex, wrong salt length) verify as
       False. verify() never raises to its caller.
"""

from __future__ import annotations

import hmac
import logging
import secrets

from argon2.low_level import Type, hash_secret_raw

logger = logging.getLogger("idampam.auth")

SALT_BYTES = 16
KEY_BYTES = 32
TIME_COST = 1
MEMORY_COST_KIB = 64 * 1024
PARALLELISM = 4


class CredentialVerifier:
    """Stateless argon2id hasher. Safe to share across threads."""

    def hash(self, password: str) -> str:
        salt = secrets.token_bytes(SALT_BYTES)
        key = _derive(password, salt)
        return f"{salt.hex()}:{key.hex()}"

    def verify(self, password: str, record: str) -> bool:
        """Return True if password re-derives to the key stored in record."""
        parts = record.split(":") if isinstance(record, str) else []
        if len(parts) != 2:
            return False
        try:
            salt = bytes.fromhex(parts[0])
            expected = bytes.fromhex(parts[1])
        except ValueError:
            return False
        if len(salt) != SALT_BYTES or len(expected) != KEY_BYTES:
            return False
        return hmac.compare_digest(_derive(password, salt), expected)


def _derive(password: str, salt: bytes) -> bytes:
    return hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=salt,
        time_cost=TIME_COST,
        memory_cost=MEMORY_COST_KIB,
        parallelism=PARALLELISM,
        hash_len=KEY_BYTES,
        type=Type.ID,
    )


# Timing equalization dummy record [C1].
# Computed once at module load. LoginFlow verifies against it when the username
# does not exist so an unknown user costs the same KDF work as a wrong password.
DUMMY_RECORD: str = CredentialVerifier().hash("idampam_timing_dummy")
