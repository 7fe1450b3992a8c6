"""
vault/cipher.py -- AES-256-GCM envelope encryption for secret payloads.

Envelope wire format: base64( nonce[12] || ciphertext || tag[16] ).
The nonce is fresh per call and travels inside the envelope, so decrypt()
needs only the envelope and the key.

The key comes from a KeyProvider collaborator whose whole contract is
"return 32 bytes or raise KeyProviderError". StaticKeyProvider wraps the
ENCRYPTION_KEY from settings; no KMS call and no rotation happen here.

Failures are never partial: decrypt() either returns the full plaintext or
raises DecryptionFailure (bad base64, too short, wrong key, tampered bytes).
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.errors import DecryptionFailure, EncryptionFailure, KeyProviderError

logger = logging.getLogger("idampam.vault")

KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16


class KeyProvider(Protocol):
    def get_key(self) -> bytes: ...


class StaticKeyProvider:
    """Returns one configured key for the lifetime of the process."""

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_BYTES:
            raise KeyProviderError(f"Encryption key must be {KEY_BYTES} bytes")
        self._key = bytes(key)

    def get_key(self) -> bytes:
        return self._key


class SecretCipher:
    def __init__(self, key_provider: KeyProvider) -> None:
        self._key_provider = key_provider

    def _aead(self, failure: type[Exception]) -> AESGCM:
        try:
            key = self._key_provider.get_key()
        except KeyProviderError as exc:
            logger.error("Key provider failed: %s", exc)
            raise failure() from exc
        if len(key) != KEY_BYTES:
            logger.error("Key provider returned %d bytes, expected %d", len(key), KEY_BYTES)
            raise failure()
        return AESGCM(key)

    def encrypt(self, plaintext: bytes) -> str:
        aead = self._aead(EncryptionFailure)
        nonce = os.urandom(NONCE_BYTES)
        sealed = aead.encrypt(nonce, plaintext, None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, envelope: str) -> bytes:
        try:
            raw = base64.b64decode(envelope, validate=True)
        except (binascii.Error, ValueError, TypeError) as exc:
            raise DecryptionFailure() from exc
        if len(raw) < NONCE_BYTES + TAG_BYTES:
            raise DecryptionFailure()
        aead = self._aead(DecryptionFailure)
        nonce, sealed = raw[:NONCE_BYTES], raw[NONCE_BYTES:]
        try:
            return aead.decrypt(nonce, sealed, None)
        except InvalidTag as exc:
            logger.warning("Envelope failed authentication (tampered data or wrong key)")
            raise DecryptionFailure() from exc

    def encrypt_text(self, plaintext: str) -> str:
        return self.encrypt(plaintext.encode("utf-8"))

    def decrypt_text(self, envelope: str) -> str:
        try:
            return self.decrypt(envelope).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionFailure() from exc
