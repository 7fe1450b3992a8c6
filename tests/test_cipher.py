"""Unit tests for vault/cipher.py -- AES-256-GCM envelopes.

Covers:
- Round trip for empty, text and binary payloads
- Nonce freshness: identical plaintexts give different envelopes
- Any single flipped bit makes decryption fail
- Short, non-base64, and wrong-key envelopes fail with DecryptionFailure
- Key provider failures surface as EncryptionFailure / DecryptionFailure
"""

import base64
import os

import pytest

from core.errors import DecryptionFailure, EncryptionFailure, KeyProviderError
from vault.cipher import NONCE_BYTES, TAG_BYTES, SecretCipher, StaticKeyProvider


@pytest.fixture
def cipher() -> SecretCipher:
    return SecretCipher(StaticKeyProvider(os.urandom(32)))


class _BrokenProvider:
    def get_key(self) -> bytes:
        raise KeyProviderError("unavailable")


class _ShortKeyProvider:
    def get_key(self) -> bytes:
        return b"short"


@pytest.mark.parametrize("message", [b"", b"hunter2", os.urandom(1024), "pässwörd".encode()])
def test_round_trip(cipher, message):
    assert cipher.decrypt(cipher.encrypt(message)) == message


def test_text_round_trip(cipher):
    assert cipher.decrypt_text(cipher.encrypt_text("hunter2")) == "hunter2"


def test_envelope_layout(cipher):
    raw = base64.b64decode(cipher.encrypt(b"abc"))
    assert len(raw) == NONCE_BYTES + 3 + TAG_BYTES


def test_same_plaintext_different_envelopes(cipher):
    first = cipher.encrypt(b"same")
    second = cipher.encrypt(b"same")
    assert first != second
    assert base64.b64decode(first)[:NONCE_BYTES] != base64.b64decode(second)[:NONCE_BYTES]


def test_every_bit_flip_detected(cipher):
    raw = bytearray(base64.b64decode(cipher.encrypt(b"db-pass")))
    for index in range(len(raw)):
        for bit in range(8):
            tampered = bytearray(raw)
            tampered[index] ^= 1 << bit
            with pytest.raises(DecryptionFailure):
                cipher.decrypt(base64.b64encode(bytes(tampered)).decode())


def test_wrong_key_fails(cipher):
    envelope = cipher.encrypt(b"secret")
    other = SecretCipher(StaticKeyProvider(os.urandom(32)))
    with pytest.raises(DecryptionFailure):
        other.decrypt(envelope)


@pytest.mark.parametrize(
    "envelope",
    ["", "not base64!!", base64.b64encode(b"x" * (NONCE_BYTES + TAG_BYTES - 1)).decode()],
)
def test_malformed_envelopes_fail(cipher, envelope):
    with pytest.raises(DecryptionFailure):
        cipher.decrypt(envelope)


def test_key_provider_failure_on_encrypt():
    with pytest.raises(EncryptionFailure):
        SecretCipher(_BrokenProvider()).encrypt(b"x")


def test_key_provider_failure_on_decrypt(cipher):
    envelope = cipher.encrypt(b"x")
    with pytest.raises(DecryptionFailure):
        SecretCipher(_BrokenProvider()).decrypt(envelope)


def test_wrong_length_key_refused():
    with pytest.raises(EncryptionFailure):
        SecretCipher(_ShortKeyProvider()).encrypt(b"x")
    with pytest.raises(KeyProviderError):
        StaticKeyProvider(b"too short")
