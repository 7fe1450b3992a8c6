"""
auth/totp.py -- Time-based one-time codes (RFC 6238) for the second factor.

Codes are HMAC-SHA1 over the 30-second step counter, truncated to 6 digits,
which is what every mainstream authenticator app computes for an otpauth URI
without explicit algorithm/digits/period parameters.

validate_code() accepts the current step and one step either side to tolerate
clock drift between server and phone. Anything that is not exactly six ASCII
digits is rejected before any HMAC work is done.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
import struct
import time
from urllib.parse import quote

SECRET_BYTES = 20
STEP_SECONDS = 30
DIGITS = 6
SKEW_STEPS = 1


class TOTPAuthenticator:
    def generate_secret(self) -> str:
        """Return 20 random bytes as a 32-character base32 string."""
        return base64.b32encode(secrets.token_bytes(SECRET_BYTES)).decode("ascii")

    def enrollment_uri(self, secret: str, account: str, issuer: str) -> str:
        """Build the otpauth:// provisioning URI. Rendering it as a QR code is the client's job."""
        issuer_q = quote(issuer, safe="")
        account_q = quote(account, safe="@.")
        return f"otpauth://totp/{issuer_q}:{account_q}?secret={secret}&issuer={issuer_q}"

    def code_at(self, secret: str, timestamp: float) -> str:
        key = _decode_secret(secret)
        counter = int(timestamp // STEP_SECONDS)
        digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()
        offset = digest[-1] & 0x0F
        value = (struct.unpack(">I", digest[offset : offset + 4])[0] & 0x7FFFFFFF) % (10**DIGITS)
        return str(value).zfill(DIGITS)

    def validate_code(self, code: str, secret: str, now: float | None = None) -> bool:
        if not isinstance(code, str) or len(code) != DIGITS or not (code.isascii() and code.isdigit()):
            return False
        if now is None:
            now = time.time()
        try:
            candidates = [self.code_at(secret, now + step * STEP_SECONDS) for step in range(-SKEW_STEPS, SKEW_STEPS + 1)]
        except ValueError:
            return False
        # Check every candidate so timing does not reveal which step matched.
        matched = False
        for candidate in candidates:
            matched |= hmac.compare_digest(candidate, code)
        return matched


def _decode_secret(secret: str) -> bytes:
    """Decode a base32 secret, tolerating lowercase, spaces, and missing padding."""
    cleaned = secret.replace(" ", "").upper()
    cleaned += "=" * ((8 - len(cleaned) % 8) % 8)
    try:
        key = base64.b32decode(cleaned)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("TOTP secret is not valid base32") from exc
    if not key:
        raise ValueError("TOTP secret is empty")
    return key
