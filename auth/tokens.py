"""
auth/tokens.py -- Bearer token issue and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub/user_id, username, iat and exp
       (iat + 24h). The algorithm list passed to decode is fixed to HS256 so a
       token claiming "none" or an asymmetric algorithm is rejected.

  Expiry: python-jose's own exp check is disabled and replaced with an explicit
       `exp > now` comparison. This keeps the boundary exact (no leeway) and
       lets tests verify against a chosen clock instead of patching time.

  Renewal: verify() never refreshes or extends a token. A new token requires
       a fresh login.

  Signing key: passed in via SecurityConfig at construction. This module never
       reads settings itself.

Layer rule: no imports from api/, vault/, or audit/.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from jose import JWTError, jwt

from auth.models import TokenClaims
from core.errors import TokenInvalid

logger = logging.getLogger("idampam.auth")

ALGORITHM = "HS256"
TOKEN_LIFETIME_SECONDS = 24 * 60 * 60


class TokenIssuer:
    """Mints and verifies HS256 identity tokens under one immutable signing key."""

    def __init__(self, signing_key: str) -> None:
        if not signing_key:
            raise ValueError("signing_key must not be empty")
        self._signing_key = signing_key

    def issue(self, subject_id: str, username: str, now: float | None = None) -> str:
        issued_at = int(now if now is not None else time.time())
        payload = {
            "sub": subject_id,
            "user_id": subject_id,
            "username": username,
            "iat": issued_at,
            "exp": issued_at + TOKEN_LIFETIME_SECONDS,
        }
        return jwt.encode(payload, self._signing_key, algorithm=ALGORITHM)

    def verify(self, token: str, now: float | None = None) -> TokenClaims:
        """Return the verified claims or raise TokenInvalid.

        Signature, algorithm, structure and expiry failures all raise the same
        exception. The reason is logged at DEBUG only.
        """
        try:
            payload = jwt.decode(
                token,
                self._signing_key,
                algorithms=[ALGORITHM],
                options={"verify_exp": False, "verify_iat": False, "verify_aud": False},
            )
        except (JWTError, AttributeError, TypeError, ValueError) as exc:
            logger.debug("Token rejected: %s", exc)
            raise TokenInvalid() from exc

        subject_id = payload.get("user_id")
        username = payload.get("username")
        issued_at = payload.get("iat")
        expires_at = payload.get("exp")
        if not isinstance(subject_id, str) or not isinstance(username, str):
            raise TokenInvalid()
        if not _is_timestamp(issued_at) or not _is_timestamp(expires_at) or expires_at <= issued_at:
            raise TokenInvalid()

        current = now if now is not None else time.time()
        if expires_at <= current:
            logger.debug("Token rejected: expired for subject %s", subject_id)
            raise TokenInvalid("Token expired")

        return TokenClaims(
            subject_id=subject_id,
            username=username,
            issued_at=datetime.fromtimestamp(issued_at, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc),
        )


def _is_timestamp(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
