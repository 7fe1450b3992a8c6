"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the platform happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY).

  SecurityConfig: an immutable value built ONCE from Settings at startup and
      handed to each component's constructor. Components never look keys up
      through get_settings() themselves, so tests can build components with
      any key material they like.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. HS256 signing
       relies on key entropy.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY or
       ENCRYPTION_KEY is a hard startup failure. A random ENCRYPTION_KEY in
       production would make every stored secret unreadable after a restart.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
vault/, or audit/.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from vault.cipher import KeyProvider

logger = logging.getLogger("idampam.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent.parent / 'idampam.db'}"

ENCRYPTION_KEY_BYTES = 32


def decode_key(value: str) -> bytes:
    """Decode a 32-byte key given as 64 hex chars or standard base64.

    Raises ValueError if the value is neither or decodes to the wrong length.
    """
    value = value.strip()
    raw: bytes | None = None
    if len(value) == ENCRYPTION_KEY_BYTES * 2:
        try:
            raw = bytes.fromhex(value)
        except ValueError:
            raw = None
    if raw is None:
        try:
            raw = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("ENCRYPTION_KEY must be 64 hex chars or base64.") from exc
    if len(raw) != ENCRYPTION_KEY_BYTES:
        raise ValueError(f"ENCRYPTION_KEY must decode to {ENCRYPTION_KEY_BYTES} bytes, got {len(raw)}.")
    return raw


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The validator below
    # either generates a dev value or raises, so callers never see "".
    secret_key: str = ""
    encryption_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Second factor
    # ------------------------------------------------------------------

    totp_issuer: str = "IDAM-PAM Platform"

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_keys(self) -> "Settings":
        """Enforce key policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate missing keys with a warning.
            Tokens and stored secrets will not survive a restart.

        Production mode: refuse to start if either key is missing.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Tokens will not survive restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        if not self.encryption_key:
            if self.debug:
                self.encryption_key = secrets.token_hex(ENCRYPTION_KEY_BYTES)
                logger.warning("Using auto-generated ENCRYPTION_KEY. Stored secrets will not survive restarts.")
            else:
                raise ValueError("ENCRYPTION_KEY is required in production mode.")
        decode_key(self.encryption_key)
        return self


@dataclass(frozen=True)
class SecurityConfig:
    """Process-wide key material, built once at startup and read-only afterwards."""

    signing_key: str
    key_provider: KeyProvider
    totp_issuer: str = "IDAM-PAM Platform"


def build_security_config(settings: Settings) -> SecurityConfig:
    from vault.cipher import StaticKeyProvider

    return SecurityConfig(
        signing_key=settings.secret_key,
        key_provider=StaticKeyProvider(decode_key(settings.encryption_key)),
        totp_issuer=settings.totp_issuer,
    )


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
