"""
tests/conftest.py -- Shared test fixtures for IDAM-PAM tests.

This module provides:
  - make_test_stores(): isolated named shared-memory DBs for the three stores
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus an admin token for API integration tests
  - security: a SecurityConfig with random key material for unit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment must be set before any api/ or core/ import so get_settings()
auto-generates keys (DEBUG), accepts the TestClient Host header, and does not
rate-limit the dozens of logins the suite performs.
"""

from __future__ import annotations

import os
import secrets
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any core/api import -- get_settings() is cached.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app, attach_components
from audit.store import AuditStore
from auth.models import Identity
from auth.passwords import CredentialVerifier
from auth.store import ADMIN_ROLE, USER_ROLE, IdentityStore
from auth.tokens import TokenIssuer
from core.config import SecurityConfig
from vault.cipher import StaticKeyProvider
from vault.store import SecretStore

ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "testpass123"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_stores(db_suffix: str) -> tuple[IdentityStore, SecretStore, AuditStore]:
    """Create three stores over one named shared-memory SQLite database.

    Args:
        db_suffix: Unique string appended to the DB name so test modules don't
                   share state.
    """
    url = f"sqlite:///file:test_idampam_{db_suffix}?mode=memory&cache=shared&uri=true"
    return IdentityStore(url), SecretStore(url), AuditStore(url)


def make_security() -> SecurityConfig:
    return SecurityConfig(
        signing_key=secrets.token_hex(32),
        key_provider=StaticKeyProvider(secrets.token_bytes(32)),
        totp_issuer="IDAM-PAM Platform",
    )


def _patch_lifespan(security: SecurityConfig, stores: tuple[IdentityStore, SecretStore, AuditStore]):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        attach_components(app, security, *stores)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def security() -> SecurityConfig:
    return make_security()


@pytest.fixture
def identity_store() -> Generator[IdentityStore, None, None]:
    store = IdentityStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def audit_store() -> Generator[AuditStore, None, None]:
    store = AuditStore("sqlite:///:memory:")
    yield store
    store.close()


# ---------------------------------------------------------------------------
# Module-scoped API fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use isolated in-memory stores. The admin
    identity holds both the admin and user roles.
    """
    suffix = request.module.__name__.replace(".", "_")
    stores = make_test_stores(suffix)
    identities = stores[0]
    security = make_security()

    admin_id = identities.create_identity(
        Identity(username=ADMIN_USERNAME, password_hash=CredentialVerifier().hash(ADMIN_PASSWORD))
    )
    identities.assign_role(admin_id, USER_ROLE)
    identities.assign_role(admin_id, ADMIN_ROLE)
    token = TokenIssuer(security.signing_key).issue(admin_id, ADMIN_USERNAME)

    app.router.lifespan_context = _patch_lifespan(security, stores)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin_id

    for store in stores:
        store.close()


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register_and_login(client: TestClient, username: str, password: str) -> tuple[str, str]:
    """Register a fresh identity through the API and return (user_id, token)."""
    resp = client.post("/api/v1/auth/register", json={"username": username, "password": password})
    assert resp.status_code == 201, resp.text
    user_id = resp.json()["user_id"]
    resp = client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return user_id, resp.json()["token"]
