"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one auth method is accepted: `Authorization: Bearer <token>`. The token
is verified by the TokenIssuer on app.state, then the identity it names is
re-read from the store so a deactivated or deleted account is refused even
while its token is still within its 24h window.

get_current_user() raises TokenInvalid (401) if unauthenticated.
require_admin() wraps it and raises AuthorizationDenied (403) if the AccessGate
does not report the admin role. The API layer's exception handler turns both
into the standard error envelope.

Layer rule: may import from fastapi (Request) because this module is part of
the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from audit.models import RequestOrigin
from auth.access import AccessGate
from auth.models import Identity
from auth.store import IdentityStore
from auth.tokens import TokenIssuer
from core.errors import AuthorizationDenied, TokenInvalid


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        return token or None
    return None


def get_current_user(request: Request) -> Identity:
    """Require a valid bearer token for an existing, active identity.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: Identity = Depends(get_current_user)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise TokenInvalid("Authorization header required")
    issuer: TokenIssuer = request.app.state.tokens
    claims = issuer.verify(token)
    store: IdentityStore = request.app.state.identities
    identity = store.get_by_id(claims.subject_id)
    if identity is None or not identity.is_active:
        raise TokenInvalid()
    return identity


def require_admin(request: Request) -> Identity:
    """Require the admin role. 401 if unauthenticated, 403 if not admin."""
    identity = get_current_user(request)
    gate: AccessGate = request.app.state.access
    if not gate.is_admin(identity.id):
        raise AuthorizationDenied()
    return identity


def request_origin(request: Request) -> RequestOrigin:
    """Caller address and client agent string for audit events."""
    return RequestOrigin(
        ip_address=request.client.host if request.client else "unknown",
        user_agent=request.headers.get("User-Agent", ""),
    )
