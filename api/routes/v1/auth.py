"""
api/routes/v1/auth.py -- Registration, login, identity and TOTP endpoints.

Routes:
  POST /api/v1/auth/register   -- create a local account (public)
  POST /api/v1/auth/login      -- password (+ TOTP) login; returns a bearer token
  GET  /api/v1/auth/me         -- current identity (requires auth)
  POST /api/v1/totp/enable     -- generate and store a TOTP secret (requires auth)

Security:
  [H2] POST /login and /register are rate-limited per IP.
  [C1] LoginFlow provides timing equalization -- use it, never inline the checks.
  [M5] Cache-Control: no-store on login responses.
  Unknown username and wrong password produce the same 401 body.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter, login_rate_limit
from api.models import (
    LoginRequest,
    LoginResponse,
    LoginUser,
    MeResponse,
    RegisterRequest,
    RegisterResponse,
    TOTPEnableResponse,
)
from audit.models import AuditAction, ResourceType
from audit.recorder import AuditRecorder
from auth.dependencies import get_current_user, request_origin
from auth.login import LoginFlow, LoginState
from auth.models import Identity
from auth.passwords import CredentialVerifier
from auth.store import USER_ROLE, IdentityStore
from auth.tokens import TOKEN_LIFETIME_SECONDS
from auth.totp import TOTPAuthenticator

router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create a local identity bound to the "user" role."""
    store: IdentityStore = request.app.state.identities
    verifier: CredentialVerifier = request.app.state.verifier
    recorder: AuditRecorder = request.app.state.audit

    identity = Identity(
        username=body.username,
        email=body.email or None,
        password_hash=verifier.hash(body.password),
    )
    try:
        user_id = store.create_identity(identity)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "Username or email already exists"},
        ) from exc
    store.assign_role(user_id, USER_ROLE)

    recorder.record(
        user_id,
        AuditAction.USER_REGISTER,
        ResourceType.USERS,
        resource_id=user_id,
        origin=request_origin(request),
    )
    return RegisterResponse(message="User registered successfully", user_id=user_id)


@limiter.limit(login_rate_limit)  # [H2]
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username, password and (if enabled) a TOTP code.

    Rejections raise from LoginFlow and are rendered by the API exception
    handler. A TOTP-enabled account without a code gets a 200 prompt, not an
    error.
    """
    flow: LoginFlow = request.app.state.login_flow
    result = flow.login(body.username, body.password, body.totp_code, origin=request_origin(request))

    if result.state is LoginState.TOTP_REQUIRED:
        content = LoginResponse(requires_totp=True, message="TOTP code required")
    else:
        content = LoginResponse(
            token=result.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=TOKEN_LIFETIME_SECONDS,
            user=LoginUser(
                id=result.identity.id,
                username=result.identity.username,
                email=result.identity.email,
            ),
        )
    resp = JSONResponse(status_code=200, content=content.model_dump(exclude_none=True))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, current_user: Identity = Depends(get_current_user)) -> MeResponse:
    store: IdentityStore = request.app.state.identities
    return MeResponse(
        user_id=current_user.id,
        username=current_user.username,
        email=current_user.email,
        roles=store.get_role_names(current_user.id),
        totp_enabled=current_user.totp_enabled,
    )


@router.post("/totp/enable", response_model=TOTPEnableResponse)
def enable_totp(request: Request, current_user: Identity = Depends(get_current_user)) -> TOTPEnableResponse:
    """Generate a new TOTP secret for the caller and return its provisioning URI.

    Calling this again replaces the secret; the previous enrollment stops working.
    """
    store: IdentityStore = request.app.state.identities
    totp: TOTPAuthenticator = request.app.state.totp
    recorder: AuditRecorder = request.app.state.audit

    secret = totp.generate_secret()
    store.set_totp_secret(current_user.id, secret)
    uri = totp.enrollment_uri(secret, current_user.username, request.app.state.security.totp_issuer)

    recorder.record(
        current_user.id,
        AuditAction.TOTP_ENABLE,
        ResourceType.USERS,
        resource_id=current_user.id,
        origin=request_origin(request),
    )
    return TOTPEnableResponse(secret=secret, qr_url=uri)
