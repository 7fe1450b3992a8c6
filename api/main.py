"""
api/main.py -- FastAPI application entry point for the IDAM-PAM platform.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the immutable SecurityConfig once, then the stores and the
components that receive it. Everything lives on app.state for the lifetime
of the process; route handlers only read it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.audit import router as audit_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.secrets import router as secrets_router
from api.routes.v1.users import router as users_router
from audit.recorder import AuditRecorder
from audit.store import AuditStore
from auth.access import AccessGate
from auth.login import LoginFlow
from auth.passwords import CredentialVerifier
from auth.store import IdentityStore
from auth.tokens import TokenIssuer
from auth.totp import TOTPAuthenticator
from core.config import SecurityConfig, build_security_config, get_settings
from core.errors import IdamError
from vault.cipher import SecretCipher
from vault.store import SecretStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("idampam.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def attach_components(
    app: FastAPI,
    security: SecurityConfig,
    identities: IdentityStore,
    secrets: SecretStore,
    audit_store: AuditStore,
) -> None:
    """Construct every component from explicit collaborators and publish it on app.state.

    Shared by the real lifespan and the test lifespan so both wire the same graph.
    """
    recorder = AuditRecorder(audit_store)
    verifier = CredentialVerifier()
    totp = TOTPAuthenticator()
    tokens = TokenIssuer(security.signing_key)

    app.state.security = security
    app.state.identities = identities
    app.state.secrets = secrets
    app.state.audit_store = audit_store
    app.state.audit = recorder
    app.state.verifier = verifier
    app.state.totp = totp
    app.state.tokens = tokens
    app.state.access = AccessGate(identities)
    app.state.cipher = SecretCipher(security.key_provider)
    app.state.login_flow = LoginFlow(identities, verifier, totp, tokens, recorder)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open stores on startup, dispose them on shutdown."""
    logger.info("IDAM-PAM API starting up")
    security = build_security_config(_settings)
    identities = IdentityStore(_settings.database_url)
    secrets = SecretStore(_settings.database_url)
    audit_store = AuditStore(_settings.database_url)
    attach_components(app, security, identities, secrets, audit_store)
    logger.info("Stores initialized (%d identities)", identities.count_identities())

    yield

    identities.close()
    secrets.close()
    audit_store.close()
    logger.info("IDAM-PAM API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="IDAM-PAM Platform API",
    description="Identity verification, bearer tokens, role-gated administration, encrypted secrets, audit trail.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(secrets_router, prefix="/api/v1", tags=["Secrets"])
app.include_router(audit_router, prefix="/api/v1", tags=["Audit"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(IdamError)
async def idam_error_handler(request: Request, exc: IdamError) -> JSONResponse:
    """Render a domain error. The message is the class's opaque caller-facing text."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s", exc.__class__.__name__, request.method, request.url.path)
    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(exclude_none=True),
    )
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(code="rate_limited", message="Too many requests.", detail=str(exc))
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Route handlers raise HTTPException with a {"code", "message"} dict as detail."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))).model_dump(
            exclude_none=True
        ),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler. The traceback goes to the log, never to the response body."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(code="internal_error", message="An unexpected error occurred.")
        ).model_dump(exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable. No rate limit and no
# auth -- load balancers must be able to poll it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, database reachability and the audit failure count."""
    database = "ok"
    try:
        request.app.state.identities.count_identities()
    except SQLAlchemyError:
        logger.exception("Health check database probe failed")
        database = "error"
    return HealthResponse(
        version=VERSION,
        components={
            "app": "ok",
            "database": database,
            "audit_write_failures": request.app.state.audit.failures,
        },
    )
