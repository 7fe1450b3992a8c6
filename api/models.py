"""
API request and response models for the IDAM-PAM REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py,
vault/models.py and audit/models.py, which own the internal domain
representation. Route handlers map between the two.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

USERNAME_PATTERN = r"^[A-Za-z0-9_.@-]+$"


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Every non-2xx response body: {"error": {"code": ..., "message": ...}}."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=64, pattern=USERNAME_PATTERN)
    email: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class RegisterResponse(BaseModel):
    message: str
    user_id: str


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    totp_code: Optional[str] = Field(default=None, max_length=16)


class LoginUser(BaseModel):
    id: str
    username: str
    email: Optional[str] = None


class LoginResponse(BaseModel):
    """200 body for a completed login. Also used for the TOTP prompt (token=None)."""

    token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    user: Optional[LoginUser] = None
    requires_totp: bool = False
    message: Optional[str] = None


class MeResponse(BaseModel):
    user_id: str
    username: str
    email: Optional[str]
    roles: list[str]
    totp_enabled: bool


class TOTPEnableResponse(BaseModel):
    secret: str
    qr_url: str


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class RoleResponse(BaseModel):
    id: str
    name: str
    description: str


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    email: Optional[str]
    is_active: bool
    created_at: str
    updated_at: str
    roles: Optional[list[RoleResponse]] = None


class UserPatch(BaseModel):
    is_active: Optional[bool] = None


class RoleAssign(BaseModel):
    """Body for POST /users/{id}/roles. Either role (name) or role_id must be given."""

    role: Optional[str] = Field(default=None, max_length=255)
    role_id: Optional[str] = Field(default=None, max_length=36)

    @model_validator(mode="after")
    def require_one(self) -> "RoleAssign":
        if not self.role and not self.role_id:
            raise ValueError("role or role_id is required")
        return self


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


class SecretCreate(BaseModel):
    # No str_strip_whitespace here: data must be stored byte-for-byte.
    name: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=2000)
    data: str = Field(max_length=65536)


class SecretCreatedResponse(BaseModel):
    id: str
    message: str


class SecretSummary(BaseModel):
    """List view -- never carries the decrypted data."""

    id: str
    name: str
    description: str
    created_by: str
    created_by_username: str
    created_at: str
    updated_at: str


class SecretResponse(BaseModel):
    id: str
    name: str
    description: str
    data: str
    created_by: str
    created_at: str
    updated_at: str


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditEventResponse(BaseModel):
    id: str
    user_id: Optional[str]
    username: str
    action: str
    resource: str
    resource_id: Optional[str]
    details: dict[str, Any]
    ip_address: str
    user_agent: str
    created_at: str
