"""
audit/models.py -- Audit event shapes.

The action tag set and the detail payloads are both closed: every event an
auditor can see has one of the AuditAction values below and one of the detail
dataclasses, tagged by its `kind` field. Serialization is therefore
predictable -- sorted-key JSON of the dataclass fields.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Union


class AuditAction(str, Enum):
    USER_REGISTER = "user.register"
    LOGIN_SUCCESS = "auth.login.success"
    LOGIN_FAILED = "auth.login.failed"
    TOTP_ENABLE = "totp.enable"
    USERS_LIST = "users.list"
    USERS_READ = "users.read"
    USERS_UPDATE = "users.update"
    USERS_ASSIGN_ROLE = "users.assign_role"
    SECRETS_CREATE = "secrets.create"
    SECRETS_LIST = "secrets.list"
    SECRETS_READ = "secrets.read"
    SECRETS_DELETE = "secrets.delete"
    AUDIT_LIST = "audit.list"


class ResourceType(str, Enum):
    AUTH = "auth"
    USERS = "users"
    SECRETS = "secrets"
    AUDIT = "audit"


# ---------------------------------------------------------------------------
# Detail payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmptyDetail:
    kind: str = field(default="empty", init=False)


@dataclass(frozen=True)
class LoginFailedDetail:
    reason: str  # user_not_found | user_inactive | invalid_password | invalid_totp
    username: str | None = None
    kind: str = field(default="login_failed", init=False)


@dataclass(frozen=True)
class SecretDetail:
    name: str
    kind: str = field(default="secret", init=False)


@dataclass(frozen=True)
class UserUpdateDetail:
    is_active: bool
    kind: str = field(default="user_update", init=False)


@dataclass(frozen=True)
class RoleAssignDetail:
    role: str
    kind: str = field(default="role_assign", init=False)


@dataclass(frozen=True)
class PageDetail:
    limit: int
    offset: int
    kind: str = field(default="page", init=False)


AuditDetail = Union[EmptyDetail, LoginFailedDetail, SecretDetail, UserUpdateDetail, RoleAssignDetail, PageDetail]


def serialize_detail(detail: AuditDetail) -> str:
    return json.dumps(asdict(detail), sort_keys=True, separators=(",", ":"))


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestOrigin:
    ip_address: str = "unknown"
    user_agent: str = ""


@dataclass
class AuditEvent:
    """One appended row. Never updated or deleted once written.

    actor_id is None for pre-authentication failures (unknown username).
    detail is the parsed JSON of the stored payload when read back.
    """

    action: str
    resource_type: str
    actor_id: str | None = None
    resource_id: str | None = None
    detail: dict = field(default_factory=dict)
    ip_address: str = ""
    user_agent: str = ""
    id: str | None = None
    created_at: str = ""  # ISO 8601, set by store on insert
    actor_username: str | None = None  # joined on read


@dataclass(frozen=True)
class AppendResult:
    """Outcome of AuditRecorder.record(). Routes may ignore it; tests inspect it."""

    status: str  # "written" | "skipped" | "failed"
    event_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"
