"""
api/routes/v1/users.py -- Identity listing and admin-only identity mutations.

Routes:
  GET   /api/v1/users               -- list identities (any authenticated caller)
  GET   /api/v1/users/{id}          -- one identity with its roles
  PUT   /api/v1/users/{id}          -- toggle is_active (admin only; PATCH also accepted)
  POST  /api/v1/users/{id}/roles    -- bind a role (admin only)

Read endpoints are open to every authenticated identity; mutations go through
require_admin, which answers 403 -- distinct from the 401 for a bad token.

[M4] The update blocks self-deactivation so an admin cannot lock themselves out.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import MessageResponse, RoleAssign, RoleResponse, UserPatch, UserResponse
from audit.models import AuditAction, RoleAssignDetail, ResourceType, UserUpdateDetail
from audit.recorder import AuditRecorder
from auth.dependencies import get_current_user, request_origin, require_admin
from auth.models import Identity
from auth.store import IdentityStore

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": "User not found"})


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, current_user: Identity = Depends(get_current_user)) -> list[UserResponse]:
    store: IdentityStore = request.app.state.identities
    recorder: AuditRecorder = request.app.state.audit
    identities = store.list_identities()
    recorder.record(current_user.id, AuditAction.USERS_LIST, ResourceType.USERS, origin=request_origin(request))
    return [_to_response(i) for i in identities]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: str, current_user: Identity = Depends(get_current_user)) -> UserResponse:
    store: IdentityStore = request.app.state.identities
    recorder: AuditRecorder = request.app.state.audit

    target = store.get_by_id(user_id)
    if target is None:
        raise _not_found()
    role_names = {b.role_name for b in store.list_bindings(target.id)}
    roles = [
        RoleResponse(id=r.id, name=r.name, description=r.description)
        for r in store.list_roles()
        if r.name in role_names
    ]
    recorder.record(
        current_user.id,
        AuditAction.USERS_READ,
        ResourceType.USERS,
        resource_id=target.id,
        origin=request_origin(request),
    )
    return _to_response(target, roles)


@router.api_route("/users/{user_id}", methods=["PUT", "PATCH"], response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserPatch,
    current_user: Identity = Depends(require_admin),
) -> UserResponse:
    store: IdentityStore = request.app.state.identities
    recorder: AuditRecorder = request.app.state.audit

    target = store.get_by_id(user_id)
    if target is None:
        raise _not_found()
    if body.is_active is None:
        raise HTTPException(status_code=400, detail={"code": "no_changes", "message": "No fields to update."})
    if not body.is_active and target.id == current_user.id:  # [M4]
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
        )

    store.set_active(target.id, body.is_active)
    recorder.record(
        current_user.id,
        AuditAction.USERS_UPDATE,
        ResourceType.USERS,
        resource_id=target.id,
        detail=UserUpdateDetail(is_active=body.is_active),
        origin=request_origin(request),
    )
    return _to_response(store.get_by_id(target.id))


@router.post("/users/{user_id}/roles", response_model=MessageResponse)
def assign_role(
    request: Request,
    user_id: str,
    body: RoleAssign,
    current_user: Identity = Depends(require_admin),
) -> MessageResponse:
    store: IdentityStore = request.app.state.identities
    recorder: AuditRecorder = request.app.state.audit

    if store.get_by_id(user_id) is None:
        raise _not_found()
    role = store.get_role_by_id(body.role_id) if body.role_id else store.get_role_by_name(body.role)
    if role is None:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "Role not found"})

    created = store.assign_role(user_id, role.name)
    if created:
        recorder.record(
            current_user.id,
            AuditAction.USERS_ASSIGN_ROLE,
            ResourceType.USERS,
            resource_id=user_id,
            detail=RoleAssignDetail(role=role.name),
            origin=request_origin(request),
        )
    return MessageResponse(message="Role assigned successfully")


def _to_response(identity: Identity | None, roles: list[RoleResponse] | None = None) -> UserResponse:
    if identity is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return UserResponse(
        id=identity.id,
        username=identity.username,
        email=identity.email,
        is_active=identity.is_active,
        created_at=identity.created_at or "",
        updated_at=identity.updated_at or "",
        roles=roles,
    )
