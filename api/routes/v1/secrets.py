"""
api/routes/v1/secrets.py -- Owner-scoped encrypted secret storage.

Routes:
  GET    /api/v1/secrets        -- caller's secrets, metadata only
  POST   /api/v1/secrets        -- encrypt and store a new secret
  GET    /api/v1/secrets/{id}   -- decrypt and return one secret
  DELETE /api/v1/secrets/{id}   -- delete one secret

IDOR guard: every store call passes current_user.id; the WHERE clause
requires both id and owner to match. Someone else's secret and a missing
secret both raise SecretNotFound, so the 404 body is identical.

Decryption failures are fatal for the request (500 crypto_error) and are not
retried -- they mean corrupted data or a misconfigured key.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError

from api.models import MessageResponse, SecretCreate, SecretCreatedResponse, SecretResponse, SecretSummary
from audit.models import AuditAction, ResourceType, SecretDetail
from audit.recorder import AuditRecorder
from auth.dependencies import get_current_user, request_origin
from auth.models import Identity
from core.errors import SecretNotFound
from vault.cipher import SecretCipher
from vault.models import SecretRecord
from vault.store import SecretStore

router = APIRouter()


@router.get("/secrets", response_model=list[SecretSummary])
def list_secrets(request: Request, current_user: Identity = Depends(get_current_user)) -> list[SecretSummary]:
    store: SecretStore = request.app.state.secrets
    recorder: AuditRecorder = request.app.state.audit
    records = store.list_for_owner(current_user.id)
    recorder.record(current_user.id, AuditAction.SECRETS_LIST, ResourceType.SECRETS, origin=request_origin(request))
    return [
        SecretSummary(
            id=r.id,
            name=r.name,
            description=r.description,
            created_by=r.owner_id,
            created_by_username=current_user.username,
            created_at=r.created_at,
            updated_at=r.updated_at,
        )
        for r in records
    ]


@router.post("/secrets", response_model=SecretCreatedResponse, status_code=201)
def create_secret(
    request: Request,
    body: SecretCreate,
    current_user: Identity = Depends(get_current_user),
) -> SecretCreatedResponse:
    store: SecretStore = request.app.state.secrets
    cipher: SecretCipher = request.app.state.cipher
    recorder: AuditRecorder = request.app.state.audit

    envelope = cipher.encrypt_text(body.data)
    record = SecretRecord(
        name=body.name,
        description=body.description,
        envelope=envelope,
        owner_id=current_user.id,
    )
    try:
        secret_id = store.create_secret(record)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A secret with that name already exists."},
        ) from exc

    recorder.record(
        current_user.id,
        AuditAction.SECRETS_CREATE,
        ResourceType.SECRETS,
        resource_id=secret_id,
        detail=SecretDetail(name=body.name),
        origin=request_origin(request),
    )
    return SecretCreatedResponse(id=secret_id, message="Secret created successfully")


@router.get("/secrets/{secret_id}", response_model=SecretResponse)
def get_secret(request: Request, secret_id: str, current_user: Identity = Depends(get_current_user)) -> SecretResponse:
    store: SecretStore = request.app.state.secrets
    cipher: SecretCipher = request.app.state.cipher
    recorder: AuditRecorder = request.app.state.audit

    record = store.get_for_owner(secret_id, current_user.id)
    if record is None:
        raise SecretNotFound()
    data = cipher.decrypt_text(record.envelope)

    recorder.record(
        current_user.id,
        AuditAction.SECRETS_READ,
        ResourceType.SECRETS,
        resource_id=record.id,
        detail=SecretDetail(name=record.name),
        origin=request_origin(request),
    )
    return SecretResponse(
        id=record.id,
        name=record.name,
        description=record.description,
        data=data,
        created_by=record.owner_id,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.delete("/secrets/{secret_id}", response_model=MessageResponse)
def delete_secret(request: Request, secret_id: str, current_user: Identity = Depends(get_current_user)) -> MessageResponse:
    store: SecretStore = request.app.state.secrets
    recorder: AuditRecorder = request.app.state.audit

    record = store.get_for_owner(secret_id, current_user.id)
    if record is None or not store.delete_for_owner(secret_id, current_user.id):
        raise SecretNotFound()

    recorder.record(
        current_user.id,
        AuditAction.SECRETS_DELETE,
        ResourceType.SECRETS,
        resource_id=record.id,
        detail=SecretDetail(name=record.name),
        origin=request_origin(request),
    )
    return MessageResponse(message="Secret deleted successfully")
