"""
api/routes/v1/audit.py -- Read access to the audit trail.

GET /api/v1/audit?limit=&offset=
  Admins see every event; everyone else sees only events they are the actor of.
  Listing is itself exempt from auditing (see audit.recorder.EXEMPT_ACTIONS).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.models import AuditEventResponse
from audit.models import AuditAction, PageDetail, ResourceType
from audit.recorder import AuditRecorder
from audit.store import AuditStore
from auth.access import AccessGate
from auth.dependencies import get_current_user, request_origin
from auth.models import Identity
from auth.store import IdentityStore

router = APIRouter()


@router.get("/audit", response_model=list[AuditEventResponse])
def list_audit_events(
    request: Request,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    current_user: Identity = Depends(get_current_user),
) -> list[AuditEventResponse]:
    gate: AccessGate = request.app.state.access
    audit_store: AuditStore = request.app.state.audit_store
    identities: IdentityStore = request.app.state.identities
    recorder: AuditRecorder = request.app.state.audit

    actor_filter = None if gate.is_admin(current_user.id) else current_user.id
    events = audit_store.list_events(actor_id=actor_filter, limit=limit, offset=offset)

    usernames: dict[str, str] = {}
    for event in events:
        if event.actor_id and event.actor_id not in usernames:
            actor = identities.get_by_id(event.actor_id)
            usernames[event.actor_id] = actor.username if actor else ""

    recorder.record(
        current_user.id,
        AuditAction.AUDIT_LIST,
        ResourceType.AUDIT,
        detail=PageDetail(limit=limit, offset=offset),
        origin=request_origin(request),
    )
    return [
        AuditEventResponse(
            id=e.id,
            user_id=e.actor_id,
            username=usernames.get(e.actor_id, "") if e.actor_id else "",
            action=e.action,
            resource=e.resource_type,
            resource_id=e.resource_id,
            details=e.detail,
            ip_address=e.ip_address,
            user_agent=e.user_agent,
            created_at=e.created_at,
        )
        for e in events
    ]
