"""
audit/store.py -- Append-only SQLAlchemy Core store for audit events.

The repository exposes exactly two operations: append() and list_events().
There is no update or delete method; the append-only guarantee is the absence
of any code path that could modify a written row.

Security: all queries use bound parameters.
"""

from __future__ import annotations

import json

from sqlalchemy import Column, MetaData, String, Table, Text, select
from sqlalchemy.engine import Engine

from audit.models import AuditEvent
from core.db import make_engine, new_id, now_iso

_metadata = MetaData()

_audit_logs = Table(
    "audit_logs",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), index=True),  # NULL for pre-auth failures
    Column("action", String(64), nullable=False),
    Column("resource", String(64), nullable=False),
    Column("resource_id", String(36)),
    Column("details", Text, nullable=False),  # serialized detail payload
    Column("ip_address", String(64)),
    Column("user_agent", Text),
    Column("created_at", String(32), nullable=False, index=True),
)


class AuditStore:
    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def append(
        self,
        *,
        actor_id: str | None,
        action: str,
        resource_type: str,
        resource_id: str | None,
        details: str,
        ip_address: str,
        user_agent: str,
    ) -> str:
        """Insert one event row and return its id. Raises SQLAlchemyError on failure."""
        event_id = new_id()
        with self.engine.begin() as conn:
            conn.execute(
                _audit_logs.insert().values(
                    id=event_id,
                    user_id=actor_id,
                    action=action,
                    resource=resource_type,
                    resource_id=resource_id,
                    details=details,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    created_at=now_iso(),
                )
            )
        return event_id

    def list_events(self, actor_id: str | None = None, limit: int = 100, offset: int = 0) -> list[AuditEvent]:
        """Return events newest first. actor_id=None means every actor (admin view)."""
        query = select(_audit_logs)
        if actor_id is not None:
            query = query.where(_audit_logs.c.user_id == actor_id)
        query = query.order_by(_audit_logs.c.created_at.desc(), _audit_logs.c.id).limit(limit).offset(offset)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_event(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


def _row_to_event(row) -> AuditEvent:
    try:
        detail = json.loads(row.details) if row.details else {}
    except ValueError:
        detail = {}
    return AuditEvent(
        id=row.id,
        actor_id=row.user_id,
        action=row.action,
        resource_type=row.resource,
        resource_id=row.resource_id,
        detail=detail,
        ip_address=row.ip_address or "",
        user_agent=row.user_agent or "",
        created_at=row.created_at,
    )
