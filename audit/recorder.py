"""
audit/recorder.py -- Best-effort audit appends that never fail the caller.

Call record() after the primary operation's outcome is known and before the
response is returned. A failed append is counted in `failures` and logged at
ERROR on idampam.audit -- the response already decided by the primary
operation goes out unchanged.

Actions in EXEMPT_ACTIONS (reading one's own audit history) are not recorded,
otherwise every audit page view would add a row to the history it shows.
"""

from __future__ import annotations

import logging
import threading

from sqlalchemy.exc import SQLAlchemyError

from audit.models import AppendResult, AuditAction, AuditDetail, EmptyDetail, RequestOrigin, ResourceType, serialize_detail
from audit.store import AuditStore

logger = logging.getLogger("idampam.audit")

EXEMPT_ACTIONS: frozenset[AuditAction] = frozenset({AuditAction.AUDIT_LIST})


class AuditRecorder:
    def __init__(self, store: AuditStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._failures = 0

    @property
    def failures(self) -> int:
        """Number of appends that failed since startup."""
        return self._failures

    def record(
        self,
        actor_id: str | None,
        action: AuditAction,
        resource_type: ResourceType,
        resource_id: str | None = None,
        detail: AuditDetail | None = None,
        origin: RequestOrigin | None = None,
    ) -> AppendResult:
        if action in EXEMPT_ACTIONS:
            return AppendResult(status="skipped")
        origin = origin or RequestOrigin()
        try:
            event_id = self._store.append(
                actor_id=actor_id,
                action=action.value,
                resource_type=resource_type.value,
                resource_id=resource_id,
                details=serialize_detail(detail or EmptyDetail()),
                ip_address=origin.ip_address,
                user_agent=origin.user_agent,
            )
        except SQLAlchemyError as exc:
            with self._lock:
                self._failures += 1
            logger.error(
                "Audit append failed: action=%s resource=%s actor=%s error=%s",
                action.value,
                resource_type.value,
                actor_id,
                exc.__class__.__name__,
            )
            return AppendResult(status="failed", error=str(exc))
        return AppendResult(status="written", event_id=event_id)
