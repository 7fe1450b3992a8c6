"""
auth/access.py -- Role and capability resolution for privileged routes.

AccessGate fails closed: a missing binding, a store outage, or any other
lookup error comes back as "not granted". The error is logged on
idampam.access so an outage that locks admins out is visible, but callers
never have to handle it.

resolve() returns the full capability set so routes can ask for a specific
permission; has_role()/is_admin() cover the binary admin check.
"""

from __future__ import annotations

import logging

from auth.store import ADMIN_ROLE, IdentityStore

logger = logging.getLogger("idampam.access")


class AccessGate:
    def __init__(self, store: IdentityStore) -> None:
        self._store = store

    def resolve(self, identity_id: str) -> frozenset[str]:
        """Return the permission names granted to identity_id (empty on any lookup error)."""
        try:
            return frozenset(self._store.get_permissions(identity_id))
        except Exception:
            logger.exception("Permission lookup failed for %s; denying", identity_id)
            return frozenset()

    def has_role(self, identity_id: str, role_name: str) -> bool:
        try:
            return self._store.has_role(identity_id, role_name)
        except Exception:
            logger.exception("Role lookup failed for %s/%s; denying", identity_id, role_name)
            return False

    def has_permission(self, identity_id: str, permission: str) -> bool:
        return permission in self.resolve(identity_id)

    def is_admin(self, identity_id: str) -> bool:
        return self.has_role(identity_id, ADMIN_ROLE)
