"""Unit tests for auth/access.py and the role side of auth/store.py."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from auth.access import AccessGate
from auth.models import Identity, RoleBinding
from auth.store import ADMIN_ROLE, USER_ROLE


@pytest.fixture
def gate(identity_store) -> AccessGate:
    return AccessGate(identity_store)


@pytest.fixture
def alice_id(identity_store) -> str:
    return identity_store.create_identity(Identity(username="alice", password_hash="00:00"))


def test_no_binding_means_no_role(gate, alice_id):
    assert gate.has_role(alice_id, ADMIN_ROLE) is False
    assert gate.is_admin(alice_id) is False
    assert gate.resolve(alice_id) == frozenset()


def test_binding_grants_role(gate, identity_store, alice_id):
    assert identity_store.assign_role(alice_id, ADMIN_ROLE) is True
    assert gate.is_admin(alice_id) is True


def test_revoking_binding_removes_role(gate, identity_store, alice_id):
    identity_store.assign_role(alice_id, ADMIN_ROLE)
    assert identity_store.revoke_role(alice_id, ADMIN_ROLE) is True
    assert gate.is_admin(alice_id) is False


def test_assign_is_idempotent(identity_store, alice_id):
    assert identity_store.assign_role(alice_id, USER_ROLE) is True
    assert identity_store.assign_role(alice_id, USER_ROLE) is False
    assert identity_store.get_role_names(alice_id) == [USER_ROLE]


def test_assign_unknown_role_or_identity(identity_store, alice_id):
    with pytest.raises(LookupError):
        identity_store.assign_role(alice_id, "superuser")
    with pytest.raises(LookupError):
        identity_store.assign_role("no-such-id", USER_ROLE)


def test_user_role_permissions(gate, identity_store, alice_id):
    identity_store.assign_role(alice_id, USER_ROLE)
    assert gate.resolve(alice_id) == frozenset({"users.read", "secrets.read", "secrets.write", "audit.read"})
    assert gate.has_permission(alice_id, "secrets.write")
    assert not gate.has_permission(alice_id, "users.write")


def test_admin_role_permissions_are_union(gate, identity_store, alice_id):
    identity_store.assign_role(alice_id, USER_ROLE)
    identity_store.assign_role(alice_id, ADMIN_ROLE)
    granted = gate.resolve(alice_id)
    assert {"users.write", "roles.write", "audit.read"} <= granted


def test_seed_is_idempotent(identity_store):
    identity_store._seed()
    assert sorted(r.name for r in identity_store.list_roles()) == [ADMIN_ROLE, USER_ROLE]


def test_store_failure_denies(caplog):
    store = MagicMock()
    store.has_role.side_effect = SQLAlchemyError("database is locked")
    store.get_permissions.side_effect = SQLAlchemyError("database is locked")
    gate = AccessGate(store)
    with caplog.at_level("ERROR", logger="idampam.access"):
        assert gate.is_admin("user-1") is False
        assert gate.resolve("user-1") == frozenset()
        assert gate.has_permission("user-1", "audit.read") is False
    assert "denying" in caplog.text


def test_unexpected_lookup_error_also_denies(caplog):
    store = MagicMock()
    store.has_role.side_effect = RuntimeError("connection pool exhausted")
    store.get_permissions.side_effect = KeyError("role_id")
    gate = AccessGate(store)
    with caplog.at_level("ERROR", logger="idampam.access"):
        assert gate.is_admin("user-1") is False
        assert gate.resolve("user-1") == frozenset()
    assert "connection pool exhausted" in caplog.text


def test_list_bindings(identity_store, alice_id):
    assert identity_store.list_bindings(alice_id) == []
    identity_store.assign_role(alice_id, USER_ROLE)
    identity_store.assign_role(alice_id, ADMIN_ROLE)
    assert identity_store.list_bindings(alice_id) == [
        RoleBinding(identity_id=alice_id, role_name=ADMIN_ROLE),
        RoleBinding(identity_id=alice_id, role_name=USER_ROLE),
    ]
