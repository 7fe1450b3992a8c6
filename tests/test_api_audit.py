"""
tests/test_api_audit.py -- Integration tests for GET /api/v1/audit.

Covers:
  - Admins see every actor's events; others see only their own
  - Login failures are recorded with a reason and no password
  - Listing the audit trail does not add to it
  - limit/offset bounds
"""

from __future__ import annotations

from conftest import auth_headers, register_and_login

AUDIT = "/api/v1/audit"


def test_user_sees_only_own_events(api_client):
    client, _, _ = api_client
    alice_id, alice_token = register_and_login(client, "alice", "Secr3t!")
    _, bob_token = register_and_login(client, "bob", "Secr3t!")
    client.get("/api/v1/secrets", headers=auth_headers(bob_token))

    events = client.get(AUDIT, headers=auth_headers(alice_token)).json()
    assert events
    assert {e["user_id"] for e in events} == {alice_id}
    assert {e["username"] for e in events} == {"alice"}
    assert {"user.register", "auth.login.success"} <= {e["action"] for e in events}


def test_admin_sees_everyone(api_client):
    client, admin_token, _ = api_client
    register_and_login(client, "carol", "Secr3t!")
    events = client.get(AUDIT, headers=auth_headers(admin_token)).json()
    assert "carol" in {e["username"] for e in events}


def test_failed_login_recorded(api_client):
    client, admin_token, _ = api_client
    client.post("/api/v1/auth/login", json={"username": "ghost", "password": "Hunter2-guess"})

    events = client.get(AUDIT, headers=auth_headers(admin_token)).json()
    failed = [e for e in events if e["action"] == "auth.login.failed" and e["details"].get("username") == "ghost"]
    assert len(failed) == 1
    assert failed[0]["user_id"] is None
    assert failed[0]["details"]["reason"] == "user_not_found"
    assert "Hunter2-guess" not in str(failed[0])


def test_listing_is_not_audited(api_client):
    client, admin_token, _ = api_client
    before = client.get(AUDIT, params={"limit": 500}, headers=auth_headers(admin_token)).json()
    after = client.get(AUDIT, params={"limit": 500}, headers=auth_headers(admin_token)).json()
    assert len(after) == len(before)
    assert not any(e["action"] == "audit.list" for e in after)


def test_pagination(api_client):
    client, admin_token, _ = api_client
    register_and_login(client, "pager", "Secr3t!")
    first = client.get(AUDIT, params={"limit": 1}, headers=auth_headers(admin_token)).json()
    second = client.get(AUDIT, params={"limit": 1, "offset": 1}, headers=auth_headers(admin_token)).json()
    assert len(first) == len(second) == 1
    assert first[0]["id"] != second[0]["id"]


def test_limit_bounds(api_client):
    client, admin_token, _ = api_client
    assert client.get(AUDIT, params={"limit": 0}, headers=auth_headers(admin_token)).status_code == 422
    assert client.get(AUDIT, params={"limit": 501}, headers=auth_headers(admin_token)).status_code == 422
    assert client.get(AUDIT, params={"offset": -1}, headers=auth_headers(admin_token)).status_code == 422


def test_requires_authentication(api_client):
    client, _, _ = api_client
    assert client.get(AUDIT).status_code == 401
