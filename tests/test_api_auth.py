"""
tests/test_api_auth.py -- Integration tests for registration, login, /auth/me and TOTP.

Covers:
  - Register then log in returns a bearer token valid on /auth/me
  - Wrong password and unknown username produce the same opaque 401
  - Duplicate username is a 409
  - Deactivated account: 401 account_deactivated only with the right password
  - Enabling TOTP returns a 20-byte secret and an issuer-tagged URI;
    afterwards login needs a code
  - Missing, malformed and expired tokens are 401 with WWW-Authenticate
"""

from __future__ import annotations

import base64
import time
from urllib.parse import parse_qs, urlparse

from conftest import auth_headers, register_and_login

from auth.tokens import TOKEN_LIFETIME_SECONDS, TokenIssuer
from auth.totp import TOTPAuthenticator

LOGIN = "/api/v1/auth/login"
REGISTER = "/api/v1/auth/register"


def test_register_login_and_me(api_client):
    client, _, _ = api_client
    user_id, token = register_and_login(client, "alice", "Secr3t!")

    resp = client.get("/api/v1/auth/me", headers=auth_headers(token))
    assert resp.status_code == 200
    data = resp.json()
    assert data["user_id"] == user_id
    assert data["username"] == "alice"
    assert data["roles"] == ["user"]
    assert data["totp_enabled"] is False


def test_login_response_shape(api_client):
    client, _, _ = api_client
    register_and_login(client, "shape", "Secr3t!")
    resp = client.post(LOGIN, json={"username": "shape", "password": "Secr3t!"})
    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "no-store"
    data = resp.json()
    assert data["token_type"] == "bearer"
    assert data["expires_in"] == TOKEN_LIFETIME_SECONDS
    assert data["user"]["username"] == "shape"
    assert "requires_totp" not in data or data["requires_totp"] is False


def test_wrong_password_and_unknown_user_look_identical(api_client):
    client, _, _ = api_client
    register_and_login(client, "carol", "Secr3t!")

    wrong = client.post(LOGIN, json={"username": "carol", "password": "wrong"})
    unknown = client.post(LOGIN, json={"username": "nobody-here", "password": "wrong"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()
    assert wrong.json()["error"]["code"] == "bad_credentials"
    assert wrong.headers["WWW-Authenticate"] == "Bearer"


def test_duplicate_username_conflict(api_client):
    client, _, _ = api_client
    register_and_login(client, "dupe", "Secr3t!")
    resp = client.post(REGISTER, json={"username": "dupe", "password": "other"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "conflict"


def test_register_validation(api_client):
    client, _, _ = api_client
    resp = client.post(REGISTER, json={"username": "ab", "password": "x"})
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


def test_deactivated_account(api_client):
    client, admin_token, _ = api_client
    user_id, _ = register_and_login(client, "dave", "Secr3t!")
    resp = client.patch(f"/api/v1/users/{user_id}", json={"is_active": False}, headers=auth_headers(admin_token))
    assert resp.status_code == 200

    right = client.post(LOGIN, json={"username": "dave", "password": "Secr3t!"})
    assert right.status_code == 401
    assert right.json()["error"]["code"] == "account_deactivated"

    wrong = client.post(LOGIN, json={"username": "dave", "password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["error"]["code"] == "bad_credentials"


def test_deactivated_account_token_stops_working(api_client):
    client, admin_token, _ = api_client
    user_id, token = register_and_login(client, "erin", "Secr3t!")
    client.patch(f"/api/v1/users/{user_id}", json={"is_active": False}, headers=auth_headers(admin_token))
    assert client.get("/api/v1/auth/me", headers=auth_headers(token)).status_code == 401


def test_enable_totp_then_login_requires_code(api_client):
    client, _, _ = api_client
    _, token = register_and_login(client, "frank", "Secr3t!")

    resp = client.post("/api/v1/totp/enable", headers=auth_headers(token))
    assert resp.status_code == 200
    data = resp.json()
    secret = data["secret"]
    assert len(base64.b32decode(secret)) == 20
    assert "issuer=IDAM-PAM%20Platform" in data["qr_url"]
    parsed = urlparse(data["qr_url"])
    assert parsed.scheme == "otpauth"
    assert parse_qs(parsed.query)["secret"] == [secret]

    prompt = client.post(LOGIN, json={"username": "frank", "password": "Secr3t!"})
    assert prompt.status_code == 200
    assert prompt.json()["requires_totp"] is True
    assert "token" not in prompt.json()

    bad = client.post(LOGIN, json={"username": "frank", "password": "Secr3t!", "totp_code": "000000x"})
    assert bad.status_code == 401
    assert bad.json()["error"]["code"] == "invalid_totp"

    code = TOTPAuthenticator().code_at(secret, time.time())
    ok = client.post(LOGIN, json={"username": "frank", "password": "Secr3t!", "totp_code": code})
    assert ok.status_code == 200
    assert ok.json()["token"]

    me = client.get("/api/v1/auth/me", headers=auth_headers(ok.json()["token"]))
    assert me.json()["totp_enabled"] is True


def test_missing_token(api_client):
    client, _, _ = api_client
    resp = client.get("/api/v1/auth/me")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"
    assert resp.headers["WWW-Authenticate"] == "Bearer"


def test_garbage_token(api_client):
    client, _, _ = api_client
    resp = client.get("/api/v1/auth/me", headers=auth_headers("not.a.token"))
    assert resp.status_code == 401


def test_expired_token(api_client):
    client, _, admin_id = api_client
    key = client.app.state.security.signing_key
    stale = TokenIssuer(key).issue(admin_id, "testadmin", now=time.time() - TOKEN_LIFETIME_SECONDS - 5)
    resp = client.get("/api/v1/auth/me", headers=auth_headers(stale))
    assert resp.status_code == 401
