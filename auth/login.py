"""
auth/login.py -- The password + optional TOTP login flow.

States:
  Unauthenticated -> CredentialsChecked -> TOTPRequired | Rejected | Authenticated
  TOTPRequired    -> TOTPVerified | Rejected          (on the next call, with a code)
  TOTPVerified    -> Authenticated -> TokenIssued

Every transition into Rejected or TokenIssued appends exactly one audit event.
Reaching TOTPRequired is informational and appends nothing.

Timing equalization: an unknown username still runs the KDF against
DUMMY_RECORD so response time does not reveal whether the username exists.
The password is checked before the active flag, so only the correct password
learns that an account is deactivated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from audit.models import AuditAction, EmptyDetail, LoginFailedDetail, RequestOrigin, ResourceType
from audit.recorder import AuditRecorder
from auth.models import Identity
from auth.passwords import DUMMY_RECORD, CredentialVerifier
from auth.store import IdentityStore
from auth.tokens import TokenIssuer
from auth.totp import TOTPAuthenticator
from core.errors import AccountDeactivated, AuthenticationFailure, InvalidTOTP

logger = logging.getLogger("idampam.auth")


class LoginState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    CREDENTIALS_CHECKED = "credentials_checked"
    TOTP_REQUIRED = "totp_required"
    TOTP_VERIFIED = "totp_verified"
    AUTHENTICATED = "authenticated"
    TOKEN_ISSUED = "token_issued"
    REJECTED = "rejected"


@dataclass(frozen=True)
class LoginResult:
    state: LoginState
    identity: Identity
    token: str | None = None


class LoginFlow:
    def __init__(
        self,
        store: IdentityStore,
        verifier: CredentialVerifier,
        totp: TOTPAuthenticator,
        issuer: TokenIssuer,
        recorder: AuditRecorder,
    ) -> None:
        self._store = store
        self._verifier = verifier
        self._totp = totp
        self._issuer = issuer
        self._recorder = recorder

    def login(
        self,
        username: str,
        password: str,
        totp_code: str | None = None,
        origin: RequestOrigin | None = None,
    ) -> LoginResult:
        """Run the flow to a terminal or TOTP_REQUIRED state.

        Raises AuthenticationFailure / AccountDeactivated / InvalidTOTP on
        rejection, after the rejection has been audited.
        """
        identity = self._store.get_by_username(username)
        if identity is None:
            self._verifier.verify(password, DUMMY_RECORD)
            self._reject(None, "user_not_found", origin, username=username)
            raise AuthenticationFailure()

        if not self._verifier.verify(password, identity.password_hash):
            self._reject(identity.id, "invalid_password", origin)
            raise AuthenticationFailure()

        if not identity.is_active:
            self._reject(identity.id, "user_inactive", origin)
            raise AccountDeactivated()

        # CredentialsChecked
        if identity.totp_enabled:
            if not totp_code:
                return LoginResult(state=LoginState.TOTP_REQUIRED, identity=identity)
            if not self._totp.validate_code(totp_code, identity.totp_secret):
                self._reject(identity.id, "invalid_totp", origin)
                raise InvalidTOTP()
            # TOTPVerified

        token = self._issuer.issue(identity.id, identity.username)
        self._recorder.record(
            identity.id, AuditAction.LOGIN_SUCCESS, ResourceType.AUTH, detail=EmptyDetail(), origin=origin
        )
        logger.info("Login succeeded for %s", identity.id)
        return LoginResult(state=LoginState.TOKEN_ISSUED, identity=identity, token=token)

    def _reject(
        self,
        actor_id: str | None,
        reason: str,
        origin: RequestOrigin | None,
        username: str | None = None,
    ) -> None:
        logger.info("Login rejected: reason=%s actor=%s", reason, actor_id)
        self._recorder.record(
            actor_id,
            AuditAction.LOGIN_FAILED,
            ResourceType.AUTH,
            detail=LoginFailedDetail(reason=reason, username=username),
            origin=origin,
        )
