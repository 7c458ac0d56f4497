"""
auth/orchestrator.py -- User-facing authentication flows.

AuthOrchestrator composes PasswordService, TokenService, SessionStore and
RevocationService into register, login, authenticate, refresh, logout,
change-password and reset-password. It owns no state beyond its
collaborators; every call is a short sequential chain of store reads/writes.

Account enumeration [C1]:
  login() raises the same InvalidCredentials for an unknown email and for a
  wrong password, and runs a bcrypt check in both cases so response time
  does not reveal which one happened.

Upgrade-on-login:
  A successful legacy (unsalted) verification, or a hash whose bcrypt cost is
  below the configured minimum, is re-hashed and persisted before login()
  returns. The write is conditional on the password_version read at the
  start of the login; if another request changed the password in between,
  the upgrade is skipped rather than overwriting the newer password.

Errors are the auth.errors hierarchy. StoreError from the repository is
never caught here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import (
    Forbidden,
    InvalidCredentials,
    InvalidToken,
    NotFoundError,
    SamePassword,
    WeakPassword,
    WrongCurrentPassword,
)
from auth.models import DeviceInfo, Identity, LoginResult, PasswordContext, Role, TokenClaims, TokenPair
from auth.passwords import PasswordService
from auth.revocation import RevocationService
from auth.sessions import SessionStore
from auth.store import AuthStore
from auth.tokens import TokenService
from core.config import Settings

logger = logging.getLogger("inkpress.auth.orchestrator")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthOrchestrator:
    def __init__(
        self,
        settings: Settings,
        store: AuthStore,
        passwords: PasswordService,
        tokens: TokenService,
        sessions: SessionStore,
        revocations: RevocationService,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self.passwords = passwords
        self.tokens = tokens
        self.sessions = sessions
        self.revocations = revocations
        self._clock = clock
        self._session_ttl = timedelta(days=settings.session_ttl_days)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: AuthStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> AuthOrchestrator:
        """Wire the full service graph around one store and one clock."""
        revocations = RevocationService(settings, store, clock=clock)
        return cls(
            settings=settings,
            store=store,
            passwords=PasswordService(settings),
            tokens=TokenService(settings, store, revocations=revocations, clock=clock),
            sessions=SessionStore(store, clock=clock),
            revocations=revocations,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _verify(self, identity: Identity, password: str) -> bool:
        if identity.is_legacy:
            return self.passwords.verify_legacy(password, identity.password_hash)
        return self.passwords.verify_with_salt(password, identity.password_hash, identity.salt)

    def _require_strong(self, password: str, email: str, name: str) -> None:
        result = self.passwords.validate_complexity(password, PasswordContext(email=email, name=name))
        if not result.is_valid:
            raise WeakPassword(errors=result.errors)

    def _upgrade_hash(self, identity: Identity, password: str) -> None:
        salted = self.passwords.hash_with_salt(password)
        written = self._store.update_password(
            identity.id,
            salted.hash,
            salted.salt,
            expected_version=identity.password_version,
            now=self._clock(),
        )
        if written:
            identity.password_hash = salted.hash
            identity.salt = salted.salt
            identity.password_version += 1
            logger.info("Upgraded password hash for identity %s", identity.id)
        else:
            logger.warning("Skipped password upgrade for identity %s: record changed concurrently", identity.id)

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, name: str = "", role: str = Role.READER.value) -> Identity:
        """Create an identity with a salted hash. Raises WeakPassword or EmailTaken."""
        email = normalize_email(email)
        role = Role(role).value
        self._require_strong(password, email, name)
        salted = self.passwords.hash_with_salt(password)
        identity = Identity(email=email, name=name, password_hash=salted.hash, salt=salted.salt, role=role)
        identity.id = self._store.create_identity(identity, now=self._clock())
        logger.info("Registered identity %s (role=%s)", identity.id, role)
        return self._store.get_identity(identity.id) or identity

    def login(self, email: str, password: str, device: DeviceInfo | None = None) -> LoginResult:
        """Verify credentials, upgrade the stored hash if needed, issue tokens and a session.

        Not idempotent: each success creates a new session.
        """
        identity = self._store.get_identity_by_email(normalize_email(email))
        if identity is None:
            self.passwords.verify_dummy(password)
            raise InvalidCredentials()
        if not self._verify(identity, password):
            raise InvalidCredentials()

        if identity.is_legacy or self.passwords.needs_rehash(identity.password_hash):
            self._upgrade_hash(identity, password)

        pair = self.tokens.issue_pair(identity.id)
        device = device or DeviceInfo()
        session_token = self.sessions.create(
            identity.id,
            expires_at=self._clock() + self._session_ttl,
            ip_address=device.ip_address,
            user_agent=device.user_agent,
        )
        logger.info("Login succeeded for identity %s", identity.id)
        return LoginResult(
            identity=identity,
            access_token=pair.access,
            refresh_token=pair.refresh,
            session_token=session_token,
        )

    def authenticate(self, access_token: str) -> TokenClaims:
        """Per-request check: valid access token that has not been revoked."""
        claims = self.tokens.verify_access(access_token)
        if claims is None or self.revocations.is_revoked(access_token):
            raise InvalidToken()
        return claims

    def refresh_session(self, refresh_token: str, session_token: str | None = None) -> TokenPair | None:
        """Exchange a refresh token for a new pair and record activity on the session, if given."""
        claims = self.tokens.verify_refresh(refresh_token)
        if claims is None or self._store.get_identity(claims.identity_id) is None:
            return None
        pair = self.tokens.refresh(refresh_token)
        if pair is not None and session_token:
            self.sessions.validate(session_token)
        return pair

    def logout(
        self,
        access_token: str,
        refresh_token: str | None = None,
        session_token: str | None = None,
    ) -> None:
        """Revoke the presented tokens and end the current session.

        Only tokens that verify are denylisted, with the expiry from their
        verified claims. Anything else is already unusable.
        """
        if session_token:
            self.sessions.terminate(session_token)
        access = self.tokens.verify_access(access_token)
        if access is not None:
            self.revocations.revoke(access_token, reason="logout", expires_at=access.expires_at)
        refresh = self.tokens.verify_refresh(refresh_token) if refresh_token else None
        if refresh is not None:
            self.revocations.revoke(refresh_token, reason="logout", expires_at=refresh.expires_at)

    def logout_everywhere(self, identity_id: int, except_token: str | None = None) -> int:
        return self.sessions.terminate_all_for_identity(identity_id, except_token)

    def get_identity(self, identity_id: int) -> Identity:
        identity = self._store.get_identity(identity_id)
        if identity is None:
            raise NotFoundError()
        return identity

    def change_password(self, identity_id: int, current_password: str, new_password: str) -> None:
        identity = self.get_identity(identity_id)
        if not self._verify(identity, current_password):
            raise WrongCurrentPassword()
        self._require_strong(new_password, identity.email, identity.name)
        if self._verify(identity, new_password):
            raise SamePassword()
        salted = self.passwords.hash_with_salt(new_password)
        if not self._store.update_password(identity.id, salted.hash, salted.salt, now=self._clock()):
            raise NotFoundError()
        logger.info("Password changed for identity %s", identity.id)

    def reset_password(self, identity_id: int, new_password: str, admin_identity_id: int) -> None:
        """Administrative override: set a new password without the current one."""
        admin = self._store.get_identity(admin_identity_id)
        if admin is None or admin.role != Role.ADMIN.value:
            raise Forbidden()
        identity = self.get_identity(identity_id)
        self._require_strong(new_password, identity.email, identity.name)
        salted = self.passwords.hash_with_salt(new_password)
        if not self._store.update_password(identity.id, salted.hash, salted.salt, now=self._clock()):
            raise NotFoundError()
        logger.info("Admin %s reset password for identity %s", admin_identity_id, identity.id)
