"""
auth/sessions.py -- Per-device session records.

A session is keyed by an opaque random token (secrets.token_hex(32), 256 bits)
that has nothing to do with the bearer JWTs. The boundary stores it in an
httpOnly cookie; "which of these sessions is mine" is answered there by
comparing that cookie, never in this module.

Termination is soft: is_active flips to 0 and the row stays until
purge_expired() removes it.
"""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timezone

from auth.models import Session
from auth.store import AuthStore, to_iso

logger = logging.getLogger("inkpress.auth.sessions")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def device_fingerprint(user_agent: str | None, ip_address: str | None) -> str:
    """Deterministic 16-hex-char digest of (user agent, IP).

    Display and analytics only. Both inputs are client-controlled, so this is
    never used to make a security decision.
    """
    raw = json.dumps({"userAgent": user_agent or "unknown", "ip": ip_address or "unknown"}, sort_keys=True)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


class SessionStore:
    def __init__(self, store: AuthStore, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store = store
        self._clock = clock

    def create(
        self,
        identity_id: int,
        expires_at: datetime,
        device_info: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """Persist an active session and return its opaque token.

        device_info is stored as the fingerprint; when absent it is derived
        from the user agent and IP if either is known.
        """
        now = self._clock()
        if expires_at <= now:
            raise ValueError("Session expiry must be later than its creation time.")
        if device_info is None and (user_agent or ip_address):
            device_info = device_fingerprint(user_agent, ip_address)
        token = secrets.token_hex(32)
        self._store.create_session(
            Session(
                identity_id=identity_id,
                session_token=token,
                device_fingerprint=device_info,
                ip_address=ip_address,
                user_agent=user_agent,
                is_active=True,
                last_activity_at=to_iso(now),
                created_at=to_iso(now),
                expires_at=to_iso(expires_at),
            )
        )
        logger.info("Session %s... created for identity %s", token[:8], identity_id)
        return token

    def list_active_for_identity(self, identity_id: int) -> list[Session]:
        return self._store.list_active_sessions(identity_id, self._clock())

    def validate(self, session_token: str) -> Session | None:
        """Return the session if active and unexpired, and record the activity."""
        now = self._clock()
        session = self._store.get_active_session(session_token, now)
        if session is not None:
            self._store.touch_session(session_token, now)
            session.last_activity_at = to_iso(now)
        return session

    def touch(self, session_token: str) -> bool:
        return self._store.touch_session(session_token, self._clock())

    def terminate(self, session_token: str) -> bool:
        """Deactivate one session. Unknown or already inactive tokens return False."""
        terminated = self._store.deactivate_session(session_token)
        if terminated:
            logger.info("Session %s... terminated", session_token[:8])
        return terminated

    def terminate_all_for_identity(self, identity_id: int, except_token: str | None = None) -> int:
        """Deactivate every session of an identity except `except_token`, in one statement."""
        count = self._store.deactivate_sessions_for_identity(identity_id, except_token)
        logger.info("Terminated %d sessions for identity %s", count, identity_id)
        return count

    def purge_expired(self) -> int:
        """Physically delete expired and inactive session rows."""
        removed = self._store.delete_stale_sessions(self._clock())
        if removed:
            logger.info("Purged %d stale sessions", removed)
        return removed

    @staticmethod
    def device_fingerprint(user_agent: str | None, ip_address: str | None) -> str:
        return device_fingerprint(user_agent, ip_address)
