"""
auth/revocation.py -- Token denylist backing logout for stateless JWTs.

Only SHA-256(token) is stored. The row's expiry is copied from the token's
own exp claim: once the token would have expired anyway, the denylist entry
is meaningless, so is_revoked() ignores it even before purge_expired() has
physically removed it.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.models import RevokedToken
from auth.store import AuthStore, to_iso
from core.config import Settings

logger = logging.getLogger("inkpress.auth.revocation")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RevocationService:
    def __init__(
        self,
        settings: Settings,
        store: AuthStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._clock = clock
        self._fallback_ttl = timedelta(minutes=settings.access_token_ttl_minutes)

    def _token_expiry(self, token: str) -> datetime:
        # The signature was already checked by whoever accepted the token.
        # Here we only need its lifetime; a token without a readable exp is
        # kept for one access-token TTL.
        try:
            exp = jwt.get_unverified_claims(token).get("exp")
            if exp is not None:
                return datetime.fromtimestamp(int(exp), tz=timezone.utc)
        except (JWTError, TypeError, ValueError, OverflowError, OSError):
            pass
        return self._clock() + self._fallback_ttl

    def revoke(self, token: str, reason: str = "logout", expires_at: datetime | None = None) -> bool:
        """Denylist a token until its own expiry.

        Pass expires_at from verified claims whenever they are available; the
        unverified exp is only a fallback. Returns True if this call inserted
        the row, False if the token was already revoked. The UNIQUE token_hash
        makes that answer atomic, so refresh rotation uses it as a claim.
        """
        added = self._store.add_revoked_token(
            RevokedToken(
                token_hash=hash_token(token),
                expires_at=to_iso(expires_at or self._token_expiry(token)),
                reason=reason,
                revoked_at=to_iso(self._clock()),
            )
        )
        if added:
            logger.info("Token revoked (reason=%s)", reason)
        return added

    def is_revoked(self, token: str) -> bool:
        return self._store.is_token_hash_revoked(hash_token(token), self._clock())

    def purge_expired(self) -> int:
        """Delete denylist rows whose recorded expiry has passed."""
        removed = self._store.delete_expired_revoked_tokens(self._clock())
        if removed:
            logger.info("Purged %d expired revoked tokens", removed)
        return removed
