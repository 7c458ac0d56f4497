"""
auth/tokens.py -- Bearer token issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens are signed with two
       different secrets and carry a `typ` claim drawn from the closed
       TokenKind enum. _encode() and _decode() are the only places the claim
       is written or read; a token whose typ differs from the expected kind
       is rejected even if its signature would verify.

  Fail closed: verify_access() / verify_refresh() return None on any failure
       (bad signature, expired, malformed payload, wrong kind). The boundary
       turns None into a 401 without learning which check failed.

  jti: every token carries a random id, so two tokens minted for the same
       identity within the same second are still distinct values. Revocation
       is keyed on the token hash and depends on that.

  Statelessness: verify_access() never touches the store. Identity existence
       is re-checked only in refresh(); access-token revocation is the job of
       RevocationService.

  Rotation: with Settings.rotate_refresh_tokens (default on), refresh()
       denylists the presented refresh token before minting the new pair and
       only proceeds if that insert won, so a refresh token can be exchanged
       at most once even under concurrent requests.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.models import TokenClaims, TokenKind, TokenPair
from core.config import Settings

if TYPE_CHECKING:
    from auth.revocation import RevocationService
    from auth.store import AuthStore

logger = logging.getLogger("inkpress.auth.tokens")

_ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Issue and verify access/refresh JWTs.

    `store` is only used by refresh() to re-confirm the identity exists.
    `revocations`, when given, lets refresh() reject denylisted refresh tokens
    and rotate the presented one.
    """

    def __init__(
        self,
        settings: Settings,
        store: AuthStore,
        revocations: RevocationService | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._revocations = revocations
        self._clock = clock
        self._rotate = settings.rotate_refresh_tokens
        self._secrets = {
            TokenKind.ACCESS: settings.access_token_secret,
            TokenKind.REFRESH: settings.refresh_token_secret,
        }
        self._ttls = {
            TokenKind.ACCESS: timedelta(minutes=settings.access_token_ttl_minutes),
            TokenKind.REFRESH: timedelta(days=settings.refresh_token_ttl_days),
        }

    # ------------------------------------------------------------------
    # Encode / decode
    # ------------------------------------------------------------------

    def _encode(self, identity_id: int, kind: TokenKind) -> str:
        issued = self._clock()
        payload = {
            "sub": str(identity_id),
            "typ": kind.value,
            "iat": int(issued.timestamp()),
            "exp": int((issued + self._ttls[kind]).timestamp()),
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=_ALGORITHM)

    def _decode(self, token: str, kind: TokenKind) -> TokenClaims | None:
        # exp is checked against the injected clock rather than jose's wall
        # clock so tests can move time.
        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError:
            return None
        if payload.get("typ") != kind.value:
            return None
        try:
            identity_id = int(payload["sub"])
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
            jti = str(payload["jti"])
        except (KeyError, TypeError, ValueError, OverflowError, OSError):
            return None
        if expires_at <= self._clock():
            return None
        return TokenClaims(identity_id=identity_id, kind=kind, expires_at=expires_at, jti=jti)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def issue_pair(self, identity_id: int) -> TokenPair:
        return TokenPair(
            access=self._encode(identity_id, TokenKind.ACCESS),
            refresh=self._encode(identity_id, TokenKind.REFRESH),
        )

    def verify_access(self, token: str) -> TokenClaims | None:
        return self._decode(token, TokenKind.ACCESS)

    def verify_refresh(self, token: str) -> TokenClaims | None:
        return self._decode(token, TokenKind.REFRESH)

    def refresh(self, refresh_token: str) -> TokenPair | None:
        """Exchange a valid refresh token for a fresh pair.

        Returns None if the token is invalid, already revoked (including a
        previously rotated token), or its identity no longer exists.
        """
        claims = self.verify_refresh(refresh_token)
        if claims is None:
            return None
        if self._revocations is not None and self._revocations.is_revoked(refresh_token):
            logger.info("Rejected revoked refresh token for identity %s", claims.identity_id)
            return None
        if self._store.get_identity(claims.identity_id) is None:
            return None
        if self._rotate and self._revocations is not None:
            # Claim before issuing: only the caller whose denylist insert wins
            # gets a new pair.
            if not self._revocations.revoke(refresh_token, reason="rotated", expires_at=claims.expires_at):
                logger.info("Refresh token for identity %s was already exchanged", claims.identity_id)
                return None
        return self.issue_pair(claims.identity_id)
