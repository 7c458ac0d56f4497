"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store and services do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TokenKind(str, Enum):
    """Closed set of bearer-token kinds. Each kind has its own secret and TTL."""

    ACCESS = "access"
    REFRESH = "refresh"


class Role(str, Enum):
    ADMIN = "admin"
    AUTHOR = "author"
    READER = "reader"


@dataclass
class Identity:
    """A registered account.

    salt is None for legacy records created before per-identity salting. Those
    records hold a plain bcrypt hash and are upgraded on the next successful
    login.

    password_version increments on every password write. The login upgrade
    path uses it as an optimistic concurrency check so a stale upgrade can
    never overwrite a password changed in the meantime.
    """

    email: str
    password_hash: str
    role: str = Role.READER.value
    name: str = ""
    salt: str | None = None  # None = legacy (unsalted) record
    id: int | None = None
    password_version: int = 0
    password_updated_at: str | None = None
    created_at: str | None = None

    @property
    def is_legacy(self) -> bool:
        return self.salt is None


@dataclass
class Session:
    """One logged-in device.

    session_token is an opaque random value unrelated to any bearer token.
    Rows are soft-revoked (is_active=False) rather than deleted.
    """

    identity_id: int
    session_token: str
    expires_at: str
    id: int | None = None
    device_fingerprint: str | None = None  # display / analytics only
    ip_address: str | None = None
    user_agent: str | None = None
    is_active: bool = True
    last_activity_at: str | None = None
    created_at: str | None = None


@dataclass
class RevokedToken:
    """A denylisted bearer token. Only the SHA-256 of the raw token is stored."""

    token_hash: str
    expires_at: str  # copied from the token's own exp claim
    reason: str = "logout"
    revoked_at: str | None = None


@dataclass(frozen=True)
class DeviceInfo:
    """Request metadata the boundary passes to login."""

    user_agent: str | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class PasswordContext:
    """Personal information a password must not contain."""

    email: str = ""
    name: str = ""


@dataclass(frozen=True)
class SaltedHash:
    hash: str
    salt: str


@dataclass
class ComplexityResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    strength: str = "weak"  # weak | medium | strong | very_strong


@dataclass(frozen=True)
class TokenPair:
    access: str
    refresh: str


@dataclass(frozen=True)
class TokenClaims:
    """Verified payload of an access or refresh token."""

    identity_id: int
    kind: TokenKind
    expires_at: datetime
    jti: str


@dataclass
class LoginResult:
    identity: Identity
    access_token: str
    refresh_token: str
    session_token: str
