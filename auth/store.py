"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
AuthStore is the repository for the three logical tables (identities,
sessions, revoked_tokens); _row_to_identity / _row_to_session are the mappers.
Services never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  revoked_tokens holds SHA-256 digests only -- raw bearer tokens never reach
  the database.

Atomicity:
  Every public method runs in its own transaction (engine.begin()). The
  password write and the session deactivation are single-row UPDATEs; the
  bulk session termination is one UPDATE statement, so either every matched
  row flips or none does.

  update_password() takes an optional expected_version. When given, the
  UPDATE only matches if password_version is unchanged since the caller read
  the row (optimistic compare-and-set). The login upgrade path relies on it.

Errors:
  Any SQLAlchemyError is re-raised as auth.errors.StoreError with the
  original chained. IntegrityError is the one exception the repository
  interprets itself (duplicate email, duplicate revocation).

Timestamps are fixed-width ISO-8601 UTC strings so string comparison in SQL
matches chronological order.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import EmailTaken, StoreError
from auth.models import Identity, RevokedToken, Session

_DEFAULT_DB_URL = "sqlite:///inkpress_auth.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_identities = Table(
    "identities",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False, server_default=""),
    Column("password_hash", Text, nullable=False),
    Column("salt", String(64)),  # NULL = legacy record, upgraded on next login
    Column("role", String(20), nullable=False, server_default="reader"),
    Column("password_version", Integer, nullable=False, server_default="0"),
    Column("password_updated_at", String(32)),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("identity_id", Integer, ForeignKey("identities.id"), nullable=False, index=True),
    Column("session_token", String(64), nullable=False, unique=True),
    Column("device_fingerprint", String(64)),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_activity_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
)

_revoked_tokens = Table(
    "revoked_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # SHA-256 hex
    Column("expires_at", String(32), nullable=False, index=True),
    Column("reason", String(30), nullable=False, server_default="logout"),
    Column("revoked_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    """Render a datetime as a fixed-width UTC ISO-8601 string.

    timespec="microseconds" keeps the width constant (plain isoformat() drops
    the fraction when it is zero, which would break lexical ordering).
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuthStore:
    """Repository for Identity, Session and RevokedToken rows.

    Usage:
        store = AuthStore("sqlite:///:memory:")
        identity_id = store.create_identity(Identity(email="a@example.com", password_hash=h, salt=s))
        identity = store.get_identity_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    @contextmanager
    def _transaction(self) -> Iterator[Connection]:
        """Yield a connection inside a transaction; map driver failures to StoreError.

        IntegrityError is passed through untouched so the calling method can
        decide what a constraint violation means for its table.
        """
        try:
            with self.engine.begin() as conn:
                yield conn
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            raise StoreError(f"Persistent store failure: {exc.__class__.__name__}") from exc

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    def create_identity(self, identity: Identity, now: datetime | None = None) -> int:
        """Insert a new identity and return its assigned database ID.

        Raises EmailTaken if the (normalised) email already exists. The UNIQUE
        constraint is the source of truth, so two concurrent registrations for
        one email cannot both succeed.
        """
        now = to_iso(now) if now is not None else _now_iso()
        try:
            with self._transaction() as conn:
                result = conn.execute(
                    _identities.insert().values(
                        email=identity.email,
                        name=identity.name,
                        password_hash=identity.password_hash,
                        salt=identity.salt,
                        role=identity.role,
                        password_version=identity.password_version,
                        password_updated_at=identity.password_updated_at or now,
                        created_at=now,
                    )
                )
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise EmailTaken() from exc

    def get_identity_by_email(self, email: str) -> Identity | None:
        """Look up an identity by exact (already normalised) email. None if not found."""
        with self._transaction() as conn:
            row = conn.execute(_identities.select().where(_identities.c.email == email)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_identity(self, identity_id: int) -> Identity | None:
        """Look up an identity by primary key. None if not found."""
        with self._transaction() as conn:
            row = conn.execute(_identities.select().where(_identities.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def update_password(
        self,
        identity_id: int,
        password_hash: str,
        salt: str,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Persist a new salted hash and bump password_version.

        With expected_version, the write only happens if nobody else changed
        the password since the caller read it. Returns True if a row was
        updated, False if the identity is gone or the version check lost.
        `now` stamps password_updated_at; services pass their injected clock.
        """
        stmt = _identities.update().where(_identities.c.id == identity_id)
        if expected_version is not None:
            stmt = stmt.where(_identities.c.password_version == expected_version)
        stmt = stmt.values(
            password_hash=password_hash,
            salt=salt,
            password_version=_identities.c.password_version + 1,
            password_updated_at=to_iso(now) if now is not None else _now_iso(),
        )
        with self._transaction() as conn:
            result = conn.execute(stmt)
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session: Session) -> int:
        """Insert an active session row and return its ID."""
        try:
            with self._transaction() as conn:
                result = conn.execute(
                    _sessions.insert().values(
                        identity_id=session.identity_id,
                        session_token=session.session_token,
                        device_fingerprint=session.device_fingerprint,
                        ip_address=session.ip_address,
                        user_agent=session.user_agent,
                        is_active=1 if session.is_active else 0,
                        last_activity_at=session.last_activity_at,
                        created_at=session.created_at,
                        expires_at=session.expires_at,
                    )
                )
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise StoreError("Session could not be created.") from exc

    def get_active_session(self, session_token: str, now: datetime) -> Session | None:
        """Return the session if it is active and unexpired at `now`."""
        with self._transaction() as conn:
            row = conn.execute(
                _sessions.select().where(
                    and_(
                        _sessions.c.session_token == session_token,
                        _sessions.c.is_active == 1,
                        _sessions.c.expires_at > to_iso(now),
                    )
                )
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_active_sessions(self, identity_id: int, now: datetime) -> list[Session]:
        """Active, unexpired sessions for one identity, most recently used first."""
        with self._transaction() as conn:
            rows = conn.execute(
                _sessions.select()
                .where(
                    and_(
                        _sessions.c.identity_id == identity_id,
                        _sessions.c.is_active == 1,
                        _sessions.c.expires_at > to_iso(now),
                    )
                )
                .order_by(_sessions.c.last_activity_at.desc(), _sessions.c.id.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def touch_session(self, session_token: str, now: datetime) -> bool:
        """Stamp last_activity_at on an active session."""
        with self._transaction() as conn:
            result = conn.execute(
                _sessions.update()
                .where(and_(_sessions.c.session_token == session_token, _sessions.c.is_active == 1))
                .values(last_activity_at=to_iso(now))
            )
        return result.rowcount > 0

    def deactivate_session(self, session_token: str) -> bool:
        """Flip one active session to inactive. False if unknown or already inactive."""
        with self._transaction() as conn:
            result = conn.execute(
                _sessions.update()
                .where(and_(_sessions.c.session_token == session_token, _sessions.c.is_active == 1))
                .values(is_active=0)
            )
        return result.rowcount > 0

    def deactivate_sessions_for_identity(self, identity_id: int, except_token: str | None = None) -> int:
        """Flip every active session of an identity to inactive in one statement.

        except_token, when given, is left untouched. Returns the number of
        sessions that were active and are now inactive.
        """
        conditions = [_sessions.c.identity_id == identity_id, _sessions.c.is_active == 1]
        if except_token is not None:
            conditions.append(_sessions.c.session_token != except_token)
        with self._transaction() as conn:
            result = conn.execute(_sessions.update().where(and_(*conditions)).values(is_active=0))
        return result.rowcount

    def delete_stale_sessions(self, now: datetime) -> int:
        """Physically remove expired or inactive session rows."""
        with self._transaction() as conn:
            result = conn.execute(
                _sessions.delete().where((_sessions.c.expires_at <= to_iso(now)) | (_sessions.c.is_active == 0))
            )
        return result.rowcount

    # ------------------------------------------------------------------
    # Revoked tokens
    # ------------------------------------------------------------------

    def add_revoked_token(self, token: RevokedToken) -> bool:
        """Insert a denylist row. Returns False if the hash is already present."""
        try:
            with self._transaction() as conn:
                conn.execute(
                    _revoked_tokens.insert().values(
                        token_hash=token.token_hash,
                        expires_at=token.expires_at,
                        reason=token.reason,
                        revoked_at=token.revoked_at or _now_iso(),
                    )
                )
        except IntegrityError:
            return False
        return True

    def is_token_hash_revoked(self, token_hash: str, now: datetime) -> bool:
        """True if the hash is denylisted and its recorded expiry is still ahead of `now`."""
        with self._transaction() as conn:
            count = conn.execute(
                select(func.count())
                .select_from(_revoked_tokens)
                .where(
                    and_(
                        _revoked_tokens.c.token_hash == token_hash,
                        _revoked_tokens.c.expires_at > to_iso(now),
                    )
                )
            ).scalar()
        return (count or 0) > 0

    def get_revoked_token(self, token_hash: str) -> RevokedToken | None:
        """Return the raw denylist row regardless of expiry. Used by tests and audits."""
        with self._transaction() as conn:
            row = conn.execute(_revoked_tokens.select().where(_revoked_tokens.c.token_hash == token_hash)).fetchone()
        if row is None:
            return None
        return RevokedToken(
            token_hash=row.token_hash,
            expires_at=row.expires_at,
            reason=row.reason,
            revoked_at=row.revoked_at,
        )

    def delete_expired_revoked_tokens(self, now: datetime) -> int:
        with self._transaction() as conn:
            result = conn.execute(_revoked_tokens.delete().where(_revoked_tokens.c.expires_at <= to_iso(now)))
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        salt=row.salt,
        role=row.role,
        password_version=row.password_version,
        password_updated_at=row.password_updated_at,
        created_at=row.created_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        identity_id=row.identity_id,
        session_token=row.session_token,
        device_fingerprint=row.device_fingerprint,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        is_active=bool(row.is_active),
        last_activity_at=row.last_activity_at,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
