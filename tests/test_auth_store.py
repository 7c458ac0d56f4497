"""Unit tests for auth/store.py -- the SQLAlchemy Core repository.

Covers:
- Identity insert/lookup and the UNIQUE email constraint (EmailTaken)
- update_password() bumps password_version; expected_version guards the write
- Timestamp helpers keep a fixed width so lexical order is chronological
- Driver failures surface as StoreError with the original exception chained
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import EmailTaken, StoreError
from auth.models import Identity, RevokedToken, Session
from auth.store import AuthStore, from_iso, to_iso


def _identity(email: str = "store@example.com", **kwargs) -> Identity:
    return Identity(email=email, password_hash="$2b$04$hash", salt="ab" * 32, **kwargs)


class TestIdentities:
    def test_create_and_fetch(self, store: AuthStore) -> None:
        identity_id = store.create_identity(_identity(name="Sol", role="author"))
        by_id = store.get_identity(identity_id)
        by_email = store.get_identity_by_email("store@example.com")
        assert by_id == by_email
        assert by_id.name == "Sol"
        assert by_id.role == "author"
        assert by_id.password_version == 0
        assert by_id.created_at and by_id.password_updated_at

    def test_missing_identity_is_none(self, store: AuthStore) -> None:
        assert store.get_identity(404) is None
        assert store.get_identity_by_email("ghost@example.com") is None

    def test_duplicate_email_raises_email_taken(self, store: AuthStore) -> None:
        store.create_identity(_identity())
        with pytest.raises(EmailTaken):
            store.create_identity(_identity())

    def test_legacy_record_has_null_salt(self, store: AuthStore) -> None:
        identity_id = store.create_identity(Identity(email="old@example.com", password_hash="$2b$04$x"))
        assert store.get_identity(identity_id).is_legacy


class TestUpdatePassword:
    def test_update_bumps_version(self, store: AuthStore) -> None:
        identity_id = store.create_identity(_identity())
        assert store.update_password(identity_id, "new-hash", "cd" * 32) is True
        row = store.get_identity(identity_id)
        assert row.password_hash == "new-hash"
        assert row.salt == "cd" * 32
        assert row.password_version == 1

    def test_expected_version_match_writes(self, store: AuthStore) -> None:
        identity_id = store.create_identity(_identity())
        assert store.update_password(identity_id, "h1", "s1", expected_version=0) is True
        assert store.get_identity(identity_id).password_version == 1

    def test_stale_expected_version_is_rejected(self, store: AuthStore) -> None:
        identity_id = store.create_identity(_identity())
        store.update_password(identity_id, "h1", "s1")
        assert store.update_password(identity_id, "h2", "s2", expected_version=0) is False
        row = store.get_identity(identity_id)
        assert row.password_hash == "h1"
        assert row.password_version == 1

    def test_unknown_identity_returns_false(self, store: AuthStore) -> None:
        assert store.update_password(404, "h", "s") is False

    def test_explicit_now_stamps_password_updated_at(self, store: AuthStore) -> None:
        moment = datetime(2021, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
        identity_id = store.create_identity(_identity(), now=moment)
        assert store.get_identity(identity_id).created_at == to_iso(moment)
        later = moment + timedelta(days=1)
        store.update_password(identity_id, "h", "s", now=later)
        assert store.get_identity(identity_id).password_updated_at == to_iso(later)


class TestSessionsAndRevocations:
    def test_duplicate_session_token_is_store_error(self, store: AuthStore) -> None:
        identity_id = store.create_identity(_identity())
        now = to_iso(datetime.now(timezone.utc))
        later = to_iso(datetime.now(timezone.utc) + timedelta(days=1))
        session = Session(
            identity_id=identity_id,
            session_token="f" * 64,
            expires_at=later,
            last_activity_at=now,
            created_at=now,
        )
        store.create_session(session)
        with pytest.raises(StoreError):
            store.create_session(session)

    def test_duplicate_revocation_returns_false(self, store: AuthStore) -> None:
        expires = to_iso(datetime.now(timezone.utc) + timedelta(minutes=5))
        assert store.add_revoked_token(RevokedToken(token_hash="e" * 64, expires_at=expires)) is True
        assert store.add_revoked_token(RevokedToken(token_hash="e" * 64, expires_at=expires)) is False


class TestTimestamps:
    def test_fixed_width_even_without_fraction(self) -> None:
        whole = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        fractional = whole.replace(microsecond=5)
        assert len(to_iso(whole)) == len(to_iso(fractional))
        assert to_iso(whole) < to_iso(fractional)

    def test_naive_datetimes_are_treated_as_utc(self) -> None:
        naive = datetime(2024, 1, 1, 12, 0, 0)
        assert from_iso(to_iso(naive)) == naive.replace(tzinfo=timezone.utc)

    def test_other_offsets_are_normalised(self) -> None:
        plus_two = datetime(2024, 1, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_iso(plus_two).startswith("2024-01-01T12:00:00")


class TestStoreErrors:
    def test_driver_failure_becomes_store_error(self, store: AuthStore) -> None:
        with store.engine.begin() as conn:
            conn.execute(text("DROP TABLE revoked_tokens"))
        with pytest.raises(StoreError) as excinfo:
            store.is_token_hash_revoked("0" * 64, datetime.now(timezone.utc))
        assert isinstance(excinfo.value.__cause__, SQLAlchemyError)
        assert excinfo.value.status_code == 500
