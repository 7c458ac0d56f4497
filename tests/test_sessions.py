"""Unit tests for auth/sessions.py -- per-device session records.

Covers:
- create() returns an opaque 64-hex token and persists an active row
- list_active_for_identity() orders by last activity, hides expired/inactive rows
- terminate() is idempotent and reports False for unknown tokens
- terminate_all_for_identity() honours except_token and returns the row count
- device_fingerprint() is deterministic and input-sensitive
- purge_expired() physically removes expired and inactive rows
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from auth.models import Identity
from auth.sessions import SessionStore, device_fingerprint
from auth.store import AuthStore


@pytest.fixture
def identity_id(store: AuthStore) -> int:
    return store.create_identity(Identity(email="sess@example.com", password_hash="x", salt="y"))


@pytest.fixture
def sessions(store: AuthStore, clock) -> SessionStore:
    return SessionStore(store, clock=clock)


def _create(sessions: SessionStore, clock, identity_id: int, **kwargs) -> str:
    return sessions.create(identity_id, expires_at=clock() + timedelta(days=7), **kwargs)


class TestCreate:
    def test_returns_opaque_token(self, sessions: SessionStore, clock, identity_id: int) -> None:
        token = _create(sessions, clock, identity_id)
        assert len(token) == 64
        int(token, 16)  # hex
        active = sessions.list_active_for_identity(identity_id)
        assert [s.session_token for s in active] == [token]
        assert active[0].is_active

    def test_tokens_are_unique(self, sessions: SessionStore, clock, identity_id: int) -> None:
        tokens = {_create(sessions, clock, identity_id) for _ in range(5)}
        assert len(tokens) == 5

    def test_fingerprint_derived_from_request_metadata(self, sessions: SessionStore, clock, identity_id: int) -> None:
        _create(sessions, clock, identity_id, user_agent="Firefox", ip_address="10.0.0.1")
        session = sessions.list_active_for_identity(identity_id)[0]
        assert session.device_fingerprint == device_fingerprint("Firefox", "10.0.0.1")
        assert session.ip_address == "10.0.0.1"
        assert session.user_agent == "Firefox"

    def test_explicit_device_info_is_kept(self, sessions: SessionStore, clock, identity_id: int) -> None:
        _create(sessions, clock, identity_id, device_info="laptop", user_agent="Firefox")
        assert sessions.list_active_for_identity(identity_id)[0].device_fingerprint == "laptop"

    def test_expiry_must_follow_creation(self, sessions: SessionStore, clock, identity_id: int) -> None:
        with pytest.raises(ValueError):
            sessions.create(identity_id, expires_at=clock())


class TestListing:
    def test_ordered_by_last_activity_desc(self, sessions: SessionStore, clock, identity_id: int) -> None:
        first = _create(sessions, clock, identity_id)
        clock.advance(minutes=1)
        second = _create(sessions, clock, identity_id)
        clock.advance(minutes=1)
        assert sessions.touch(first)
        order = [s.session_token for s in sessions.list_active_for_identity(identity_id)]
        assert order == [first, second]

    def test_expired_sessions_hidden(self, sessions: SessionStore, clock, identity_id: int) -> None:
        sessions.create(identity_id, expires_at=clock() + timedelta(hours=1))
        clock.advance(hours=2)
        assert sessions.list_active_for_identity(identity_id) == []

    def test_other_identities_hidden(self, sessions: SessionStore, store: AuthStore, clock, identity_id: int) -> None:
        other = store.create_identity(Identity(email="other@example.com", password_hash="x", salt="y"))
        _create(sessions, clock, other)
        assert sessions.list_active_for_identity(identity_id) == []

    def test_validate_touches_activity(self, sessions: SessionStore, clock, identity_id: int) -> None:
        token = _create(sessions, clock, identity_id)
        clock.advance(minutes=5)
        session = sessions.validate(token)
        assert session is not None
        assert sessions.list_active_for_identity(identity_id)[0].last_activity_at == session.last_activity_at
        assert sessions.validate("unknown") is None


class TestTermination:
    def test_terminate_is_idempotent(self, sessions: SessionStore, clock, identity_id: int) -> None:
        token = _create(sessions, clock, identity_id)
        assert sessions.terminate(token) is True
        assert sessions.terminate(token) is False
        assert sessions.validate(token) is None

    def test_terminate_unknown_token_is_noop(self, sessions: SessionStore) -> None:
        assert sessions.terminate("0" * 64) is False

    @pytest.mark.parametrize("n", [1, 2, 5])
    def test_terminate_all_except_current_leaves_one(
        self, sessions: SessionStore, clock, identity_id: int, n: int
    ) -> None:
        tokens = [_create(sessions, clock, identity_id) for _ in range(n)]
        current = tokens[-1]
        assert sessions.terminate_all_for_identity(identity_id, current) == n - 1
        active = sessions.list_active_for_identity(identity_id)
        assert [s.session_token for s in active] == [current]

    def test_terminate_all_everywhere(self, sessions: SessionStore, clock, identity_id: int) -> None:
        for _ in range(3):
            _create(sessions, clock, identity_id)
        assert sessions.terminate_all_for_identity(identity_id) == 3
        assert sessions.list_active_for_identity(identity_id) == []

    def test_terminate_all_counts_only_active_rows(self, sessions: SessionStore, clock, identity_id: int) -> None:
        a = _create(sessions, clock, identity_id)
        _create(sessions, clock, identity_id)
        sessions.terminate(a)
        assert sessions.terminate_all_for_identity(identity_id) == 1


class TestHousekeeping:
    def test_purge_removes_expired_and_inactive(self, sessions: SessionStore, clock, identity_id: int) -> None:
        keep = _create(sessions, clock, identity_id)
        ended = _create(sessions, clock, identity_id)
        sessions.create(identity_id, expires_at=clock() + timedelta(hours=1))
        sessions.terminate(ended)
        clock.advance(hours=2)
        assert sessions.purge_expired() == 2
        assert [s.session_token for s in sessions.list_active_for_identity(identity_id)] == [keep]


class TestFingerprint:
    def test_deterministic(self) -> None:
        assert device_fingerprint("UA", "1.2.3.4") == device_fingerprint("UA", "1.2.3.4")
        assert SessionStore.device_fingerprint("UA", "1.2.3.4") == device_fingerprint("UA", "1.2.3.4")

    def test_input_sensitive(self) -> None:
        assert device_fingerprint("UA", "1.2.3.4") != device_fingerprint("UA", "1.2.3.5")
        assert len(device_fingerprint(None, None)) == 16
