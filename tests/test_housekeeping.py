"""
tests/test_housekeeping.py -- The background purge loop in api/main.py.

Covers:
  - A StoreError from one purge is logged and the loop keeps running
  - Session purge still runs on a tick where the denylist purge failed
"""

from __future__ import annotations

import asyncio
import logging
from types import SimpleNamespace

from api.main import _purge_loop
from auth.errors import StoreError


class _FlakyPurge:
    """Raises StoreError on the first call, then counts successful calls."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> int:
        self.calls += 1
        if self.calls == 1:
            raise StoreError("database is locked")
        return 0


async def _run_briefly(app, seconds: float = 0.2) -> None:
    task = asyncio.create_task(_purge_loop(app, 0))
    await asyncio.sleep(seconds)
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    assert task.cancelled()


def test_purge_loop_survives_store_error(caplog):
    revocations_purge = _FlakyPurge()
    session_calls = []
    auth = SimpleNamespace(
        revocations=SimpleNamespace(purge_expired=revocations_purge),
        sessions=SimpleNamespace(purge_expired=lambda: session_calls.append(1) or 0),
    )
    app = SimpleNamespace(state=SimpleNamespace(auth=auth))

    with caplog.at_level(logging.ERROR, logger="inkpress.api"):
        asyncio.run(_run_briefly(app))

    assert revocations_purge.calls > 1
    assert len(session_calls) >= 1
    assert "Housekeeping purge failed" in caplog.text
