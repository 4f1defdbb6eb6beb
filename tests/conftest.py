"""
Pytest fixtures and test configuration for quire tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence
from unittest.mock import Mock

import pytest

from quire.core import EntrySession
from quire.protocols import ErrorKind, RemoteStoreError
from quire.storage import MemoryCache
from quire.types import Entry


def make_entry(created_at: str, updated_at: Optional[str] = None, title: str = "", body: str = ""):
    """Entry with canonical timestamps; updated_at defaults to created_at."""
    return Entry(
        created_at=created_at,
        updated_at=updated_at or created_at,
        title=title,
        body=body,
    )


class FakeClock:
    """Callable clock that advances by ``step_ms`` after every read."""

    def __init__(self, start: str = "2024-01-01T00:00:00.000Z", step_ms: int = 1):
        self.now = datetime.fromisoformat(start.replace("Z", "+00:00"))
        self.step = timedelta(milliseconds=step_ms)

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, ms: int) -> None:
        self.now = self.now + timedelta(milliseconds=ms)


class FakeRemoteStore:
    """In-memory RemoteStore that records calls and can be told to fail."""

    def __init__(self, entries: Sequence[Entry] = ()):
        self.rows: Dict[str, Entry] = {e.created_at: e for e in entries}
        self.calls: List[tuple] = []
        self.upserts: List[List[Entry]] = []
        self.upsert_times: List[float] = []
        self.fail: Dict[str, RemoteStoreError] = {}
        self.gate: Optional[asyncio.Event] = None
        # Set to hold delete_one open after the row is gone server-side
        self.delete_ack: Optional[asyncio.Event] = None

    def fail_next(self, operation: str, kind: ErrorKind = ErrorKind.TRANSIENT_NETWORK):
        self.fail[operation] = RemoteStoreError(kind, "simulated failure", operation=operation)

    async def _maybe_fail(self, operation: str):
        if self.gate is not None:
            await self.gate.wait()
        error = self.fail.pop(operation, None)
        if error is not None:
            raise error

    async def read_all(self, columns) -> List[Entry]:
        self.calls.append(("read_all", tuple(columns)))
        await self._maybe_fail("read_all")
        return list(self.rows.values())

    async def upsert(self, entries, on_conflict: str = "created_at") -> None:
        payload = list(entries)
        self.calls.append(("upsert", on_conflict))
        self.upserts.append(payload)
        self.upsert_times.append(asyncio.get_running_loop().time())
        await self._maybe_fail("upsert")
        for entry in payload:
            self.rows[entry.created_at] = entry

    async def delete_one(self, identity: str) -> None:
        self.calls.append(("delete_one", identity))
        await self._maybe_fail("delete_one")
        self.rows.pop(identity, None)
        if self.delete_ack is not None:
            await self.delete_ack.wait()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def navigations():
    return []


@pytest.fixture
def make_session(cache, remote, clock, navigations):
    """Factory for sessions wired to the fakes; keyword overrides pass through."""

    def _make(**kwargs):
        kwargs.setdefault("navigate", navigations.append)
        kwargs.setdefault("debounce", 0.05)
        kwargs.setdefault("clock", clock)
        return EntrySession(kwargs.pop("cache", cache), kwargs.pop("remote", remote), **kwargs)

    return _make


@pytest.fixture
def mock_supabase_client():
    """Mock supabase-py client recording table calls.

    ``client.table(name)`` returns the same query mock each time; every
    builder method returns the query itself so chains like
    ``.select(...).execute()`` and ``.delete().eq(...).execute()`` work.
    """
    client = Mock()
    query = Mock()
    query.select.return_value = query
    query.upsert.return_value = query
    query.delete.return_value = query
    query.eq.return_value = query
    query.execute.return_value = Mock(data=[])
    client.table.return_value = query
    return client, query
