"""Tests for the debounced sync scheduler."""

import asyncio

import pytest

from quire.core.scheduler import SyncScheduler
from quire.protocols import ErrorKind
from quire.storage import MemoryCache
from tests.conftest import FakeRemoteStore, make_entry

DEBOUNCE = 0.1


@pytest.fixture
def scheduler(cache, remote):
    s = SyncScheduler(cache, remote, debounce=DEBOUNCE)
    s.enable()
    yield s
    s.close()


def version(n: int):
    return [make_entry("2024-01-01T00:00:00.000Z", title=f"v{n}")]


class TestWriteThrough:
    def test_cache_written_on_every_notify_without_loop(self, cache, remote):
        s = SyncScheduler(cache, remote, debounce=DEBOUNCE)
        s.notify(version(1))
        s.notify(version(2))
        assert cache.writes == 2
        assert cache.get() == version(2)

    @pytest.mark.asyncio
    async def test_disabled_scheduler_never_upserts(self, cache, remote):
        s = SyncScheduler(cache, remote, debounce=0.01)
        s.notify(version(1))
        await asyncio.sleep(0.05)
        assert remote.upserts == []
        assert not s.pending

    @pytest.mark.asyncio
    async def test_cache_write_failure_does_not_block_sync(self, remote):
        class BrokenCache(MemoryCache):
            def set(self, entries):
                raise OSError("disk full")

        s = SyncScheduler(BrokenCache(), remote, debounce=0.01)
        s.enable()
        s.notify(version(1))
        await asyncio.sleep(0.05)
        assert remote.upserts == [version(1)]


class TestDebounce:
    @pytest.mark.asyncio
    async def test_burst_coalesces_into_one_upsert_of_final_state(self, scheduler, remote):
        loop = asyncio.get_running_loop()
        for n in range(3):
            scheduler.notify(version(n))
            await asyncio.sleep(DEBOUNCE / 10)
        last_edit = loop.time()

        await asyncio.sleep(DEBOUNCE / 2)
        assert remote.upserts == []
        assert scheduler.pending

        await asyncio.sleep(DEBOUNCE * 1.5)
        assert remote.upserts == [version(2)]
        assert remote.upsert_times[0] - last_edit >= DEBOUNCE * 0.9
        assert remote.calls == [("upsert", "created_at")]

    @pytest.mark.asyncio
    async def test_separate_quiet_periods_sync_separately(self, scheduler, remote):
        scheduler.notify(version(1))
        await asyncio.sleep(DEBOUNCE * 2)
        scheduler.notify(version(2))
        await asyncio.sleep(DEBOUNCE * 2)
        assert remote.upserts == [version(1), version(2)]

    @pytest.mark.asyncio
    async def test_payload_frozen_when_timer_fires(self, scheduler, remote):
        remote.gate = asyncio.Event()
        scheduler.notify(version(1))
        await asyncio.sleep(DEBOUNCE * 1.5)
        assert scheduler.synchronizing

        # Edits while the upsert is in flight do not touch its payload
        scheduler.notify(version(2))
        remote.gate.set()
        await asyncio.sleep(0)
        assert remote.upserts[0] == version(1)

        await asyncio.sleep(DEBOUNCE * 2)
        assert remote.upserts == [version(1), version(2)]
        assert remote.rows["2024-01-01T00:00:00.000Z"].title == "v2"


class TestStatusAndErrors:
    @pytest.mark.asyncio
    async def test_synchronizing_flag_tracks_upsert(self, scheduler, remote):
        remote.gate = asyncio.Event()
        assert not scheduler.synchronizing
        scheduler.notify(version(1))
        await asyncio.sleep(DEBOUNCE * 1.5)
        assert scheduler.synchronizing
        remote.gate.set()
        await scheduler.wait_idle()
        assert not scheduler.synchronizing
        assert scheduler.last_synced_at is not None

    @pytest.mark.asyncio
    async def test_failure_captured_without_rollback(self, cache, remote):
        errors = []
        s = SyncScheduler(cache, remote, debounce=0.01, on_error=errors.append)
        s.enable()
        remote.fail_next("upsert", ErrorKind.CONFLICT)
        s.notify(version(1))
        await asyncio.sleep(0.05)

        assert s.last_error is not None
        assert s.last_error.kind == ErrorKind.CONFLICT
        assert errors == [s.last_error]
        assert not s.synchronizing
        assert cache.get() == version(1)

    @pytest.mark.asyncio
    async def test_next_change_is_the_retry(self, cache, remote):
        s = SyncScheduler(cache, remote, debounce=0.01)
        s.enable()
        remote.fail_next("upsert")
        s.notify(version(1))
        await asyncio.sleep(0.05)
        assert remote.rows == {}

        s.notify(version(2))
        await asyncio.sleep(0.05)
        assert remote.rows["2024-01-01T00:00:00.000Z"].title == "v2"
        assert s.last_error is None


class TestFlushAndClose:
    @pytest.mark.asyncio
    async def test_flush_sends_immediately_and_cancels_timer(self, scheduler, remote):
        scheduler.notify(version(1))
        assert await scheduler.flush() is True
        assert remote.upserts == [version(1)]
        assert not scheduler.pending
        await asyncio.sleep(DEBOUNCE * 2)
        assert len(remote.upserts) == 1

    @pytest.mark.asyncio
    async def test_flush_when_disabled_returns_false(self, cache, remote):
        s = SyncScheduler(cache, remote)
        assert await s.flush() is False
        assert remote.upserts == []

    @pytest.mark.asyncio
    async def test_close_cancels_pending_timer(self, scheduler, remote):
        scheduler.notify(version(1))
        assert scheduler.pending
        scheduler.close()
        await asyncio.sleep(DEBOUNCE * 2)
        assert remote.upserts == []

    @pytest.mark.asyncio
    async def test_held_identity_left_out_until_released(self, scheduler, cache, remote):
        kept = make_entry("2024-01-02T00:00:00.000Z")
        held = make_entry("2024-01-01T00:00:00.000Z")
        scheduler.hold(held.created_at)
        scheduler.notify([kept, held])
        assert cache.get() == [kept, held]

        assert await scheduler.flush() is True
        assert remote.upserts == [[kept]]

        scheduler.release(held.created_at)
        assert await scheduler.flush() is True
        assert remote.upserts[-1] == [kept, held]

    @pytest.mark.asyncio
    async def test_notify_after_close_only_writes_cache(self, scheduler, cache, remote):
        scheduler.close()
        scheduler.enable()
        scheduler.notify(version(3))
        await asyncio.sleep(DEBOUNCE * 2)
        assert remote.upserts == []
        assert cache.get() == version(3)


@pytest.mark.asyncio
async def test_upserts_are_serialized():
    remote = FakeRemoteStore()
    remote.gate = asyncio.Event()
    s = SyncScheduler(MemoryCache(), remote, debounce=0.01)
    s.enable()
    s.notify(version(1))
    await asyncio.sleep(0.03)
    s.notify(version(2))
    await asyncio.sleep(0.03)
    # Second push waits on the first
    assert len(remote.upserts) == 1
    remote.gate.set()
    await asyncio.sleep(0.01)
    await s.wait_idle()
    assert remote.upserts == [version(1), version(2)]
