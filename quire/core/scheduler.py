"""Debounced propagation of the canonical entry list.

Every change is written through to the session cache immediately. The
remote upsert waits for a quiet period: each change cancels the pending
timer and arms a new one, so a burst of edits produces one upsert of the
last observed list. The list is frozen when the timer fires, so edits made
while the upsert is in flight never leak into its payload.
"""

import asyncio
import logging
from typing import Callable, Optional, Sequence, Set, Tuple

from quire.protocols import LocalCache, RemoteStore, RemoteStoreError
from quire.types import Entry, utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.0


class SyncScheduler:
    """Write-through cache plus debounced bulk upsert.

    The scheduler starts disabled: until ``enable()`` is called, changes
    only reach the cache. The session enables it once reconciliation has
    produced a complete list, so a half-loaded list is never upserted.

    Must be driven from inside a running event loop.

    Args:
        cache: Session cache, written on every change.
        remote: Remote store receiving the debounced upserts.
        debounce: Quiet period in seconds, measured from the last change.
        on_error: Called with each captured upsert failure.
    """

    def __init__(
        self,
        cache: LocalCache,
        remote: RemoteStore,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
        on_error: Optional[Callable[[RemoteStoreError], None]] = None,
    ):
        self._cache = cache
        self._remote = remote
        self.debounce = debounce
        self._on_error = on_error

        self._latest: Tuple[Entry, ...] = ()
        self._timer: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._held: Set[str] = set()
        self._lock = asyncio.Lock()
        self._enabled = False
        self._closed = False

        self.synchronizing = False
        self.last_error: Optional[RemoteStoreError] = None
        self.last_synced_at: Optional[str] = None
        self.upsert_count = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pending(self) -> bool:
        """True while a debounce timer is armed."""
        return self._timer is not None and not self._timer.done()

    def enable(self) -> None:
        if not self._closed:
            self._enabled = True

    def notify(self, entries: Sequence[Entry]) -> None:
        """Observe a new canonical list."""
        self._latest = tuple(entries)
        try:
            self._cache.set(self._latest)
        except OSError as e:
            logger.warning(f"Session cache write failed (continuing in memory): {e}")

        if not self._enabled or self._closed:
            return
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(self._debounced())

    async def _debounced(self) -> None:
        await asyncio.sleep(self.debounce)
        # Past this point the timer is spent; a new change arms a fresh one
        # rather than cancelling this upsert.
        self._timer = None
        task = asyncio.current_task()
        self._inflight.add(task)
        try:
            await self._push(self._latest)
        finally:
            self._inflight.discard(task)

    async def _push(self, snapshot: Tuple[Entry, ...]) -> bool:
        # Pushes are serialized so an older list can never land after a newer one
        async with self._lock:
            if self._held:
                snapshot = tuple(e for e in snapshot if e.created_at not in self._held)
            self.synchronizing = True
            self.upsert_count += 1
            try:
                await self._remote.upsert(snapshot, on_conflict="created_at")
            except RemoteStoreError as e:
                self.last_error = e
                logger.warning(f"Upsert of {len(snapshot)} entries failed: {e}")
                if self._on_error is not None:
                    self._on_error(e)
                return False
            finally:
                self.synchronizing = False

        self.last_error = None
        self.last_synced_at = utc_now_iso()
        logger.info("Synchronized %d entries", len(snapshot))
        return True

    async def flush(self) -> bool:
        """Cancel any pending timer and upsert the latest list now.

        Returns True on success, False if the upsert failed or the
        scheduler is not enabled.
        """
        self._cancel_timer()
        if not self._enabled:
            return False
        return await self._push(self._latest)

    async def wait_idle(self) -> None:
        """Wait for upserts that have already started."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def close(self) -> None:
        """Cancel the pending timer; nothing fires after this."""
        self._closed = True
        self._enabled = False
        self._cancel_timer()

    def hold(self, identity: str) -> None:
        """Leave ``identity`` out of upserts until it is released."""
        self._held.add(identity)

    def release(self, identity: str) -> None:
        self._held.discard(identity)

    def cancel_pending(self) -> None:
        """Drop the armed timer without closing; the next change re-arms it."""
        self._cancel_timer()

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
            logger.debug("Debounce timer reset")
        self._timer = None
