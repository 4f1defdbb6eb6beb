"""The entry session: owner of the canonical entry list.

Startup runs in a fixed order so that sync never sees a half-loaded list:

    IDLE -> LOADING -> RECONCILING -> READY

LOADING reads the session cache. RECONCILING reads the remote store (a
failure is recorded and treated as an empty remote) and merges the two.
Only on entering READY is the scheduler enabled, so the first upsert
always carries the reconciled list. A sign-in event moves READY back to
RECONCILING for a fresh remote read, merged against the in-memory list.
A sign-in that arrives mid-reconcile is remembered and answered with one
more read once the current one settles.

Edits are plain synchronous methods. They replace the list, write it
through to the cache and re-arm the debounce timer.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Set, Tuple

from quire.config import Settings
from quire.core.reconcile import reconcile
from quire.core.scheduler import DEFAULT_DEBOUNCE_SECONDS, SyncScheduler
from quire.core.selector import EntrySelector
from quire.protocols import LocalCache, Navigator, RemoteStore, RemoteStoreError, SignInSource
from quire.types import (
    ENTRY_COLUMNS,
    Entry,
    blank_entry,
    seed_entry,
    sort_entries,
    utc_now_iso,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    RECONCILING = "reconciling"
    READY = "ready"
    CLOSED = "closed"


def _system_clock() -> datetime:
    return datetime.now(timezone.utc)


def _no_navigation(identity: str) -> None:
    pass


class EntrySession:
    """Canonical entry list plus the machinery that keeps it durable.

    Args:
        cache: Session cache (read once at startup, then written through).
        remote: Remote store.
        navigate: Route writer for corrective and create/delete navigation.
        ref: Initial current-entry reference.
        debounce: Seconds of quiet before an upsert.
        clock: Returns the current time; identities and ``updated_at`` come from it.
        flush_on_close: Upsert a pending change on close instead of dropping the timer.
    """

    def __init__(
        self,
        cache: LocalCache,
        remote: RemoteStore,
        navigate: Optional[Navigator] = None,
        ref: Optional[str] = None,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], datetime] = _system_clock,
        flush_on_close: bool = False,
    ):
        self._cache = cache
        self._remote = remote
        self._clock = clock
        self.flush_on_close = flush_on_close

        self._selector = EntrySelector(navigate or _no_navigation, ref)
        self._scheduler = SyncScheduler(cache, remote, debounce, on_error=self._record_error)

        self._entries: List[Entry] = []
        self.state = SessionState.IDLE
        self.last_error: Optional[RemoteStoreError] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._sign_in_tasks: Set[asyncio.Task] = set()
        self._sign_in_pending = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        navigate: Optional[Navigator] = None,
        ref: Optional[str] = None,
        **kwargs,
    ) -> "EntrySession":
        """Build a session on the session file cache and the configured store."""
        from quire.storage import OfflineStore, SessionFileCache, SupabaseEntryStore

        cache = SessionFileCache(settings.cache_dir, settings.session_id)
        if settings.has_remote:
            remote = SupabaseEntryStore.from_settings(settings)
        else:
            logger.info("Supabase is not configured; running from the session cache only")
            remote = OfflineStore()
        kwargs.setdefault("debounce", settings.debounce_seconds)
        return cls(cache, remote, navigate=navigate, ref=ref, **kwargs)

    async def __aenter__(self) -> "EntrySession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # === Views ===

    @property
    def entries(self) -> Tuple[Entry, ...]:
        return tuple(self._entries)

    @property
    def ref(self) -> Optional[str]:
        return self._selector.ref

    @property
    def current(self) -> Optional[Entry]:
        return self._selector.current(self._entries)

    @property
    def title(self) -> str:
        current = self.current
        return current.title if current else ""

    @property
    def body(self) -> str:
        current = self.current
        return current.body if current else ""

    @property
    def created_at(self) -> Optional[str]:
        current = self.current
        return current.created_at if current else None

    @property
    def synchronizing(self) -> bool:
        return self._scheduler.synchronizing

    @property
    def scheduler(self) -> SyncScheduler:
        return self._scheduler

    def _now(self) -> str:
        return utc_now_iso(self._clock())

    def _record_error(self, error: RemoteStoreError) -> None:
        self.last_error = error

    def clear_error(self) -> None:
        self.last_error = None

    # === Startup and sign-in ===

    async def start(self) -> None:
        """Load, reconcile, then enable sync."""
        if self.state != SessionState.IDLE:
            raise RuntimeError(f"Session already started (state={self.state.value})")
        self._loop = asyncio.get_running_loop()

        self.state = SessionState.LOADING
        self._entries = sort_entries(self._cache.get())
        logger.debug("Loaded %d cached entries", len(self._entries))

        self.state = SessionState.RECONCILING
        await self._reconcile_settled()

        self.state = SessionState.READY
        self._scheduler.enable()
        self._scheduler.notify(self._entries)
        logger.info("Session ready with %d entries", len(self._entries))

    async def handle_sign_in(self) -> None:
        """Re-read the remote store and merge it into the current list.

        While a load or reconcile is already running the sign-in is queued
        and served by one extra read when that pass completes.
        """
        if self.state in (SessionState.LOADING, SessionState.RECONCILING):
            logger.debug("Sign-in while %s; queued", self.state.value)
            self._sign_in_pending = True
            return
        if self.state != SessionState.READY:
            logger.debug("Ignoring sign-in while %s", self.state.value)
            return
        self.state = SessionState.RECONCILING
        try:
            await self._reconcile_settled()
        finally:
            if self.state == SessionState.RECONCILING:
                self.state = SessionState.READY
        if self.state == SessionState.READY:
            self._scheduler.notify(self._entries)

    async def _reconcile(self) -> None:
        remote = await self._read_remote()
        # Merge against the live list so edits made during the read survive
        self._entries = reconcile(self._entries, remote, now=self._now())
        self._selector.apply(self._entries)

    async def _reconcile_settled(self) -> None:
        await self._reconcile()
        while self._sign_in_pending:
            self._sign_in_pending = False
            logger.debug("Re-reading remote for a sign-in received mid-reconcile")
            await self._reconcile()

    async def _read_remote(self) -> List[Entry]:
        try:
            return await self._remote.read_all(ENTRY_COLUMNS)
        except RemoteStoreError as e:
            self._record_error(e)
            logger.warning(f"Remote read failed (continuing with local entries): {e}")
            return []

    def attach_sign_in(self, source: SignInSource) -> None:
        """Subscribe to sign-in events.

        The source may call back from any thread; the reload is scheduled
        on the session's event loop.
        """
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = source(self._on_sign_in)

    def _on_sign_in(self) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("Sign-in before session start; the startup read covers it")
            return
        loop.call_soon_threadsafe(self._spawn_sign_in)

    def _spawn_sign_in(self) -> None:
        task = asyncio.get_running_loop().create_task(self.handle_sign_in())
        self._sign_in_tasks.add(task)
        task.add_done_callback(self._sign_in_tasks.discard)

    # === Mutations ===

    def set_title(self, title: str) -> Optional[Entry]:
        now = self._now()
        return self._update_current(lambda entry: entry.with_title(title, now))

    def set_body(self, body: str) -> Optional[Entry]:
        now = self._now()
        return self._update_current(lambda entry: entry.with_body(body, now))

    def _update_current(self, change: Callable[[Entry], Entry]) -> Optional[Entry]:
        current = self.current
        if current is None:
            logger.debug("No current entry; edit dropped")
            return None
        updated = change(current)
        self._entries = [
            updated if entry.created_at == updated.created_at else entry
            for entry in self._entries
        ]
        self._scheduler.notify(self._entries)
        return updated

    def create_entry(self) -> str:
        """Create a blank entry and make it current.

        If an entry with the generated identity already exists this only
        navigates to it. Returns the identity navigated to.
        """
        timestamp = self._now()
        if any(entry.created_at == timestamp for entry in self._entries):
            logger.debug("Entry %s already exists; navigating only", timestamp)
            self._selector.navigate(timestamp)
            return timestamp

        self._entries = sort_entries([*self._entries, blank_entry(timestamp)])
        self._selector.navigate(timestamp)
        self._scheduler.notify(self._entries)
        return timestamp

    async def delete_entry(self, identity: str) -> bool:
        """Delete remotely, then locally.

        On a remote failure the error is recorded and the list is left
        untouched. Afterwards the newest remaining entry becomes current,
        or a fresh seed entry if none remain.

        Until the delete resolves the entry is held back from every upsert,
        including ones triggered by edits made meanwhile.
        """
        self._scheduler.hold(identity)
        self._scheduler.cancel_pending()
        await self._scheduler.wait_idle()
        try:
            await self._remote.delete_one(identity)
        except RemoteStoreError as e:
            self._scheduler.release(identity)
            self._record_error(e)
            logger.warning(f"Delete of {identity} failed: {e}")
            self._scheduler.notify(self._entries)
            return False

        self._scheduler.release(identity)
        remaining = [entry for entry in self._entries if entry.created_at != identity]
        if not remaining:
            seed = seed_entry(self._now())
            self._entries = [seed]
            self._selector.navigate(seed.created_at)
        else:
            self._entries = remaining
            self._selector.navigate(remaining[0].created_at)
        self._scheduler.notify(self._entries)
        return True

    def navigate(self, identity: Optional[str]) -> Optional[Entry]:
        """Follow an external route change.

        Once the session is ready an unknown or missing identity is
        corrected to the newest entry.
        """
        self._selector.ref = identity
        if self.state == SessionState.READY:
            return self._selector.apply(self._entries)
        return self.current

    # === Teardown ===

    async def flush(self) -> bool:
        """Upsert now instead of waiting for the debounce window."""
        return await self._scheduler.flush()

    async def close(self, flush: Optional[bool] = None) -> None:
        if self.state == SessionState.CLOSED:
            return
        should_flush = self.flush_on_close if flush is None else flush
        if should_flush and self._scheduler.enabled and self._scheduler.pending:
            await self._scheduler.flush()
        self._scheduler.close()
        await self._scheduler.wait_idle()

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._sign_in_tasks):
            task.cancel()
        self.state = SessionState.CLOSED
        logger.debug("Session closed")
