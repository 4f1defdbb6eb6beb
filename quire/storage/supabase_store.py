"""Supabase-backed remote store for entries.

Wraps the synchronous supabase-py client. Each call runs in a worker
thread so the event loop (and the user typing into it) is never blocked
on the network. Every failure is re-raised as RemoteStoreError with a
closed ErrorKind; timestamps read back are normalized before they reach
the reconciler.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, Sequence

import httpx
from postgrest.exceptions import APIError

from supabase import Client, SupabaseException, create_client

from quire.config import Settings
from quire.protocols import ErrorKind, RemoteStoreError
from quire.types import ENTRY_COLUMNS, Entry, entries_from_rows, entries_to_rows

logger = logging.getLogger(__name__)

# Postgres / PostgREST codes that map to a specific kind
_CONFLICT_CODES = frozenset({"23505", "409"})
_NOT_FOUND_CODES = frozenset({"PGRST116", "PGRST205", "42P01", "404"})

SIGNED_IN = "SIGNED_IN"


def classify_remote_error(exc: BaseException) -> ErrorKind:
    """Map a client exception onto an ErrorKind.

    Anything that is not recognisably a missing resource or a conflict is
    treated as transient, since the next sync cycle retries it anyway.
    """
    code: Optional[str] = None
    if isinstance(exc, APIError):
        code = str(exc.code) if exc.code is not None else None
    elif isinstance(exc, httpx.HTTPStatusError):
        code = str(exc.response.status_code)

    if code in _CONFLICT_CODES:
        return ErrorKind.CONFLICT
    if code in _NOT_FOUND_CODES:
        return ErrorKind.NOT_FOUND

    message = str(exc).lower()
    if "duplicate" in message or "conflict" in message:
        return ErrorKind.CONFLICT
    if "not found" in message or "does not exist" in message:
        return ErrorKind.NOT_FOUND
    return ErrorKind.TRANSIENT_NETWORK


def _wrap(exc: Exception, operation: str) -> RemoteStoreError:
    kind = classify_remote_error(exc)
    message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
    return RemoteStoreError(kind, message, operation=operation, cause=exc)


class SupabaseEntryStore:
    """RemoteStore implementation over a Supabase table.

    Args:
        client: A supabase-py Client (row-level security scopes what it sees).
        table: Table holding the entries.
    """

    def __init__(self, client: Client, table: str = "entries"):
        self._client = client
        self.table = table

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseEntryStore":
        if not settings.has_remote:
            raise ValueError("QUIRE_SUPABASE_URL and QUIRE_SUPABASE_KEY must be set")
        client = create_client(settings.supabase_url, settings.supabase_key)
        return cls(client, table=settings.entries_table)

    async def _run(self, operation: str, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except (APIError, SupabaseException, httpx.HTTPError, OSError) as e:
            raise _wrap(e, operation) from e

    async def read_all(self, columns: Sequence[str] = ENTRY_COLUMNS) -> List[Entry]:
        select = ", ".join(columns)
        result = await self._run(
            "read_all",
            lambda: self._client.table(self.table).select(select).execute(),
        )
        rows = result.data or []
        try:
            entries = entries_from_rows(rows)
        except (KeyError, ValueError) as e:
            raise RemoteStoreError(
                ErrorKind.TRANSIENT_NETWORK,
                f"Malformed entry row: {e}",
                operation="read_all",
                cause=e,
            ) from e
        logger.debug("Read %d entries from %s", len(entries), self.table)
        return entries

    async def upsert(self, entries: Sequence[Entry], on_conflict: str = "created_at") -> None:
        rows = entries_to_rows(entries)
        await self._run(
            "upsert",
            lambda: self._client.table(self.table).upsert(rows, on_conflict=on_conflict).execute(),
        )
        logger.debug("Upserted %d entries into %s", len(rows), self.table)

    async def delete_one(self, identity: str) -> None:
        await self._run(
            "delete_one",
            lambda: self._client.table(self.table).delete().eq("created_at", identity).execute(),
        )
        logger.debug("Deleted entry %s from %s", identity, self.table)

    def subscribe_sign_in(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Call ``callback`` whenever the auth state becomes signed-in.

        Returns an unsubscribe function.
        """

        def _on_change(event, _session) -> None:
            if event == SIGNED_IN:
                callback()

        subscription = self._client.auth.on_auth_state_change(_on_change)
        return subscription.unsubscribe
