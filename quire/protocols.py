"""
quire Protocol Definitions
==========================

Interface contracts between the sync core and its collaborators.

Collaborators and their roles:
- LocalCache:  Session-scoped copy of the entry list. Always answers, never fails.
- RemoteStore: Durable, multi-device store reached over the network.
- Navigator:   Receives "make this entry current" side effects.

Neither copy is trusted directly. The session reconciles them into the
canonical set and then pushes the canonical set back down to both.

Error handling philosophy:
- Remote failures raise RemoteStoreError carrying a closed ErrorKind
- The session captures them into ``last_error``; none are fatal
- Invalid arguments raise ValueError
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, runtime_checkable

from quire.types import Entry

# =============================================================================
# ERRORS
# =============================================================================


class ErrorKind(str, Enum):
    """Closed set of remote failure categories."""

    TRANSIENT_NETWORK = "transient_network"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


class QuireError(Exception):
    """Base for all quire errors."""

    pass


class RemoteStoreError(QuireError):
    """Raised by RemoteStore implementations when a call fails."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        operation: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.operation = operation
        self.cause = cause

    def __str__(self) -> str:
        prefix = f"{self.operation}: " if self.operation else ""
        return f"{prefix}{self.kind.value}: {self.message}"


# =============================================================================
# COLLABORATORS
# =============================================================================


@runtime_checkable
class LocalCache(Protocol):
    """Session-lifetime storage of the full entry list."""

    def get(self) -> List[Entry]:
        """Return the cached entries, or an empty list if nothing is cached."""
        ...

    def set(self, entries: Sequence[Entry]) -> None:
        """Replace the cached entries."""
        ...


@runtime_checkable
class RemoteStore(Protocol):
    """Authoritative store. All methods raise RemoteStoreError on failure."""

    async def read_all(self, columns: Sequence[str]) -> List[Entry]:
        """Unordered bulk read, scoped to the caller's access rights."""
        ...

    async def upsert(self, entries: Sequence[Entry], on_conflict: str = "created_at") -> None:
        """Insert-or-replace every entry by identity."""
        ...

    async def delete_one(self, identity: str) -> None:
        ...


# Route writer: called with the identity that should become current
Navigator = Callable[[str], None]

# Sign-in source: registers a zero-argument callback, returns an unsubscribe callable
SignInSource = Callable[[Callable[[], None]], Callable[[], None]]
