"""Last-write-wins reconciliation of the local and remote entry lists.

Pure and deterministic: the same inputs always produce the same output and
nothing outside the arguments is touched. The only source of time is the
optional ``now`` used to stamp a seed entry.
"""

import logging
from typing import Dict, Iterable, List, Optional

from quire.types import Entry, seed_entry, sort_entries

logger = logging.getLogger(__name__)


def _by_identity(entries: Iterable[Entry]) -> Dict[str, Entry]:
    """Index entries by identity, keeping the newest version of any duplicate."""
    index: Dict[str, Entry] = {}
    for entry in entries:
        existing = index.get(entry.created_at)
        if existing is None or entry.updated_at > existing.updated_at:
            index[entry.created_at] = entry
    return index


def reconcile(
    local: Iterable[Entry], remote: Iterable[Entry], now: Optional[str] = None
) -> List[Entry]:
    """Merge local and remote entries into one canonical, newest-first list.

    - Both empty: a single seed entry.
    - Only one side has entries: that side, unchanged.
    - Otherwise each shared identity keeps the local version unless the
      remote ``updated_at`` is strictly later (local wins ties), and
      remote-only entries are appended.

    The result holds each identity once and covers every identity in
    either input. Reconciling the result against either input again
    returns the result.

    Args:
        local: Entries from the session cache.
        remote: Entries from the remote store, timestamps already normalized.
        now: Timestamp for the seed entry; defaults to the current time.
    """
    local_index = _by_identity(local)
    remote_index = _by_identity(remote)

    if not local_index and not remote_index:
        logger.debug("Nothing cached or stored; seeding a first entry")
        return [seed_entry(now)]
    if not local_index:
        return sort_entries(remote_index.values())
    if not remote_index:
        return sort_entries(local_index.values())

    merged: List[Entry] = []
    remote_wins = 0
    for identity, local_entry in local_index.items():
        remote_entry = remote_index.get(identity)
        if remote_entry is not None and remote_entry.updated_at > local_entry.updated_at:
            merged.append(remote_entry)
            remote_wins += 1
        else:
            merged.append(local_entry)

    remote_only = [e for identity, e in remote_index.items() if identity not in local_index]
    merged.extend(remote_only)

    logger.debug(
        "Reconciled %d local + %d remote entries: %d remote wins, %d remote-only",
        len(local_index),
        len(remote_index),
        remote_wins,
        len(remote_only),
    )
    return sort_entries(merged)
