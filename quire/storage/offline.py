"""Stand-in remote store for running without Supabase.

Reads return nothing and writes are accepted and dropped, so a session
runs from its LocalCache alone.
"""

import logging
from typing import List, Sequence

from quire.types import ENTRY_COLUMNS, Entry

logger = logging.getLogger(__name__)


class OfflineStore:
    async def read_all(self, columns: Sequence[str] = ENTRY_COLUMNS) -> List[Entry]:
        logger.debug("No remote store configured; remote read is empty")
        return []

    async def upsert(self, entries: Sequence[Entry], on_conflict: str = "created_at") -> None:
        logger.debug("No remote store configured; dropping upsert of %d entries", len(entries))

    async def delete_one(self, identity: str) -> None:
        logger.debug("No remote store configured; dropping delete of %s", identity)
