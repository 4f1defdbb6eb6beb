"""Session-scoped entry caches.

The cache is the first thing read at startup and is written through on
every change to the canonical set. It never raises on read: a missing or
unreadable cache is an empty cache.
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import List, Sequence

from quire.types import Entry, entries_from_rows, entries_to_rows

logger = logging.getLogger(__name__)

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


class MemoryCache:
    """Process-lifetime cache. Used for tests and embedding."""

    def __init__(self, entries: Sequence[Entry] = ()):
        self._entries: List[Entry] = list(entries)
        self.writes = 0

    def get(self) -> List[Entry]:
        return list(self._entries)

    def set(self, entries: Sequence[Entry]) -> None:
        self._entries = list(entries)
        self.writes += 1


class SessionFileCache:
    """JSON file cache keyed by session id.

    Survives process restarts within one session id, which plays the part
    of a browser session. Files are written atomically and readable only
    by the owner.

    Args:
        cache_dir: Directory holding one ``<session_id>.json`` per session.
        session_id: Session key; letters, digits, ``_``, ``.`` and ``-`` only.
    """

    def __init__(self, cache_dir: Path, session_id: str = "default"):
        if not _SESSION_ID_RE.match(session_id) or session_id in {".", ".."}:
            raise ValueError(f"Invalid session id: {session_id!r}")
        self.cache_dir = Path(cache_dir)
        self.session_id = session_id

    @property
    def path(self) -> Path:
        return self.cache_dir / f"{self.session_id}.json"

    def get(self) -> List[Entry]:
        path = self.path
        if not path.exists():
            return []
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise TypeError("cache root is not a list")
            return entries_from_rows(data)
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session cache {path}: {e}")
            return []

    def set(self, entries: Sequence[Entry]) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(entries_to_rows(entries), ensure_ascii=False, indent=2)
        _atomic_write(self.path, payload)
        logger.debug("Wrote %d entries to %s", len(entries), self.path)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


def _atomic_write(path: Path, content: str) -> None:
    """Write via temp file + rename in the same directory.

    mkstemp creates the temp file with 0o600, which the rename preserves.
    """
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
