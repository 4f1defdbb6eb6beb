"""
Shared entry types for quire.

The Entry dataclass is the vocabulary between the cache, the remote store,
the reconciler and the session. Entries are immutable: every edit produces
a new Entry with a refreshed ``updated_at``.

Timestamps travel as strings in one canonical form,
``YYYY-MM-DDTHH:MM:SS.mmmZ`` (UTC, millisecond precision). Anything read
from outside the process goes through ``normalize_timestamp`` first so that
``2024-01-01T00:00:00+00:00`` and ``2024-01-01T00:00:00.000Z`` compare equal.
"""

from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from dateutil.parser import isoparse

# === Seed content ===

FIRST_TITLE = "Welcome to your journal"

FIRST_BODY = (
    "This is your first entry. Everything you write here is saved in this "
    "session right away and backed up to your account a moment after you "
    "stop typing.\n\n"
    "Create a new entry whenever you like; the newest one is always on top."
)

# Columns requested from the remote store on bulk reads
ENTRY_COLUMNS = ("title", "body", "created_at", "updated_at")


# === Timestamp helpers ===


def format_timestamp(dt: datetime) -> str:
    """Render a datetime in the canonical entry timestamp form."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def utc_now_iso(now: Optional[datetime] = None) -> str:
    """Get the current (or given) instant as a canonical timestamp string."""
    return format_timestamp(now or datetime.now(timezone.utc))


def normalize_timestamp(value: Union[str, datetime]) -> str:
    """Normalize an ISO-8601 string or datetime to the canonical form.

    Naive values are taken to be UTC. Sub-millisecond precision is
    truncated, matching what a browser ``Date`` keeps.

    Raises:
        ValueError: If ``value`` is empty or not a parseable ISO-8601 string.
    """
    if isinstance(value, datetime):
        return format_timestamp(value)
    if not value:
        raise ValueError("Empty timestamp")
    try:
        return format_timestamp(isoparse(value))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid ISO timestamp: {value!r}") from exc


# === Entry ===


@dataclass(frozen=True)
class Entry:
    """A journal entry.

    ``created_at`` is the identity and the sort key; ``updated_at`` is only
    ever used for conflict resolution.
    """

    created_at: str
    updated_at: str
    title: str = ""
    body: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Entry":
        """Build an Entry from a store/cache row, normalizing timestamps.

        Extra columns (``id``, ``user_id``) are ignored.
        """
        created_at = normalize_timestamp(row["created_at"])
        updated_at = row.get("updated_at") or created_at
        return cls(
            created_at=created_at,
            updated_at=normalize_timestamp(updated_at),
            title=row.get("title") or "",
            body=row.get("body") or "",
        )

    def to_row(self) -> Dict[str, str]:
        return asdict(self)

    def with_title(self, title: str, now: str) -> "Entry":
        return replace(self, title=title, updated_at=_not_before(now, self.updated_at))

    def with_body(self, body: str, now: str) -> "Entry":
        return replace(self, body=body, updated_at=_not_before(now, self.updated_at))


def _not_before(now: str, previous: str) -> str:
    # updated_at never moves backwards within a session
    return now if now >= previous else previous


def sort_entries(entries: Iterable[Entry]) -> List[Entry]:
    """Return entries newest-first by identity."""
    return sorted(entries, key=lambda e: e.created_at, reverse=True)


def seed_entry(now: Optional[str] = None) -> Entry:
    """Placeholder entry used when no entries exist anywhere."""
    timestamp = now or utc_now_iso()
    return Entry(
        created_at=timestamp,
        updated_at=timestamp,
        title=FIRST_TITLE,
        body=FIRST_BODY,
    )


def blank_entry(now: str) -> Entry:
    return Entry(created_at=now, updated_at=now)


def entries_from_rows(rows: Iterable[Dict[str, Any]]) -> List[Entry]:
    return [Entry.from_row(row) for row in rows]


def entries_to_rows(entries: Iterable[Entry]) -> List[Dict[str, str]]:
    return [entry.to_row() for entry in entries]
