"""Current-entry selection.

The current entry is named by an external reference (the ``entry`` route
parameter). A reference that is missing or names nothing is corrected by
navigating to the newest entry.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from quire.protocols import Navigator
from quire.types import Entry, sort_entries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """The entry to display, and where to navigate (None if nowhere)."""

    entry: Optional[Entry]
    navigate_to: Optional[str] = None


def select(ref: Optional[str], entries: Sequence[Entry]) -> Selection:
    """Pick the current entry for ``ref``.

    - ``ref`` names an entry: that entry, no navigation.
    - ``ref`` names nothing, or is absent: the newest entry, and navigate to it.

    An empty list selects nothing.
    """
    if ref:
        for entry in entries:
            if entry.created_at == ref:
                return Selection(entry)

    if not entries:
        return Selection(None)

    first = sort_entries(entries)[0]
    return Selection(first, navigate_to=first.created_at)


class EntrySelector:
    """Holds the current reference and applies navigation side effects.

    Args:
        navigate: Route writer; receives the identity to make current.
        ref: Initial reference, e.g. from the URL.
    """

    def __init__(self, navigate: Navigator, ref: Optional[str] = None):
        self._navigate = navigate
        self.ref = ref

    def navigate(self, identity: str) -> None:
        """Point the route at ``identity`` and remember it as current."""
        self.ref = identity
        self._navigate(identity)

    def apply(self, entries: Sequence[Entry]) -> Optional[Entry]:
        """Re-evaluate the selection against ``entries``.

        Returns the current entry after any corrective navigation.
        """
        selection = select(self.ref, entries)
        if selection.navigate_to is not None:
            logger.debug(
                "Reference %r is not an entry; navigating to %s", self.ref, selection.navigate_to
            )
            self.navigate(selection.navigate_to)
        return selection.entry

    def current(self, entries: Sequence[Entry]) -> Optional[Entry]:
        """Look up the current entry without navigating."""
        if self.ref is None:
            return None
        for entry in entries:
            if entry.created_at == self.ref:
                return entry
        return None
