"""Sync core: reconciliation, debounced sync, entry selection and the session."""

from quire.core.reconcile import reconcile
from quire.core.requests import LatestOnly
from quire.core.scheduler import SyncScheduler
from quire.core.selector import EntrySelector, Selection, select
from quire.core.session import EntrySession, SessionState

__all__ = [
    "EntrySelector",
    "EntrySession",
    "LatestOnly",
    "Selection",
    "SessionState",
    "SyncScheduler",
    "reconcile",
    "select",
]
