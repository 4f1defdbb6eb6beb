"""
quire - Local-first entry storage for a journaling app.

Session cache first, Supabase second, last write wins.
"""

from .core import EntrySession, reconcile
from .types import Entry

try:
    from importlib.metadata import version

    __version__ = version("quire")
except Exception:
    __version__ = "0.0.0"

__all__ = ["EntrySession", "Entry", "reconcile"]
