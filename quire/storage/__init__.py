"""Storage collaborators: the session cache and the remote stores."""

from quire.storage.offline import OfflineStore
from quire.storage.session_cache import MemoryCache, SessionFileCache
from quire.storage.supabase_store import SupabaseEntryStore, classify_remote_error

__all__ = [
    "MemoryCache",
    "OfflineStore",
    "SessionFileCache",
    "SupabaseEntryStore",
    "classify_remote_error",
]
