"""
Local persistence.

Backends store raw strings; SafeStore layers quota-aware, non-raising
JSON reads and writes on top.
"""

from .backend import DEFAULT_QUOTA_BYTES, FileBackend, KeyValueBackend, MemoryBackend
from .safe_store import SafeStore, StorageUsage, TrimResult, WriteError, WriteResult

__all__ = [
    "DEFAULT_QUOTA_BYTES",
    "FileBackend",
    "KeyValueBackend",
    "MemoryBackend",
    "SafeStore",
    "StorageUsage",
    "TrimResult",
    "WriteError",
    "WriteResult",
]
