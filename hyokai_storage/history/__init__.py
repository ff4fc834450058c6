"""
History ledgers.

Two independent newest-first ledgers (advanced and beginner mode),
their record types, display helpers and the remote mirror.
"""

from .formatting import format_timestamp, truncate_text
from .ledger import (
    MAX_HISTORY_ENTRIES,
    MAX_SIMPLE_HISTORY_ENTRIES,
    HistoryLedger,
    Ledger,
    SimpleHistoryLedger,
)
from .mirror import HistoryMirror
from .types import (
    CompareModelResult,
    HistoryEntry,
    HistoryResult,
    ModelOutput,
    SimpleHistoryEntry,
    SingleModelResult,
    TaskMode,
)

__all__ = [
    # Ledgers
    "Ledger",
    "HistoryLedger",
    "SimpleHistoryLedger",
    "MAX_HISTORY_ENTRIES",
    "MAX_SIMPLE_HISTORY_ENTRIES",
    "HistoryMirror",
    # Types
    "HistoryEntry",
    "SimpleHistoryEntry",
    "HistoryResult",
    "SingleModelResult",
    "CompareModelResult",
    "ModelOutput",
    "TaskMode",
    # Display
    "format_timestamp",
    "truncate_text",
]
