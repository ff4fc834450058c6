"""
Capacity-bounded history ledgers.

A ledger is a newest-first list persisted under a single key. Appends
prepend and then write the whole list through SafeStore's trimming
write, so the stored list never exceeds the cap and quota pressure
always discards the oldest entries first.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from .. import keys
from ..ids import generate_id, now_ms
from ..local.safe_store import SafeStore
from .types import HistoryEntry, HistoryResult, SimpleHistoryEntry, TaskMode

logger = logging.getLogger(__name__)

E = TypeVar("E", HistoryEntry, SimpleHistoryEntry)

MAX_HISTORY_ENTRIES = 50
MAX_SIMPLE_HISTORY_ENTRIES = 30


class Ledger(ABC, Generic[E]):
    """Newest-first, capped list of entries under one storage key.

    Subclasses define the key, the cap, the id prefix and how entries
    are (de)serialized.
    """

    key: str
    max_entries: int
    id_prefix: str | None = None

    def __init__(self, store: SafeStore) -> None:
        self.store = store
        self._entries: list[E] | None = None
        self._listeners: list[Callable[[str, E | str], Any]] = []

    @abstractmethod
    def _decode(self, data: dict[str, Any]) -> E:
        """Build an entry from its stored form. May raise on bad data."""
        ...

    @property
    def entries(self) -> list[E]:
        """Last known in-memory view (empty until loaded or appended)."""
        return list(self._entries or [])

    async def load(self) -> list[E]:
        """Read the full ledger from storage.

        Non-list payloads and parse errors yield an empty ledger;
        individual malformed items are skipped.
        """
        raw = await self.store.read(self.key, [])
        if not isinstance(raw, list):
            logger.error(f'Ignoring non-list payload in "{self.key}"')
            raw = []

        entries: list[E] = []
        for item in raw:
            try:
                entries.append(self._decode(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f'Skipping malformed entry in "{self.key}": {e}')
        self._entries = entries
        return list(entries)

    async def _current(self) -> list[E]:
        if self._entries is None:
            await self.load()
        return list(self._entries or [])

    async def _append(self, build: Callable[[str, int], E]) -> E:
        existing = await self._current()
        timestamp = now_ms()
        if existing:
            # Keep timestamps non-decreasing even if the clock steps back
            timestamp = max(timestamp, existing[0].timestamp)
        entry = build(generate_id(self.id_prefix), timestamp)

        updated = [entry, *existing]
        result = await self.store.write_collection_with_trim(
            self.key, [e.to_dict() for e in updated], self.max_entries
        )
        self._entries = updated[: len(result.items)]
        self._notify("append", entry)
        return entry

    async def delete_entry(self, entry_id: str) -> None:
        """Remove an entry by id. No-op if it is not present."""
        existing = await self._current()
        remaining = [e for e in existing if e.id != entry_id]
        if len(remaining) == len(existing):
            return
        result = await self.store.write_collection_with_trim(
            self.key, [e.to_dict() for e in remaining], self.max_entries
        )
        self._entries = remaining[: len(result.items)]
        self._notify("delete", entry_id)

    async def clear(self) -> None:
        """Remove the whole ledger."""
        await self.store.remove(self.key)
        self._entries = []

    def subscribe(self, listener: Callable[[str, E | str], Any]) -> Callable[[], None]:
        """Observe appends (``"append", entry``) and deletes (``"delete", id``).

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, action: str, payload: E | str) -> None:
        for listener in list(self._listeners):
            listener(action, payload)


class HistoryLedger(Ledger[HistoryEntry]):
    """Advanced-mode history, capped at 50 entries."""

    key = keys.HISTORY
    max_entries = MAX_HISTORY_ENTRIES

    def _decode(self, data: dict[str, Any]) -> HistoryEntry:
        return HistoryEntry.from_dict(data)

    async def append(self, input: str, task_mode: TaskMode, result: HistoryResult) -> HistoryEntry:
        """Record a transformation run and return the stored entry."""
        return await self._append(
            lambda entry_id, ts: HistoryEntry(
                id=entry_id,
                timestamp=ts,
                input=input,
                task_mode=TaskMode(task_mode),
                result=result,
            )
        )


class SimpleHistoryLedger(Ledger[SimpleHistoryEntry]):
    """Beginner-mode history, capped at 30 entries."""

    key = keys.SIMPLE_HISTORY
    max_entries = MAX_SIMPLE_HISTORY_ENTRIES
    id_prefix = "simple"

    def _decode(self, data: dict[str, Any]) -> SimpleHistoryEntry:
        return SimpleHistoryEntry.from_dict(data)

    async def append(
        self,
        input: str,
        output: str,
        elapsed_time: float | None = None,
    ) -> SimpleHistoryEntry:
        """Record a beginner-mode run and return the stored entry."""
        return await self._append(
            lambda entry_id, ts: SimpleHistoryEntry(
                id=entry_id,
                timestamp=ts,
                input=input,
                output=output,
                elapsed_time=elapsed_time,
            )
        )
