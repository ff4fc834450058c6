"""
Remote mirroring of history ledgers.

Listens to ledger appends and deletes and repeats them against the
account store while a session is authenticated. Local writes never
wait on the remote: each mirror write runs as a background task under
``with_retry``, and failures are logged, not raised.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..remote.base import AccountStore, RemoteTable
from ..retry import RetryOptions, with_retry
from ..session import AuthSession
from .ledger import HistoryLedger, Ledger, SimpleHistoryLedger
from .types import HistoryEntry, SimpleHistoryEntry

logger = logging.getLogger(__name__)


class HistoryMirror:
    """Mirrors ledger changes to ``history_entries`` / ``simple_history_entries``."""

    def __init__(
        self,
        account_store: AccountStore,
        session: AuthSession,
        retry_options: RetryOptions | None = None,
    ) -> None:
        self.account_store = account_store
        self.session = session
        self.retry_options = retry_options or RetryOptions()
        self._pending: set[asyncio.Task[None]] = set()
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(
        self,
        history: HistoryLedger | None = None,
        simple_history: SimpleHistoryLedger | None = None,
    ) -> Callable[[], None]:
        """Start mirroring the given ledgers. Returns a detach callable."""
        if history is not None:
            self._watch(history, RemoteTable.HISTORY_ENTRIES)
        if simple_history is not None:
            self._watch(simple_history, RemoteTable.SIMPLE_HISTORY_ENTRIES)
        return self.detach

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _watch(self, ledger: Ledger, table: RemoteTable) -> None:
        def listener(action: str, payload: HistoryEntry | SimpleHistoryEntry | str) -> None:
            user_id = self.session.user_id
            if user_id is None:
                return
            if action == "append" and not isinstance(payload, str):
                self._schedule(self._push(table, user_id, payload))
            elif action == "delete" and isinstance(payload, str):
                self._schedule(self._remove(table, user_id, payload))

        self._unsubscribers.append(ledger.subscribe(listener))

    def _schedule(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _push(
        self,
        table: RemoteTable,
        user_id: str,
        entry: HistoryEntry | SimpleHistoryEntry,
    ) -> None:
        try:
            await with_retry(
                lambda: self.account_store.upsert(table, [entry.to_row(user_id)]),
                self.retry_options,
            )
        except Exception as e:
            logger.error(f"Failed to mirror {table.value} entry {entry.id}: {e}")

    async def _remove(self, table: RemoteTable, user_id: str, entry_id: str) -> None:
        try:
            await with_retry(
                lambda: self.account_store.delete(table, user_id, entry_id),
                self.retry_options,
            )
        except Exception as e:
            logger.error(f"Failed to delete mirrored {table.value} entry {entry_id}: {e}")

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled mirror write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
