"""
Local-to-account data migrator.

Pushes a LocalSnapshot into the account store in a fixed order of
steps. Every push is an upsert wrapped in ``with_retry``, so re-running
a partially failed migration never duplicates rows. Local data is
never deleted; it stays as a fallback cache.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from .. import keys
from ..exceptions import MigrationError
from ..github_state import MAX_REPOS
from ..history.ledger import MAX_HISTORY_ENTRIES, MAX_SIMPLE_HISTORY_ENTRIES
from ..local.safe_store import SafeStore
from ..logging_utils import StorageLoggerAdapter, get_storage_logger
from ..preferences import MAX_SAVED_CONTEXTS
from ..remote.base import AccountStore, RemoteTable
from ..retry import RetryOptions, with_retry
from .snapshot import LocalSnapshot
from .types import TOTAL_STEPS, MigrationResult, MigrationStep

logger = get_storage_logger("migration")

ProgressCallback = Callable[[float], Any]


class LocalDataMigrator:
    """Migrates local data into the signed-in user's account.

    Steps run in MigrationStep order:
    1. PREFERENCES
    2. SAVED_CONTEXTS (first 10)
    3. ACTIVE_CONTEXT
    4. GITHUB_CREDENTIAL (encrypted by the account store)
    5. GITHUB_REPOS (settings, first 5 repos, their caches)
    6. HISTORY (first 50)
    7. SIMPLE_HISTORY (first 30)
    8. MARK_COMPLETE

    Progress is reported after each step as ``completed / 8 * 100``.
    """

    def __init__(
        self,
        store: SafeStore,
        account_store: AccountStore,
        retry_options: RetryOptions | None = None,
    ) -> None:
        """Initialize the migrator.

        Args:
            store: Local store to read from
            account_store: Target account store
            retry_options: Retry policy for every remote write
        """
        self.store = store
        self.account_store = account_store
        self.retry_options = retry_options or RetryOptions()

    async def migrate(
        self,
        user_id: str,
        on_progress: ProgressCallback | None = None,
        snapshot: LocalSnapshot | None = None,
    ) -> MigrationResult:
        """Run every step for ``user_id``.

        Args:
            user_id: Account to migrate into
            on_progress: Called with a percentage after each step
            snapshot: Pre-read local data (read now if None)

        Returns:
            Result with completed steps and pushed row counts

        Raises:
            MigrationError: If a step fails after exhausting its retries
        """
        log = StorageLoggerAdapter(logger, {"user_id": user_id})
        snapshot = snapshot or await LocalSnapshot.read(self.store)
        result = MigrationResult(user_id=user_id, started_at=datetime.now(UTC))

        steps: list[tuple[MigrationStep, Callable[[], Awaitable[int]]]] = [
            (MigrationStep.PREFERENCES, lambda: self._preferences(user_id, snapshot)),
            (MigrationStep.SAVED_CONTEXTS, lambda: self._saved_contexts(user_id, snapshot)),
            (MigrationStep.ACTIVE_CONTEXT, lambda: self._active_context(user_id, snapshot)),
            (MigrationStep.GITHUB_CREDENTIAL, lambda: self._github_credential(user_id, snapshot)),
            (MigrationStep.GITHUB_REPOS, lambda: self._github_repos(user_id, snapshot)),
            (MigrationStep.HISTORY, lambda: self._history(user_id, snapshot)),
            (MigrationStep.SIMPLE_HISTORY, lambda: self._simple_history(user_id, snapshot)),
            (MigrationStep.MARK_COMPLETE, lambda: self._mark_complete(user_id)),
        ]

        log.info("Starting migration")
        for step, run in steps:
            try:
                rows = await run()
            except Exception as e:
                result.failed_step = step
                result.error_message = str(e)
                result.completed_at = datetime.now(UTC)
                log.error(f"Migration step {step.value} failed: {e}", extra={"step": step.value})
                raise MigrationError(step.value, e) from e

            result.completed_steps.append(step)
            if rows:
                result.rows[step.value] = rows
            log.debug(f"Migration step {step.value} done ({rows} rows)", extra={"step": step.value})
            if on_progress:
                on_progress(len(result.completed_steps) / TOTAL_STEPS * 100)

        result.completed_at = datetime.now(UTC)
        log.info(f"Migration complete in {result.duration_seconds:.2f}s")
        return result

    async def _upsert(self, table: RemoteTable, rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0
        await with_retry(lambda: self.account_store.upsert(table, rows), self.retry_options)
        return len(rows)

    async def _preferences(self, user_id: str, snapshot: LocalSnapshot) -> int:
        if not snapshot.has_preferences:
            return 0
        return await self._upsert(
            RemoteTable.USER_PREFERENCES, [snapshot.preferences.to_row(user_id)]
        )

    async def _saved_contexts(self, user_id: str, snapshot: LocalSnapshot) -> int:
        rows = [c.to_row(user_id) for c in snapshot.saved_contexts[:MAX_SAVED_CONTEXTS]]
        return await self._upsert(RemoteTable.SAVED_CONTEXTS, rows)

    async def _active_context(self, user_id: str, snapshot: LocalSnapshot) -> int:
        row = {
            "user_id": user_id,
            "context_id": snapshot.active_context_id,
            "current_content": snapshot.user_context,
        }
        return await self._upsert(RemoteTable.USER_ACTIVE_CONTEXT, [row])

    async def _github_credential(self, user_id: str, snapshot: LocalSnapshot) -> int:
        pat = snapshot.github_pat
        if not pat:
            return 0
        await with_retry(
            lambda: self.account_store.save_credential(user_id, pat),
            self.retry_options,
        )
        return 1

    async def _github_repos(self, user_id: str, snapshot: LocalSnapshot) -> int:
        count = 0
        if snapshot.github_settings is not None:
            count += await self._upsert(
                RemoteTable.GITHUB_SETTINGS, [snapshot.github_settings.to_row(user_id)]
            )
        connections = snapshot.github_repos[:MAX_REPOS]
        count += await self._upsert(
            RemoteTable.GITHUB_REPOS, [c.repo_row(user_id) for c in connections]
        )
        cache_rows = [row for c in connections if (row := c.cache_row(user_id)) is not None]
        count += await self._upsert(RemoteTable.GITHUB_REPO_CACHE, cache_rows)
        return count

    async def _history(self, user_id: str, snapshot: LocalSnapshot) -> int:
        rows = [e.to_row(user_id) for e in snapshot.history[:MAX_HISTORY_ENTRIES]]
        return await self._upsert(RemoteTable.HISTORY_ENTRIES, rows)

    async def _simple_history(self, user_id: str, snapshot: LocalSnapshot) -> int:
        rows = [e.to_row(user_id) for e in snapshot.simple_history[:MAX_SIMPLE_HISTORY_ENTRIES]]
        return await self._upsert(RemoteTable.SIMPLE_HISTORY_ENTRIES, rows)

    async def _mark_complete(self, user_id: str) -> int:
        now = datetime.now(UTC)
        await with_retry(
            lambda: self.account_store.mark_migrated(user_id, now),
            self.retry_options,
        )
        await self.store.write_text(keys.MIGRATION_COMPLETE, now.isoformat())
        return 0


async def is_locally_migrated(store: SafeStore) -> bool:
    """True if this device has completed a migration before."""
    return bool(await store.read_text(keys.MIGRATION_COMPLETE))
