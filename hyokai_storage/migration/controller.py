"""
Migration state machine.

    IDLE -> PREVIEW -> MIGRATING -> SUCCESS -> IDLE
                           |
                           v
                         ERROR -> MIGRATING (retry)

The controller drives the first-login import prompt. It is triggered
by the session's first-login channel or by an explicit ``check()`` at
startup, and shows at most once per signed-in session.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from ..exceptions import AuthError, MigrationError, MigrationStateError
from ..local.safe_store import SafeStore
from ..retry import with_retry
from ..session import AuthSession, FirstLoginEvent
from .migrator import LocalDataMigrator
from .snapshot import LocalSnapshot
from .types import MigrationPreview, MigrationResult, MigrationStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[MigrationStatus], Any]


class MigrationController:
    """Owns the migration prompt's state and runs the migrator."""

    def __init__(
        self,
        session: AuthSession,
        store: SafeStore,
        migrator: LocalDataMigrator,
        *,
        success_display_delay: float = 2.0,
        on_complete: Callable[[], Awaitable[None] | None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the controller.

        Args:
            session: Session whose account is migrated
            store: Local store to snapshot
            migrator: Migrator that pushes the snapshot
            success_display_delay: Seconds SUCCESS is held before completing
            on_complete: Called after a successful migration, typically to
                reload everything from the account store
            sleep: Awaitable used for the success delay
        """
        self.session = session
        self.store = store
        self.migrator = migrator
        self.success_display_delay = success_display_delay
        self.on_complete = on_complete
        self._sleep = sleep

        self.status = MigrationStatus.IDLE
        self.progress = 0.0
        self.preview: MigrationPreview | None = None
        self.error: str | None = None
        self.result: MigrationResult | None = None
        self._snapshot: LocalSnapshot | None = None
        self._listeners: list[StatusListener] = []

    def attach(self) -> Callable[[], None]:
        """Listen for first-login events. Returns the unsubscribe callable."""
        return self.session.events.subscribe(self._on_first_login)

    async def _on_first_login(self, event: FirstLoginEvent) -> None:
        await self.check()

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Observe every status change. Returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_status(self, status: MigrationStatus) -> None:
        self.status = status
        for listener in list(self._listeners):
            listener(status)

    async def check(self) -> bool:
        """Decide whether to show the import prompt.

        Returns:
            True if the controller moved to PREVIEW
        """
        state = self.session.state
        if not state.is_authenticated or state.migration_handled:
            return False
        if not self.session.needs_migration or self.status != MigrationStatus.IDLE:
            return False
        state.migration_handled = True

        snapshot = await LocalSnapshot.read(self.store)
        preview = snapshot.preview()
        if not preview.has_data:
            await self._mark_empty_account()
            return False

        self._snapshot = snapshot
        self.preview = preview
        self.error = None
        self.progress = 0.0
        self._set_status(MigrationStatus.PREVIEW)
        return True

    async def _mark_empty_account(self) -> None:
        # Nothing to import: flag the account so it is never asked again
        user_id = self.session.user_id
        if user_id is None:
            return
        try:
            await with_retry(
                lambda: self.migrator.account_store.mark_migrated(user_id, datetime.now(UTC)),
                self.migrator.retry_options,
            )
        except Exception as e:
            logger.error(f"Failed to flag empty account {user_id} as migrated: {e}")
            return
        await self.session.refresh_profile()
        logger.info(f"No local data for {user_id}; marked as migrated")

    async def confirm(self) -> MigrationResult | None:
        """Start the import from PREVIEW."""
        if self.status != MigrationStatus.PREVIEW:
            raise MigrationStateError("confirm", self.status.value)
        return await self._run()

    async def retry(self) -> MigrationResult | None:
        """Re-run the import from ERROR. Completed steps are upserted again."""
        if self.status != MigrationStatus.ERROR:
            raise MigrationStateError("retry", self.status.value)
        return await self._run()

    async def _run(self) -> MigrationResult | None:
        user_id = self.session.user_id
        if user_id is None:
            raise AuthError("Cannot migrate without a signed-in user")

        self.error = None
        self.progress = 0.0
        self._set_status(MigrationStatus.MIGRATING)
        try:
            result = await self.migrator.migrate(
                user_id, on_progress=self._on_progress, snapshot=self._snapshot
            )
        except MigrationError as e:
            self.error = str(e)
            self._set_status(MigrationStatus.ERROR)
            return None

        self.result = result
        self.progress = 100.0
        self._set_status(MigrationStatus.SUCCESS)
        await self.session.refresh_profile()

        await self._sleep(self.success_display_delay)
        self._reset()
        if self.on_complete is not None:
            outcome = self.on_complete()
            if inspect.isawaitable(outcome):
                await outcome
        return result

    def _on_progress(self, percentage: float) -> None:
        self.progress = percentage

    async def skip(self) -> None:
        """Dismiss the prompt without importing. The flag stays unset."""
        if self.status != MigrationStatus.PREVIEW:
            raise MigrationStateError("skip", self.status.value)
        logger.info(f"Migration skipped for {self.session.user_id}")
        self._reset()

    async def close(self) -> None:
        """Close the prompt from any state except MIGRATING."""
        if self.status == MigrationStatus.MIGRATING:
            raise MigrationStateError("close", self.status.value)
        if self.status != MigrationStatus.IDLE:
            self._reset()

    def _reset(self) -> None:
        self.preview = None
        self._snapshot = None
        self._set_status(MigrationStatus.IDLE)
