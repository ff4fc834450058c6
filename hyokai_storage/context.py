"""
Wiring for a complete Hyokai storage instance.

HyokaiContext builds every component from a HyokaiConfig and owns the
sign-in/sign-out sequence so hosts do not have to order the one-time
work (profile load, preference load, migration check) themselves.

Usage:
    context = await HyokaiContext.create(HyokaiConfig.load())
    await context.sign_in("user-123", email="a@example.com")
    await context.history.append("fix this", TaskMode.CODING, result)
    await context.close()
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from .config import HyokaiConfig
from .github_state import GitHubLocalState
from .history.ledger import HistoryLedger, SimpleHistoryLedger
from .history.mirror import HistoryMirror
from .local.backend import KeyValueBackend
from .local.safe_store import SafeStore
from .migration.controller import MigrationController
from .migration.migrator import LocalDataMigrator
from .migration.types import MigrationStatus
from .preferences import PreferenceStore, PreferenceSync
from .remote.base import AccountStore, UserProfile
from .session import AuthSession

logger = logging.getLogger(__name__)


class HyokaiContext:
    """All storage components for one client, wired together."""

    def __init__(
        self,
        config: HyokaiConfig,
        backend: KeyValueBackend,
        account_store: AccountStore,
        on_migration_complete: Callable[[], Awaitable[None] | None] | None = None,
    ) -> None:
        self.config = config
        self.backend = backend
        self.account_store = account_store
        retry_options = config.retry_options()

        self.store = SafeStore(backend)
        self.history = HistoryLedger(self.store)
        self.simple_history = SimpleHistoryLedger(self.store)
        self.preferences = PreferenceStore(self.store)
        self.github = GitHubLocalState(self.store)

        self.session = AuthSession(account_store)
        self.mirror = HistoryMirror(account_store, self.session, retry_options)
        self.preference_sync = PreferenceSync(
            self.preferences, account_store, self.session, retry_options
        )
        self.migrator = LocalDataMigrator(self.store, account_store, retry_options)
        self.migration = MigrationController(
            self.session,
            self.store,
            self.migrator,
            success_display_delay=config.success_display_delay,
            on_complete=on_migration_complete,
        )

        self._detach = [
            self.mirror.attach(self.history, self.simple_history),
            self.migration.attach(),
        ]

    @classmethod
    async def create(
        cls,
        config: HyokaiConfig | None = None,
        *,
        access_token: str | None = None,
        on_migration_complete: Callable[[], Awaitable[None] | None] | None = None,
    ) -> HyokaiContext:
        """Build a context from ``config`` (``HyokaiConfig.load()`` if None)."""
        config = config or HyokaiConfig.load()
        config.configure_logging()
        backend = config.create_backend()
        account_store = await config.create_account_store(access_token)
        return cls(config, backend, account_store, on_migration_complete)

    async def sign_in(
        self,
        user_id: str,
        *,
        email: str | None = None,
        new_sign_in: bool = True,
    ) -> UserProfile | None:
        """Sign in, load remote preferences once, and run the migration check.

        A new sign-in of an unmigrated account reaches the migration
        controller through the first-login event; restored sessions are
        checked explicitly. Either way the check runs at most once.
        """
        profile = await self.session.sign_in(user_id, email=email, new_sign_in=new_sign_in)
        await self.preference_sync.load_remote()
        await self.migration.check()
        return profile

    async def sign_out(self) -> None:
        """Sign out. Pending mirror writes finish first; local data stays.

        An open migration prompt is dismissed so it cannot carry one
        account's snapshot into the next sign-in.
        """
        await self.mirror.drain()
        if self.migration.status is not MigrationStatus.MIGRATING:
            await self.migration.close()
        await self.session.sign_out()

    async def close(self) -> None:
        for detach in self._detach:
            detach()
        await self.mirror.drain()
        await self.account_store.close()
        await self.backend.close()
        logger.debug("Hyokai context closed")

    async def __aenter__(self) -> HyokaiContext:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
