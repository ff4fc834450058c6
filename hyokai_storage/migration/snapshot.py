"""
Point-in-time view of all migratable local data.

Every category is read exactly once, so the preview shown to the user
and the data the migrator pushes come from the same read.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .. import keys
from ..github_state import GitHubLocalState, GitHubSettings, RepoConnection
from ..history.ledger import HistoryLedger, SimpleHistoryLedger
from ..history.types import HistoryEntry, SimpleHistoryEntry
from ..local.safe_store import SafeStore
from ..preferences import PreferenceStore, Preferences, SavedContext
from .types import MigrationPreview


@dataclass
class LocalSnapshot:
    """Everything in the local store that migration can push."""

    preferences: Preferences = field(default_factory=Preferences)
    has_preferences: bool = False
    saved_contexts: list[SavedContext] = field(default_factory=list)
    user_context: str = ""
    active_context_id: str | None = None
    github_pat: str | None = None
    github_settings: GitHubSettings | None = None
    github_repos: list[RepoConnection] = field(default_factory=list)
    history: list[HistoryEntry] = field(default_factory=list)
    simple_history: list[SimpleHistoryEntry] = field(default_factory=list)

    @classmethod
    async def read(cls, store: SafeStore) -> LocalSnapshot:
        """Read every category from ``store``. Never raises."""
        prefs = PreferenceStore(store)
        github = GitHubLocalState(store)
        has_settings = await store.read_text(keys.GITHUB_SETTINGS) is not None

        return cls(
            preferences=await prefs.load(),
            has_preferences=await prefs.has_any(),
            saved_contexts=await prefs.get_saved_contexts(),
            user_context=await prefs.get_user_context(),
            active_context_id=await prefs.get_active_context_id(),
            github_pat=await github.get_pat(),
            github_settings=await github.get_settings() if has_settings else None,
            github_repos=await github.get_connections(),
            history=await HistoryLedger(store).load(),
            simple_history=await SimpleHistoryLedger(store).load(),
        )

    def preview(self) -> MigrationPreview:
        return MigrationPreview(
            saved_contexts=len(self.saved_contexts),
            has_current_context=bool(self.user_context),
            has_github_pat=bool(self.github_pat),
            github_repos=len(self.github_repos),
            has_preferences=self.has_preferences,
            history_entries=len(self.history),
            simple_history_entries=len(self.simple_history),
        )


async def get_migration_preview(store: SafeStore) -> MigrationPreview:
    """Shortcut for ``(await LocalSnapshot.read(store)).preview()``."""
    snapshot = await LocalSnapshot.read(store)
    return snapshot.preview()
