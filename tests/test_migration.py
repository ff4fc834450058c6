"""
Tests for the local snapshot, preview and migrator.

Migrations run against the in-memory SQLite account store; step
failures are injected through the flaky wrapper.
"""

import logging

import pytest

from hyokai_storage import keys
from hyokai_storage.exceptions import MigrationError, RemoteStoreError
from hyokai_storage.github_state import CachedRepoData, GitHubLocalState, GitHubSettings
from hyokai_storage.history import (
    HistoryEntry,
    HistoryLedger,
    SimpleHistoryLedger,
    SingleModelResult,
    TaskMode,
)
from hyokai_storage.migration import (
    LocalDataMigrator,
    LocalSnapshot,
    MigrationStep,
    get_migration_preview,
    is_locally_migrated,
)
from hyokai_storage.preferences import PreferenceStore, Preferences, SavedContext
from hyokai_storage.remote.base import RemoteTable

USER = "user-1"
EXPECTED_PREVIEW = {
    "savedContexts": 3,
    "historyEntries": 12,
    "simpleHistoryEntries": 0,
    "hasGitHubPAT": True,
    "hasData": True,
}


async def seed(store, *, contexts=3, history=12, simple=0, repos=2, pat="ghp_secret"):
    """Fill the local store the way a long-time anonymous user would have."""
    prefs = PreferenceStore(store)
    await prefs.save(Preferences(mode=TaskMode.PROMPTING, beginner_mode=True))
    await store.write(
        keys.SAVED_CONTEXTS,
        [
            SavedContext(id=f"ctx-{i}", name=f"Context {i}", content="...").to_dict()
            for i in range(contexts)
        ],
    )
    await prefs.set_user_context("I write Python services.")
    await prefs.set_active_context_id("ctx-0")

    github = GitHubLocalState(store)
    await github.set_pat(pat)
    await github.set_settings(GitHubSettings(auto_include_in_coding=False))
    connections = []
    for i in range(repos):
        connection = await github.add_connection("octo", f"repo{i}")
        if connection is not None:
            connections.append(connection)
    if connections:
        connections[0].cache = CachedRepoData(
            repo_id=connections[0].repository.id, branch="main", selected_paths=["README.md"]
        )
        await github.set_connections(connections)

    ledger = HistoryLedger(store)
    for i in range(history):
        await ledger.append(
            f"input {i}",
            TaskMode.CODING,
            SingleModelResult(model_name="gpt-4o", model_provider="openai", output=f"out {i}"),
        )
    simple_ledger = SimpleHistoryLedger(store)
    for i in range(simple):
        await simple_ledger.append(f"simple {i}", f"out {i}")


def history_entries(count: int) -> list[HistoryEntry]:
    return [
        HistoryEntry(
            id=f"{i}-abcdefg",
            timestamp=i,
            input=f"input {i}",
            task_mode=TaskMode.CODING,
            result=SingleModelResult(model_name="m", model_provider="p", output="o"),
        )
        for i in range(count)
    ]


async def remote_counts(account_store) -> dict[str, int]:
    return {table.value: len(await account_store.select(table, USER)) for table in RemoteTable}


@pytest.fixture
def migrator(store, account_store, fast_retry):
    return LocalDataMigrator(store, account_store, fast_retry)


class TestPreview:
    """Tests for the migration preview."""

    @pytest.mark.asyncio
    async def test_preview_counts(self, store):
        await seed(store, contexts=3, history=12, simple=0)

        preview = await get_migration_preview(store)

        data = preview.to_dict()
        assert {k: data[k] for k in EXPECTED_PREVIEW} == EXPECTED_PREVIEW
        assert preview.github_repos == 2
        assert preview.has_preferences is True
        assert preview.has_current_context is True

    @pytest.mark.asyncio
    async def test_empty_store_has_no_data(self, store):
        preview = await get_migration_preview(store)

        assert preview.has_data is False
        assert preview.to_dict()["hasData"] is False

    @pytest.mark.asyncio
    async def test_single_category_counts_as_data(self, store):
        await SimpleHistoryLedger(store).append("in", "out")

        assert (await get_migration_preview(store)).has_data is True

    @pytest.mark.asyncio
    async def test_preview_skips_malformed_local_items(self, store):
        await seed(store, contexts=1, history=2, repos=1)
        history = await store.read(keys.HISTORY, [])
        repos = await store.read(keys.GITHUB_REPOS, [])
        await store.write(keys.HISTORY, [*history, {**history[0], "result": "oops"}])
        await store.write(keys.GITHUB_REPOS, [*repos, {**repos[0], "cache": "x"}])

        preview = await get_migration_preview(store)

        assert preview.history_entries == 2
        assert preview.github_repos == 1

    @pytest.mark.asyncio
    async def test_snapshot_without_settings_key(self, store):
        await GitHubLocalState(store).set_pat("ghp_x")

        snapshot = await LocalSnapshot.read(store)

        assert snapshot.github_settings is None
        assert snapshot.github_pat == "ghp_x"


class TestMigrator:
    """Tests for LocalDataMigrator."""

    @pytest.mark.asyncio
    async def test_migrates_every_category(self, store, account_store, migrator):
        await seed(store, contexts=3, history=12, simple=4)

        result = await migrator.migrate(USER)

        assert result.succeeded is True
        assert result.completed_steps == list(MigrationStep)
        assert await remote_counts(account_store) == {
            "user_preferences": 1,
            "saved_contexts": 3,
            "user_active_context": 1,
            "github_settings": 1,
            "github_repos": 2,
            "github_repo_cache": 1,
            "history_entries": 12,
            "simple_history_entries": 4,
        }
        assert await account_store.get_credential(USER) == "ghp_secret"
        assert (await account_store.get_profile(USER)).is_migrated is True

    @pytest.mark.asyncio
    async def test_rows_carry_local_ids_and_values(self, store, account_store, migrator):
        await seed(store, history=1)
        local_history = await HistoryLedger(store).load()

        await migrator.migrate(USER)

        history_rows = await account_store.select(RemoteTable.HISTORY_ENTRIES, USER)
        assert history_rows[0]["id"] == local_history[0].id
        prefs = (await account_store.select(RemoteTable.USER_PREFERENCES, USER))[0]
        assert prefs["mode"] == "prompting"
        assert prefs["beginner_mode"] is True
        active = (await account_store.select(RemoteTable.USER_ACTIVE_CONTEXT, USER))[0]
        assert active == {
            "user_id": USER,
            "context_id": "ctx-0",
            "current_content": "I write Python services.",
        }
        settings = (await account_store.select(RemoteTable.GITHUB_SETTINGS, USER))[0]
        assert settings["auto_include_in_coding"] is False

    @pytest.mark.asyncio
    async def test_running_twice_creates_no_duplicates(self, store, account_store, migrator):
        await seed(store, contexts=3, history=12, simple=4)

        await migrator.migrate(USER)
        first = await remote_counts(account_store)
        await migrator.migrate(USER)

        assert await remote_counts(account_store) == first

    @pytest.mark.asyncio
    async def test_caps_are_applied(self, store, account_store, migrator):
        await seed(store, contexts=12, history=0, repos=0)
        await store.write(
            keys.GITHUB_REPOS,
            [
                {"repository": {"id": f"repo_{i}", "owner": "octo", "name": f"r{i}"}}
                for i in range(7)
            ],
        )
        snapshot = await LocalSnapshot.read(store)
        snapshot.history = history_entries(55)

        result = await migrator.migrate(USER, snapshot=snapshot)

        assert result.rows["saved_contexts"] == 10
        counts = await remote_counts(account_store)
        assert counts["saved_contexts"] == 10
        assert counts["github_repos"] == 5
        assert counts["history_entries"] == 50

    @pytest.mark.asyncio
    async def test_progress_is_reported_per_step(self, store, migrator):
        await seed(store, history=1)
        progress: list[float] = []

        await migrator.migrate(USER, on_progress=progress.append)

        assert progress == [12.5, 25.0, 37.5, 50.0, 62.5, 75.0, 87.5, 100.0]

    @pytest.mark.asyncio
    async def test_empty_categories_are_not_pushed(self, store, account_store, migrator):
        await SimpleHistoryLedger(store).append("in", "out")

        result = await migrator.migrate(USER)

        assert result.succeeded is True
        assert account_store.count("upsert", "history_entries") == 0
        assert account_store.count("upsert", "user_preferences") == 0
        assert account_store.count("save_credential") == 0
        assert result.rows == {"active_context": 1, "simple_history": 1}

    @pytest.mark.asyncio
    async def test_transient_step_failure_is_retried(self, store, account_store, migrator):
        await seed(store, history=3)
        account_store.fail("upsert:history_entries", RemoteStoreError("HTTP 503 from POST"))

        result = await migrator.migrate(USER)

        assert result.succeeded is True
        assert account_store.count("upsert", "history_entries") == 2

    @pytest.mark.asyncio
    async def test_exhausted_step_raises_and_leaves_flag_unset(
        self, store, account_store, migrator, caplog
    ):
        await seed(store, history=3)
        account_store.fail(
            "upsert:history_entries", *[RemoteStoreError("network down") for _ in range(3)]
        )
        progress: list[float] = []

        with caplog.at_level(logging.ERROR):
            with pytest.raises(MigrationError) as exc_info:
                await migrator.migrate(USER, on_progress=progress.append)

        assert exc_info.value.step == "history"
        assert "Failed to migrate history" in str(exc_info.value)
        assert len(progress) == 5
        assert (await account_store.get_profile(USER)) is None
        assert await is_locally_migrated(store) is False
        assert "Migration step history failed" in caplog.text

    @pytest.mark.asyncio
    async def test_credential_failure_is_a_step_failure(self, store, account_store, migrator):
        await seed(store, history=0)
        account_store.fail("save_credential", *[RemoteStoreError("timeout") for _ in range(3)])

        with pytest.raises(MigrationError) as exc_info:
            await migrator.migrate(USER)

        assert exc_info.value.step == "github_credential"
        assert await account_store.select(RemoteTable.GITHUB_REPOS, USER) == []

    @pytest.mark.asyncio
    async def test_local_data_is_kept_and_marker_written(self, store, migrator):
        await seed(store, history=2)

        await migrator.migrate(USER)

        assert len(await HistoryLedger(store).load()) == 2
        assert await GitHubLocalState(store).get_pat() == "ghp_secret"
        assert await is_locally_migrated(store) is True

    @pytest.mark.asyncio
    async def test_result_to_dict(self, store, migrator):
        await seed(store, history=1)

        result = (await migrator.migrate(USER)).to_dict()

        assert result["succeeded"] is True
        assert result["failed_step"] is None
        assert result["completed_steps"][-1] == "mark_complete"
        assert result["duration_seconds"] >= 0

