"""Tests for the local GitHub integration state."""

import pytest

from hyokai_storage import keys
from hyokai_storage.github_state import (
    MAX_REPOS,
    CachedRepoData,
    GitHubLocalState,
    GitHubSettings,
    decode_pat,
    encode_pat,
)


@pytest.fixture
def github(store):
    return GitHubLocalState(store)


class TestPat:
    """Tests for token obfuscation."""

    def test_encode_is_base64(self):
        assert encode_pat("ghp_abc") == "Z2hwX2FiYw=="
        assert decode_pat("Z2hwX2FiYw==") == "ghp_abc"

    def test_plain_value_is_returned_as_is(self):
        assert decode_pat("ghp_not*base64") == "ghp_not*base64"

    @pytest.mark.asyncio
    async def test_set_get_remove(self, github, store):
        await github.set_pat("ghp_secret")

        assert await store.read_text(keys.GITHUB_PAT) != "ghp_secret"
        assert await github.get_pat() == "ghp_secret"

        await github.set_pat(None)
        assert await github.get_pat() is None


class TestConnections:
    """Tests for repository connections."""

    @pytest.mark.asyncio
    async def test_add_and_remove(self, github):
        first = await github.add_connection("octo", "hello", is_private=True)
        second = await github.add_connection("octo", "world", default_branch="dev")

        connections = await github.get_connections()
        assert [c.repository.full_name for c in connections] == ["octo/hello", "octo/world"]
        assert connections[0].repository.is_private is True
        assert connections[1].repository.default_branch == "dev"
        assert first.repository.id.startswith("repo_")

        await github.remove_connection(first.repository.id)
        assert [c.repository.id for c in await github.get_connections()] == [second.repository.id]

    @pytest.mark.asyncio
    async def test_limit(self, github):
        for i in range(MAX_REPOS):
            assert await github.add_connection("octo", f"repo{i}") is not None

        assert await github.add_connection("octo", "one-too-many") is None
        assert len(await github.get_connections()) == MAX_REPOS

    @pytest.mark.asyncio
    async def test_cache_round_trip_and_rows(self, github):
        connection = await github.add_connection("octo", "hello")
        connection.cache = CachedRepoData(
            repo_id=connection.repository.id,
            branch="main",
            tree=[{"path": "README.md", "type": "blob"}],
            selected_paths=["README.md"],
            file_contents={"README.md": "# hi"},
            fetched_at=1,
        )
        await github.set_connections([connection])

        loaded = (await github.get_connections())[0]

        assert loaded.cache == connection.cache
        assert loaded.repo_row("u")["full_name"] == "octo/hello"
        assert loaded.cache_row("u") == {
            "repo_id": connection.repository.id,
            "user_id": "u",
            "tree": [{"path": "README.md", "type": "blob"}],
            "selected_paths": ["README.md"],
            "file_contents": {"README.md": "# hi"},
        }

    @pytest.mark.asyncio
    async def test_malformed_connections_are_skipped(self, github, store):
        good = (await github.add_connection("octo", "hello")).to_dict()
        await store.write(
            keys.GITHUB_REPOS,
            [
                good,
                {**good, "cache": "x"},
                {**good, "cache": ["main"]},
                {"repository": "octo/world"},
                "octo/other",
            ],
        )

        connections = await github.get_connections()

        assert [c.repository.full_name for c in connections] == ["octo/hello"]

    @pytest.mark.asyncio
    async def test_connection_without_cache_has_no_cache_row(self, github):
        connection = await github.add_connection("octo", "hello")

        assert connection.cache_row("u") is None


class TestSettings:
    """Tests for git context settings."""

    @pytest.mark.asyncio
    async def test_defaults(self, github):
        assert await github.get_settings() == GitHubSettings(
            enabled=True, auto_include_in_coding=True, max_context_tokens=4000
        )

    @pytest.mark.asyncio
    async def test_partial_settings_merge_over_defaults(self, github, store):
        await store.write(keys.GITHUB_SETTINGS, {"enabled": False})

        settings = await github.get_settings()

        assert settings.enabled is False
        assert settings.auto_include_in_coding is True

    @pytest.mark.asyncio
    async def test_round_trip_and_row(self, github):
        await github.set_settings(
            GitHubSettings(auto_include_in_coding=False, max_context_tokens=8000)
        )

        settings = await github.get_settings()

        assert settings.max_context_tokens == 8000
        assert settings.to_row("u") == {
            "user_id": "u",
            "enabled": True,
            "auto_include_in_coding": False,
        }
