"""
Local GitHub integration state: token, repository connections and
context settings.

The token is stored base64-encoded. That is obfuscation only; the
account store is responsible for real encryption once it is migrated.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any

from . import keys
from .ids import generate_repo_id, now_ms
from .local.safe_store import SafeStore

logger = logging.getLogger(__name__)

MAX_REPOS = 5
DEFAULT_CONTEXT_TOKENS = 4000


def encode_pat(pat: str) -> str:
    """Obfuscate a token for local storage."""
    return base64.b64encode(pat.encode("utf-8")).decode("ascii")


def decode_pat(encoded: str) -> str:
    """Reverse ``encode_pat``. Values that are not base64 are returned as-is."""
    try:
        return base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return encoded


def _require_object(data: Any, kind: str) -> None:
    if not isinstance(data, dict):
        raise TypeError(f"Expected a {kind} object, got {type(data).__name__}")


@dataclass
class GitHubSettings:
    """Git context settings."""

    enabled: bool = True
    auto_include_in_coding: bool = True
    max_context_tokens: int = DEFAULT_CONTEXT_TOKENS

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "autoIncludeInCoding": self.auto_include_in_coding,
            "maxContextTokens": self.max_context_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GitHubSettings:
        """Merge stored values over the defaults."""
        defaults = cls()
        return cls(
            enabled=bool(data.get("enabled", defaults.enabled)),
            auto_include_in_coding=bool(
                data.get("autoIncludeInCoding", defaults.auto_include_in_coding)
            ),
            max_context_tokens=int(data.get("maxContextTokens", defaults.max_context_tokens)),
        )

    def to_row(self, user_id: str) -> dict[str, Any]:
        """Remote ``github_settings`` row."""
        return {
            "user_id": user_id,
            "enabled": self.enabled,
            "auto_include_in_coding": self.auto_include_in_coding,
        }


@dataclass
class GitHubRepository:
    id: str
    owner: str
    name: str
    full_name: str
    default_branch: str = "main"
    is_private: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner": self.owner,
            "name": self.name,
            "fullName": self.full_name,
            "defaultBranch": self.default_branch,
            "isPrivate": self.is_private,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GitHubRepository:
        _require_object(data, "GitHubRepository")
        return cls(
            id=str(data["id"]),
            owner=data["owner"],
            name=data["name"],
            full_name=data.get("fullName") or f"{data['owner']}/{data['name']}",
            default_branch=data.get("defaultBranch", "main"),
            is_private=bool(data.get("isPrivate", False)),
        )


@dataclass
class CachedRepoData:
    """Fetched tree, selection and file contents for one repository."""

    repo_id: str
    branch: str
    tree: list[dict[str, Any]] = field(default_factory=list)
    selected_paths: list[str] = field(default_factory=list)
    file_contents: dict[str, str] = field(default_factory=dict)
    fetched_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "repoId": self.repo_id,
            "branch": self.branch,
            "tree": self.tree,
            "selectedPaths": self.selected_paths,
            "fileContents": self.file_contents,
            "fetchedAt": self.fetched_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CachedRepoData:
        _require_object(data, "CachedRepoData")
        return cls(
            repo_id=str(data.get("repoId", "")),
            branch=data.get("branch", "main"),
            tree=list(data.get("tree") or []),
            selected_paths=list(data.get("selectedPaths") or []),
            file_contents=dict(data.get("fileContents") or {}),
            fetched_at=int(data.get("fetchedAt") or 0),
        )


@dataclass
class RepoConnection:
    """A connected repository and its optional cache."""

    repository: GitHubRepository
    cache: CachedRepoData | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": self.repository.to_dict(),
            "cache": self.cache.to_dict() if self.cache else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepoConnection:
        _require_object(data, "RepoConnection")
        cache = data.get("cache")
        return cls(
            repository=GitHubRepository.from_dict(data["repository"]),
            cache=CachedRepoData.from_dict(cache) if cache else None,
        )

    def repo_row(self, user_id: str) -> dict[str, Any]:
        """Remote ``github_repos`` row."""
        repo = self.repository
        return {
            "id": repo.id,
            "user_id": user_id,
            "owner": repo.owner,
            "name": repo.name,
            "full_name": repo.full_name,
            "default_branch": repo.default_branch,
        }

    def cache_row(self, user_id: str) -> dict[str, Any] | None:
        """Remote ``github_repo_cache`` row, or None without a cache."""
        if self.cache is None:
            return None
        return {
            "repo_id": self.repository.id,
            "user_id": user_id,
            "tree": self.cache.tree,
            "selected_paths": self.cache.selected_paths,
            "file_contents": self.cache.file_contents,
        }


class GitHubLocalState:
    """Reads and writes the GitHub keys of the local store."""

    def __init__(self, store: SafeStore) -> None:
        self.store = store

    async def get_pat(self) -> str | None:
        stored = await self.store.read_text(keys.GITHUB_PAT)
        return decode_pat(stored) if stored else None

    async def set_pat(self, pat: str | None) -> None:
        """Store the token, or remove it when ``pat`` is falsy."""
        if pat:
            await self.store.write_text(keys.GITHUB_PAT, encode_pat(pat))
        else:
            await self.store.remove(keys.GITHUB_PAT)

    async def get_connections(self) -> list[RepoConnection]:
        raw = await self.store.read(keys.GITHUB_REPOS, [])
        if not isinstance(raw, list):
            return []
        connections = []
        for item in raw:
            try:
                connections.append(RepoConnection.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed repo connection: {e}")
        return connections

    async def set_connections(self, connections: list[RepoConnection]) -> list[RepoConnection]:
        kept = connections[:MAX_REPOS]
        await self.store.write(keys.GITHUB_REPOS, [c.to_dict() for c in kept])
        return kept

    async def add_connection(
        self,
        owner: str,
        name: str,
        default_branch: str = "main",
        is_private: bool = False,
    ) -> RepoConnection | None:
        """Connect a repository. Returns None when already at ``MAX_REPOS``."""
        connections = await self.get_connections()
        if len(connections) >= MAX_REPOS:
            logger.warning(f"Cannot connect {owner}/{name}: limit of {MAX_REPOS} reached")
            return None
        connection = RepoConnection(
            repository=GitHubRepository(
                id=generate_repo_id(),
                owner=owner,
                name=name,
                full_name=f"{owner}/{name}",
                default_branch=default_branch,
                is_private=is_private,
            )
        )
        await self.set_connections([*connections, connection])
        return connection

    async def remove_connection(self, repo_id: str) -> None:
        connections = await self.get_connections()
        await self.set_connections([c for c in connections if c.repository.id != repo_id])

    async def get_settings(self) -> GitHubSettings:
        raw = await self.store.read(keys.GITHUB_SETTINGS, None)
        if not isinstance(raw, dict):
            return GitHubSettings()
        try:
            return GitHubSettings.from_dict(raw)
        except (TypeError, ValueError):
            return GitHubSettings()

    async def set_settings(self, settings: GitHubSettings) -> None:
        await self.store.write(keys.GITHUB_SETTINGS, settings.to_dict())
