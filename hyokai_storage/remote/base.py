"""
Abstract remote account store.

Defines the contract every account-scoped remote store must implement:
upsert-or-update rows per user, read them back, and own the per-account
migration flag. All writes are upserts so that any of them may be
repeated safely by the retry executor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class RemoteTable(str, Enum):
    """Remote collections written by this layer."""

    USER_PREFERENCES = "user_preferences"
    SAVED_CONTEXTS = "saved_contexts"
    USER_ACTIVE_CONTEXT = "user_active_context"
    GITHUB_SETTINGS = "github_settings"
    GITHUB_REPOS = "github_repos"
    GITHUB_REPO_CACHE = "github_repo_cache"
    HISTORY_ENTRIES = "history_entries"
    SIMPLE_HISTORY_ENTRIES = "simple_history_entries"


# Column identifying a row within one user's rows of each table
ENTITY_KEYS: dict[RemoteTable, str] = {
    RemoteTable.USER_PREFERENCES: "user_id",
    RemoteTable.SAVED_CONTEXTS: "id",
    RemoteTable.USER_ACTIVE_CONTEXT: "user_id",
    RemoteTable.GITHUB_SETTINGS: "user_id",
    RemoteTable.GITHUB_REPOS: "id",
    RemoteTable.GITHUB_REPO_CACHE: "repo_id",
    RemoteTable.HISTORY_ENTRIES: "id",
    RemoteTable.SIMPLE_HISTORY_ENTRIES: "id",
}


def entity_id(table: RemoteTable, row: dict[str, Any]) -> str:
    """Return the entity id of ``row`` in ``table``.

    Raises:
        ValueError: If the row lacks user_id or its entity key
    """
    column = ENTITY_KEYS[table]
    if not row.get("user_id"):
        raise ValueError(f"Row for {table.value} is missing user_id")
    if row.get(column) in (None, ""):
        raise ValueError(f"Row for {table.value} is missing {column}")
    return str(row[column])


@dataclass
class UserProfile:
    """Remote account record. ``migrated_at`` is the migration flag."""

    id: str
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    migrated_at: datetime | None = None

    @property
    def is_migrated(self) -> bool:
        return self.migrated_at is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "migrated_at": self.migrated_at.isoformat() if self.migrated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserProfile:
        migrated_at = data.get("migrated_at")
        if isinstance(migrated_at, str):
            migrated_at = datetime.fromisoformat(migrated_at.replace("Z", "+00:00"))
        return cls(
            id=data["id"],
            email=data.get("email"),
            display_name=data.get("display_name"),
            avatar_url=data.get("avatar_url"),
            migrated_at=migrated_at,
        )


class AccountStore(ABC):
    """Abstract interface for the remote, account-scoped store."""

    @abstractmethod
    async def upsert(self, table: RemoteTable, rows: list[dict[str, Any]]) -> None:
        """Insert or update rows keyed by (user_id, entity id).

        Raises:
            RemoteStoreError: If the write fails
            AuthError: If the caller is not authorized
        """
        ...

    @abstractmethod
    async def select(self, table: RemoteTable, user_id: str) -> list[dict[str, Any]]:
        """Return all rows of ``table`` owned by ``user_id``."""
        ...

    @abstractmethod
    async def delete(self, table: RemoteTable, user_id: str, entity: str) -> None:
        """Delete one row. Missing rows are ignored."""
        ...

    @abstractmethod
    async def ensure_profile(self, user_id: str, email: str | None = None) -> UserProfile:
        """Return the user's profile, creating an empty one if needed."""
        ...

    @abstractmethod
    async def get_profile(self, user_id: str) -> UserProfile | None:
        """Return the user's profile, or None if there is none."""
        ...

    @abstractmethod
    async def mark_migrated(self, user_id: str, at: datetime) -> None:
        """Set ``migrated_at`` if it is unset. Never clears or moves it."""
        ...

    @abstractmethod
    async def save_credential(self, user_id: str, token: str, username: str | None = None) -> None:
        """Store the user's GitHub token, encrypted at rest."""
        ...

    @abstractmethod
    async def get_credential(self, user_id: str) -> str | None:
        """Return the decrypted GitHub token, or None."""
        ...

    async def close(self) -> None:
        """Close connections and release resources."""

    async def __aenter__(self) -> AccountStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
