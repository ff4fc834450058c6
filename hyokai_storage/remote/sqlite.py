"""
SQLite account store.

Single-file (or in-memory) implementation of AccountStore. Useful for
desktop hosts, local development and tests. Rows are stored as JSON
documents keyed by (table_name, user_id, entity_id); every write is an
``INSERT ... ON CONFLICT DO UPDATE`` so repeated writes never duplicate.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import CredentialError, RemoteStoreError
from .base import AccountStore, RemoteTable, UserProfile, entity_id
from .credentials import CredentialCipher

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = ("id", "email", "display_name", "avatar_url", "migrated_at")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS user_profiles (
        id TEXT PRIMARY KEY,
        email TEXT,
        display_name TEXT,
        avatar_url TEXT,
        migrated_at TEXT,
        created_at TEXT DEFAULT (datetime('now'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS account_rows (
        table_name TEXT NOT NULL,
        user_id TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        data TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (table_name, user_id, entity_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS github_credentials (
        user_id TEXT PRIMARY KEY,
        encrypted_pat TEXT NOT NULL,
        pat_username TEXT,
        updated_at TEXT NOT NULL
    )
    """,
)


@dataclass
class SQLiteAccountStoreConfig:
    """Configuration for the SQLite account store."""

    db_path: str | Path = ":memory:"

    @classmethod
    def from_env(cls) -> SQLiteAccountStoreConfig:
        """Create config from environment variables."""
        return cls(db_path=os.environ.get("HYOKAI_SQLITE_PATH", ":memory:"))


class SQLiteAccountStore(AccountStore):
    """AccountStore backed by aiosqlite."""

    def __init__(
        self,
        config: SQLiteAccountStoreConfig,
        cipher: CredentialCipher | None = None,
    ):
        """
        Initialize SQLite account store.

        Args:
            config: SQLite configuration
            cipher: Cipher for stored credentials (credential calls fail without it)
        """
        self.config = config
        self.cipher = cipher
        self.conn: aiosqlite.Connection | None = None
        self._initialized = False

    @classmethod
    async def create(
        cls,
        config: SQLiteAccountStoreConfig | None = None,
        cipher: CredentialCipher | None = None,
    ) -> SQLiteAccountStore:
        """Create and initialize the store."""
        store = cls(config or SQLiteAccountStoreConfig.from_env(), cipher)
        await store.initialize()
        return store

    async def initialize(self) -> None:
        """Open the connection and create the schema."""
        if self._initialized:
            return

        db_path = str(self.config.db_path)
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self.conn = await aiosqlite.connect(db_path)
            for statement in _SCHEMA:
                await self.conn.execute(statement)
            await self.conn.commit()
        except sqlite3.Error as e:
            raise RemoteStoreError(
                f"Failed to open account store at {db_path}: {e}", cause=e
            ) from e

        self._initialized = True
        logger.info(f"SQLite account store ready at {db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self.conn is not None:
            await self.conn.close()
            self.conn = None
        self._initialized = False

    def _connection(self) -> aiosqlite.Connection:
        if self.conn is None:
            raise RemoteStoreError("SQLite account store is not initialized")
        return self.conn

    async def upsert(self, table: RemoteTable, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        conn = self._connection()
        now = datetime.now(UTC).isoformat()
        params = [
            (table.value, row["user_id"], entity_id(table, row), json.dumps(row), now)
            for row in rows
        ]
        try:
            await conn.executemany(
                """
                INSERT INTO account_rows (table_name, user_id, entity_id, data, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (table_name, user_id, entity_id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
                """,
                params,
            )
            await conn.commit()
        except sqlite3.Error as e:
            raise RemoteStoreError(
                f"Failed to upsert into {table.value}: {e}", table=table.value, cause=e
            ) from e

    async def select(self, table: RemoteTable, user_id: str) -> list[dict[str, Any]]:
        conn = self._connection()
        try:
            async with conn.execute(
                "SELECT data FROM account_rows WHERE table_name = ? AND user_id = ? ORDER BY rowid",
                (table.value, user_id),
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise RemoteStoreError(
                f"Failed to read {table.value}: {e}", table=table.value, cause=e
            ) from e
        return [json.loads(row[0]) for row in rows]

    async def delete(self, table: RemoteTable, user_id: str, entity: str) -> None:
        conn = self._connection()
        try:
            await conn.execute(
                "DELETE FROM account_rows WHERE table_name = ? AND user_id = ? AND entity_id = ?",
                (table.value, user_id, entity),
            )
            await conn.commit()
        except sqlite3.Error as e:
            raise RemoteStoreError(
                f"Failed to delete from {table.value}: {e}", table=table.value, cause=e
            ) from e

    async def ensure_profile(self, user_id: str, email: str | None = None) -> UserProfile:
        conn = self._connection()
        try:
            await conn.execute(
                "INSERT INTO user_profiles (id, email) VALUES (?, ?) ON CONFLICT (id) DO NOTHING",
                (user_id, email),
            )
            await conn.commit()
        except sqlite3.Error as e:
            raise RemoteStoreError(
                f"Failed to create profile: {e}", table="user_profiles", cause=e
            ) from e
        profile = await self.get_profile(user_id)
        if profile is None:
            raise RemoteStoreError(
                f"Profile for {user_id} missing after insert", table="user_profiles"
            )
        return profile

    async def get_profile(self, user_id: str) -> UserProfile | None:
        conn = self._connection()
        try:
            async with conn.execute(
                f"SELECT {', '.join(PROFILE_COLUMNS)} FROM user_profiles WHERE id = ?",
                (user_id,),
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise RemoteStoreError(
                f"Failed to read profile: {e}", table="user_profiles", cause=e
            ) from e
        if row is None:
            return None
        return UserProfile.from_dict(dict(zip(PROFILE_COLUMNS, row)))

    async def mark_migrated(self, user_id: str, at: datetime) -> None:
        conn = self._connection()
        try:
            await conn.execute(
                """
                INSERT INTO user_profiles (id, migrated_at) VALUES (?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    migrated_at = COALESCE(user_profiles.migrated_at, excluded.migrated_at)
                """,
                (user_id, at.isoformat()),
            )
            await conn.commit()
        except sqlite3.Error as e:
            raise RemoteStoreError(
                f"Failed to mark migration complete: {e}", table="user_profiles", cause=e
            ) from e

    def _require_cipher(self) -> CredentialCipher:
        if self.cipher is None:
            raise CredentialError("Credential encryption is not configured")
        return self.cipher

    async def save_credential(self, user_id: str, token: str, username: str | None = None) -> None:
        encrypted = self._require_cipher().encrypt(token)
        conn = self._connection()
        try:
            await conn.execute(
                """
                INSERT INTO github_credentials (user_id, encrypted_pat, pat_username, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (user_id) DO UPDATE SET
                    encrypted_pat = excluded.encrypted_pat,
                    pat_username = excluded.pat_username,
                    updated_at = excluded.updated_at
                """,
                (user_id, encrypted, username, datetime.now(UTC).isoformat()),
            )
            await conn.commit()
        except sqlite3.Error as e:
            raise RemoteStoreError(
                f"Failed to save credential: {e}", table="github_credentials", cause=e
            ) from e

    async def get_credential(self, user_id: str) -> str | None:
        conn = self._connection()
        try:
            async with conn.execute(
                "SELECT encrypted_pat FROM github_credentials WHERE user_id = ?",
                (user_id,),
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise RemoteStoreError(
                f"Failed to read credential: {e}", table="github_credentials", cause=e
            ) from e
        if row is None:
            return None
        return self._require_cipher().decrypt(row[0])
