"""
Shared test configuration and fixtures.

Uses real components wherever possible: in-memory backends, an
in-memory SQLite account store and real AES-GCM credentials. Faults
are injected through thin wrappers rather than mocks.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

import pytest

from hyokai_storage.exceptions import StorageIOError, StorageQuotaError
from hyokai_storage.local.backend import MemoryBackend
from hyokai_storage.local.safe_store import SafeStore
from hyokai_storage.remote.base import AccountStore, RemoteTable, UserProfile
from hyokai_storage.remote.credentials import CredentialCipher
from hyokai_storage.remote.sqlite import SQLiteAccountStore, SQLiteAccountStoreConfig
from hyokai_storage.retry import RetryOptions
from hyokai_storage.session import AuthSession

TEST_SECRET = "test-pat-encryption-key"


class FaultyBackend(MemoryBackend):
    """MemoryBackend that raises scripted faults on writes.

    ``quota_on_lengths``: JSON list lengths whose write raises a quota fault.
    ``fail_writes``: number of upcoming writes that raise a generic I/O fault.
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.quota_on_lengths: set[int] = set()
        self.fail_writes = 0
        self.fail_reads = False
        self.write_attempts: list[tuple[str, str]] = []

    async def set_item(self, key: str, value: str) -> None:
        self.write_attempts.append((key, value))
        if self.fail_writes:
            self.fail_writes -= 1
            raise StorageIOError("set_item", key, OSError("disk error"))
        if value.startswith("[") and self._list_length(value) in self.quota_on_lengths:
            raise StorageQuotaError(key)
        await super().set_item(key, value)

    async def get_item(self, key: str) -> str | None:
        if self.fail_reads:
            raise StorageIOError("get_item", key, OSError("disk error"))
        return await super().get_item(key)

    @staticmethod
    def _list_length(value: str) -> int:
        return len(json.loads(value))


class FlakyAccountStore(AccountStore):
    """Delegating AccountStore that fails scripted calls.

    Failures are queued per ``"method"`` or ``"method:table"`` key and
    raised in order, one per matching call.
    """

    def __init__(self, inner: AccountStore) -> None:
        self.inner = inner
        self.failures: dict[str, list[Exception]] = {}
        self.calls: list[tuple[str, str | None]] = []

    def fail(self, target: str, *errors: Exception) -> None:
        self.failures.setdefault(target, []).extend(errors)

    def count(self, method: str, table: str | None = None) -> int:
        return sum(1 for m, t in self.calls if m == method and (table is None or t == table))

    def _maybe_fail(self, method: str, table: str | None = None) -> None:
        self.calls.append((method, table))
        for target in (f"{method}:{table}", method):
            queue = self.failures.get(target)
            if queue:
                raise queue.pop(0)

    async def upsert(self, table: RemoteTable, rows: list[dict[str, Any]]) -> None:
        self._maybe_fail("upsert", table.value)
        await self.inner.upsert(table, rows)

    async def select(self, table: RemoteTable, user_id: str) -> list[dict[str, Any]]:
        self._maybe_fail("select", table.value)
        return await self.inner.select(table, user_id)

    async def delete(self, table: RemoteTable, user_id: str, entity: str) -> None:
        self._maybe_fail("delete", table.value)
        await self.inner.delete(table, user_id, entity)

    async def ensure_profile(self, user_id: str, email: str | None = None) -> UserProfile:
        self._maybe_fail("ensure_profile")
        return await self.inner.ensure_profile(user_id, email)

    async def get_profile(self, user_id: str) -> UserProfile | None:
        self._maybe_fail("get_profile")
        return await self.inner.get_profile(user_id)

    async def mark_migrated(self, user_id: str, at: datetime) -> None:
        self._maybe_fail("mark_migrated")
        await self.inner.mark_migrated(user_id, at)

    async def save_credential(self, user_id: str, token: str, username: str | None = None) -> None:
        self._maybe_fail("save_credential")
        await self.inner.save_credential(user_id, token, username)

    async def get_credential(self, user_id: str) -> str | None:
        self._maybe_fail("get_credential")
        return await self.inner.get_credential(user_id)

    async def close(self) -> None:
        await self.inner.close()


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def backend():
    """Fault-injectable in-memory backend with the default quota."""
    return FaultyBackend()


@pytest.fixture
def store(backend):
    return SafeStore(backend)


@pytest.fixture
def cipher():
    return CredentialCipher(TEST_SECRET)


@pytest.fixture
async def sqlite_store(cipher):
    """Initialized in-memory SQLite account store with credential encryption."""
    account_store = await SQLiteAccountStore.create(
        SQLiteAccountStoreConfig(db_path=":memory:"), cipher=cipher
    )
    yield account_store
    await account_store.close()


@pytest.fixture
def account_store(sqlite_store):
    return FlakyAccountStore(sqlite_store)


@pytest.fixture
def fast_retry():
    """Retry policy without backoff delays."""
    return RetryOptions(max_retries=2, base_delay_ms=0, max_delay_ms=0)


@pytest.fixture
def session(account_store):
    return AuthSession(account_store)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
