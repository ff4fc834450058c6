"""
Key-value backends for local persistence.

A backend is the raw string-to-string store underneath SafeStore. It has
a hard capacity and may fail on any call; SafeStore insulates callers
from both.

Capacity is measured the way browsers account for localStorage: two
bytes per UTF-16 code unit of every key and value.
"""

from __future__ import annotations

import errno
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from ..exceptions import StorageIOError, StorageQuotaError
from .file_ops import read_json, write_json_atomic

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024

_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


def estimate_size(key: str, value: str) -> int:
    """Approximate stored size of one item in bytes (UTF-16)."""
    return 2 * (len(key) + len(value))


def total_size(items: dict[str, str]) -> int:
    """Approximate stored size of a whole namespace in bytes."""
    return sum(estimate_size(k, v) for k, v in items.items())


class KeyValueBackend(ABC):
    """Abstract string key-value store.

    Implementations raise StorageQuotaError when a write would exceed
    ``quota_bytes`` and StorageIOError for any other fault.
    """

    quota_bytes: int | None = None

    @abstractmethod
    async def get_item(self, key: str) -> str | None:
        """Return the value for ``key`` or None if absent."""
        ...

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``.

        Raises:
            StorageQuotaError: If capacity would be exceeded
            StorageIOError: On any other fault
        """
        ...

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Delete ``key``. Missing keys are ignored."""
        ...

    @abstractmethod
    async def keys(self) -> list[str]:
        """List all stored keys."""
        ...

    async def length(self) -> int:
        """Number of stored keys."""
        return len(await self.keys())

    async def close(self) -> None:
        """Release resources held by the backend."""

    def _check_quota(self, items: dict[str, str], key: str, value: str) -> None:
        if self.quota_bytes is None:
            return
        existing = items.get(key)
        used = total_size(items)
        if existing is not None:
            used -= estimate_size(key, existing)
        required = used + estimate_size(key, value)
        if required > self.quota_bytes:
            raise StorageQuotaError(key, required, self.quota_bytes)


class MemoryBackend(KeyValueBackend):
    """In-process backend. Contents last as long as the object."""

    def __init__(
        self,
        quota_bytes: int | None = DEFAULT_QUOTA_BYTES,
        initial: dict[str, str] | None = None,
    ) -> None:
        self.quota_bytes = quota_bytes
        self._items: dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._check_quota(self._items, key, value)
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    async def keys(self) -> list[str]:
        return list(self._items)


class FileBackend(KeyValueBackend):
    """Backend persisting the whole namespace as one JSON document.

    Every mutation rewrites the document atomically (temp file + rename),
    so the on-disk state is always the last successfully committed one.
    The in-memory copy is only updated after the rename succeeds.
    """

    def __init__(self, path: str | Path, quota_bytes: int | None = DEFAULT_QUOTA_BYTES) -> None:
        self.path = Path(path)
        self.quota_bytes = quota_bytes
        self._items: dict[str, str] | None = None

    async def _load(self) -> dict[str, str]:
        if self._items is None:
            data = await read_json(self.path)
            if data is None:
                self._items = {}
            elif not isinstance(data, dict):
                raise StorageIOError("parse_json", str(self.path), TypeError("expected object"))
            else:
                self._items = {k: v for k, v in data.items() if isinstance(v, str)}
        return self._items

    async def _commit(self, key: str, updated: dict[str, str]) -> None:
        try:
            await write_json_atomic(self.path, updated)
        except StorageIOError as e:
            if isinstance(e.cause, OSError) and e.cause.errno in _QUOTA_ERRNOS:
                raise StorageQuotaError(key, total_size(updated), self.quota_bytes) from e
            raise
        self._items = updated

    async def get_item(self, key: str) -> str | None:
        items = await self._load()
        return items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        items = await self._load()
        self._check_quota(items, key, value)
        await self._commit(key, {**items, key: value})

    async def remove_item(self, key: str) -> None:
        items = await self._load()
        if key not in items:
            return
        updated = {k: v for k, v in items.items() if k != key}
        await self._commit(key, updated)

    async def keys(self) -> list[str]:
        items = await self._load()
        return list(items)

    async def close(self) -> None:
        self._items = None
