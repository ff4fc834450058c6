"""
Safe key-value store with quota handling.

Wraps a KeyValueBackend so that no read, write or delete ever raises
into application code:

- Writes report success or a classified failure (quota / unknown)
- Collection writes trim oldest entries until they fit
- Reads fall back to a default on absence or any fault
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from .. import keys
from ..exceptions import StorageQuotaError
from .backend import DEFAULT_QUOTA_BYTES, KeyValueBackend, estimate_size

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WriteError(Enum):
    """Classification of a failed write."""

    QUOTA = "quota"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a single write."""

    success: bool
    error: WriteError | None = None

    @classmethod
    def ok(cls) -> WriteResult:
        return cls(success=True)


@dataclass
class TrimResult(Generic[T]):
    """Outcome of a collection write.

    ``items`` is what the caller should treat as current: the persisted
    (possibly trimmed) list, or the capped list when nothing could be
    persisted.
    """

    items: list[T]
    persisted: bool
    trimmed: int = 0


@dataclass(frozen=True)
class StorageUsage:
    """Approximate storage usage in bytes."""

    used: int
    available: int
    percentage: int


class SafeStore:
    """Fault-insulating facade over a key-value backend."""

    def __init__(self, backend: KeyValueBackend) -> None:
        self.backend = backend

    async def write_text(self, key: str, text: str) -> WriteResult:
        """Write raw text, classifying any failure instead of raising."""
        try:
            await self.backend.set_item(key, text)
            return WriteResult.ok()
        except StorageQuotaError:
            return WriteResult(success=False, error=WriteError.QUOTA)
        except Exception as e:
            logger.error(f'Failed to write storage key "{key}": {e}')
            return WriteResult(success=False, error=WriteError.UNKNOWN)

    async def write(self, key: str, value: Any) -> WriteResult:
        """JSON-encode ``value`` and write it."""
        try:
            text = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f'Failed to serialize value for storage key "{key}": {e}')
            return WriteResult(success=False, error=WriteError.UNKNOWN)
        return await self.write_text(key, text)

    async def write_collection_with_trim(
        self,
        key: str,
        items: Sequence[T],
        max_entries: int,
    ) -> TrimResult[T]:
        """Write a newest-first list, dropping oldest entries on quota faults.

        Args:
            key: Storage key
            items: Entries, newest first
            max_entries: Cap applied before the first attempt

        Returns:
            TrimResult with the list that is now authoritative
        """
        capped = list(items[:max_entries])

        result = await self.write(key, capped)
        if result.success:
            return TrimResult(items=capped, persisted=True)

        if result.error is not WriteError.QUOTA:
            return TrimResult(items=capped, persisted=False)

        reduced = list(capped)
        while reduced:
            # Oldest entry is last in newest-first order
            reduced = reduced[:-1]
            retry = await self.write(key, reduced)
            if retry.success:
                logger.warning(
                    f'Storage quota exceeded for "{key}". Trimmed to {len(reduced)} entries.'
                )
                return TrimResult(items=reduced, persisted=True, trimmed=len(capped) - len(reduced))
            if retry.error is not WriteError.QUOTA:
                break

        logger.error(f'Storage completely full. Could not save to "{key}".')
        return TrimResult(items=capped, persisted=False)

    async def read_text(self, key: str) -> str | None:
        """Read raw text, or None on absence or any fault."""
        try:
            return await self.backend.get_item(key)
        except Exception as e:
            logger.error(f'Failed to read storage key "{key}": {e}')
            return None

    async def read(self, key: str, default: T) -> T | Any:
        """Read and JSON-decode ``key``, or return ``default``."""
        raw = await self.read_text(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.error(f'Failed to parse JSON from storage key "{key}": {e}')
            return default

    async def remove(self, key: str) -> bool:
        """Best-effort delete. Returns False if the backend failed."""
        try:
            await self.backend.remove_item(key)
            return True
        except Exception as e:
            logger.error(f'Failed to remove storage key "{key}": {e}')
            return False

    async def is_available(self) -> bool:
        """Probe writability with a disposable write/delete cycle."""
        try:
            await self.backend.set_item(keys.STORAGE_TEST_KEY, keys.STORAGE_TEST_KEY)
            await self.backend.remove_item(keys.STORAGE_TEST_KEY)
            return True
        except Exception:
            return False

    async def usage(self) -> StorageUsage:
        """Approximate usage against the backend's quota."""
        limit = self.backend.quota_bytes or DEFAULT_QUOTA_BYTES
        try:
            used = 0
            for key in await self.backend.keys():
                value = await self.backend.get_item(key)
                if value:
                    used += estimate_size(key, value)
        except Exception:
            return StorageUsage(used=0, available=0, percentage=0)
        return StorageUsage(
            used=used,
            available=limit - used,
            percentage=round(used / limit * 100),
        )
