"""
User preferences and saved contexts.

Preferences live in the local store as raw text under individual keys
(``"true"``, ``"prompting"``, ``"[0, 1]"`` ...), the format the web
client has always written. PreferenceSync mirrors them to the account
store while signed in.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from . import keys
from .history.types import TaskMode
from .ids import generate_session_id
from .local.safe_store import SafeStore
from .remote.base import AccountStore, RemoteTable
from .retry import RetryOptions, is_transient_error, with_retry
from .session import AuthSession

logger = logging.getLogger(__name__)

MAX_SAVED_CONTEXTS = 10
USER_CONTEXT_MAX_LENGTH = 2000


class Language(str, Enum):
    """UI language."""

    EN = "en"
    JP = "jp"


def _default_compare_indices() -> list[int]:
    return [0, 1]


@dataclass
class Preferences:
    """Per-user UI preferences."""

    mode: TaskMode = TaskMode.CODING
    beginner_mode: bool = False
    language: Language = Language.EN
    selected_model_index: int = 0
    compare_model_indices: list[int] = field(default_factory=_default_compare_indices)

    def to_row(self, user_id: str) -> dict[str, Any]:
        """Remote ``user_preferences`` row."""
        return {
            "user_id": user_id,
            "mode": self.mode.value,
            "beginner_mode": self.beginner_mode,
            "language": self.language.value,
            "selected_model_index": self.selected_model_index,
            "compare_model_indices": list(self.compare_model_indices),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Preferences:
        """Build from a remote row, falling back to defaults per field."""
        return cls(
            mode=TaskMode.PROMPTING if row.get("mode") == "prompting" else TaskMode.CODING,
            beginner_mode=bool(row.get("beginner_mode", False)),
            language=Language.JP if row.get("language") == "jp" else Language.EN,
            selected_model_index=_row_index(row.get("selected_model_index")),
            compare_model_indices=_row_indices(row.get("compare_model_indices")),
        )


@dataclass
class SavedContext:
    """A named, reusable user context."""

    id: str
    name: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SavedContext:
        return cls(id=str(data["id"]), name=data["name"], content=data["content"])

    def to_row(self, user_id: str) -> dict[str, Any]:
        """Remote ``saved_contexts`` row."""
        return {"user_id": user_id, **self.to_dict()}


def _parse_index(text: str | None) -> int:
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        return 0


def _parse_indices(text: str | None) -> list[int]:
    if not text:
        return _default_compare_indices()
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return _default_compare_indices()
    if not isinstance(value, list) or not all(isinstance(i, int) for i in value):
        return _default_compare_indices()
    return value


def _row_index(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _row_indices(value: Any) -> list[int]:
    if not isinstance(value, list):
        return _default_compare_indices()
    try:
        return [int(i) for i in value]
    except (TypeError, ValueError):
        return _default_compare_indices()


class PreferenceStore:
    """Local preference, user-context and session-id storage."""

    def __init__(self, store: SafeStore) -> None:
        self.store = store

    async def load(self) -> Preferences:
        """Read all preferences, substituting defaults for missing values."""
        return Preferences(
            mode=(
                TaskMode.PROMPTING
                if await self.store.read_text(keys.MODE) == "prompting"
                else TaskMode.CODING
            ),
            beginner_mode=await self.store.read_text(keys.BEGINNER_MODE) == "true",
            language=(
                Language.JP if await self.store.read_text(keys.LANGUAGE) == "jp" else Language.EN
            ),
            selected_model_index=_parse_index(
                await self.store.read_text(keys.SELECTED_MODEL_INDEX)
            ),
            compare_model_indices=_parse_indices(
                await self.store.read_text(keys.COMPARE_MODEL_INDICES)
            ),
        )

    async def save(self, prefs: Preferences) -> bool:
        """Write every preference. Returns False if any write failed."""
        results = [
            await self.store.write_text(keys.MODE, prefs.mode.value),
            await self.store.write_text(keys.BEGINNER_MODE, str(prefs.beginner_mode).lower()),
            await self.store.write_text(keys.LANGUAGE, prefs.language.value),
            await self.store.write_text(keys.SELECTED_MODEL_INDEX, str(prefs.selected_model_index)),
            await self.store.write_text(
                keys.COMPARE_MODEL_INDICES, json.dumps(prefs.compare_model_indices)
            ),
        ]
        return all(r.success for r in results)

    async def has_any(self) -> bool:
        """True if any preference key has been written."""
        for key in keys.PREFERENCE_KEYS:
            if await self.store.read_text(key):
                return True
        return False

    async def get_user_context(self) -> str:
        return await self.store.read_text(keys.USER_CONTEXT) or ""

    async def set_user_context(self, text: str) -> bool:
        result = await self.store.write_text(keys.USER_CONTEXT, text[:USER_CONTEXT_MAX_LENGTH])
        return result.success

    async def get_saved_contexts(self) -> list[SavedContext]:
        raw = await self.store.read(keys.SAVED_CONTEXTS, [])
        if not isinstance(raw, list):
            return []
        contexts = []
        for item in raw:
            try:
                contexts.append(SavedContext.from_dict(item))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed saved context: {e}")
        return contexts

    async def set_saved_contexts(self, contexts: list[SavedContext]) -> list[SavedContext]:
        """Persist at most ``MAX_SAVED_CONTEXTS`` contexts and return what was kept."""
        kept = contexts[:MAX_SAVED_CONTEXTS]
        await self.store.write(keys.SAVED_CONTEXTS, [c.to_dict() for c in kept])
        return kept

    async def get_active_context_id(self) -> str | None:
        return await self.store.read_text(keys.ACTIVE_CONTEXT_ID)

    async def set_active_context_id(self, context_id: str | None) -> None:
        if context_id is None:
            await self.store.remove(keys.ACTIVE_CONTEXT_ID)
        else:
            await self.store.write_text(keys.ACTIVE_CONTEXT_ID, context_id)

    async def get_or_create_session_id(self) -> str:
        """Return the anonymous usage session ID, creating it on first use."""
        session_id = await self.store.read_text(keys.SESSION_ID)
        if not session_id:
            session_id = generate_session_id()
            await self.store.write_text(keys.SESSION_ID, session_id)
        return session_id


class PreferenceSync:
    """Keeps local preferences and the remote ``user_preferences`` row in step."""

    def __init__(
        self,
        preferences: PreferenceStore,
        account_store: AccountStore,
        session: AuthSession,
        retry_options: RetryOptions | None = None,
    ) -> None:
        self.preferences = preferences
        self.account_store = account_store
        self.session = session
        self.retry_options = dataclasses.replace(
            retry_options or RetryOptions(), should_retry=is_transient_error
        )

    async def load_remote(self) -> Preferences | None:
        """Apply the remote preferences locally, once per signed-in session.

        Returns:
            The applied preferences, or None if skipped, absent or failed
        """
        state = self.session.state
        if not state.is_authenticated or state.preferences_loaded:
            return None
        state.preferences_loaded = True
        user_id = state.user_id
        if user_id is None:
            return None

        try:
            rows = await with_retry(
                lambda: self.account_store.select(RemoteTable.USER_PREFERENCES, user_id),
                self.retry_options,
            )
        except Exception as e:
            logger.error(f"Failed to load preferences for {user_id}: {e}")
            return None

        if not rows:
            return None
        prefs = Preferences.from_row(rows[0])
        await self.preferences.save(prefs)
        return prefs

    async def update(self, **changes: Any) -> Preferences:
        """Change preferences locally, then mirror them when signed in.

        Args:
            **changes: Preferences fields to change

        Returns:
            The updated preferences
        """
        current = await self.preferences.load()
        updated = dataclasses.replace(current, **changes)
        await self.preferences.save(updated)

        user_id = self.session.user_id
        if user_id is not None:
            try:
                await with_retry(
                    lambda: self.account_store.upsert(
                        RemoteTable.USER_PREFERENCES, [updated.to_row(user_id)]
                    ),
                    self.retry_options,
                )
            except Exception as e:
                logger.error(f"Failed to save preferences for {user_id}: {e}")
        return updated
