"""
Hyokai Storage

Client-side persistence and account synchronization for the Hyokai
prompt transformer.

Provides:
- Quota-aware local key-value storage (in-memory or JSON file)
- Capacity-bounded history ledgers with remote mirroring
- Retry executor with exponential backoff and error classification
- One-time, idempotent migration of local data into an account store
- Account stores backed by SQLite or a PostgREST-compatible API

Usage:

    >>> from hyokai_storage import HyokaiConfig, HyokaiContext
    >>> async with await HyokaiContext.create(HyokaiConfig.load()) as ctx:
    ...     await ctx.sign_in("user-123")
    ...     entries = await ctx.history.load()
"""

from .config import HyokaiConfig
from .context import HyokaiContext

# Exceptions
from .exceptions import (
    AuthError,
    ConfigurationError,
    CredentialError,
    HyokaiStorageError,
    MigrationError,
    MigrationStateError,
    RemoteStoreError,
    StorageIOError,
    StorageQuotaError,
)
from .github_state import GitHubLocalState, GitHubSettings, RepoConnection

# History
from .history import (
    CompareModelResult,
    HistoryEntry,
    HistoryLedger,
    HistoryMirror,
    ModelOutput,
    SimpleHistoryEntry,
    SimpleHistoryLedger,
    SingleModelResult,
    TaskMode,
    format_timestamp,
    truncate_text,
)

# Local storage
from .local import FileBackend, KeyValueBackend, MemoryBackend, SafeStore, WriteError, WriteResult

# Migration
from .migration import (
    LocalDataMigrator,
    LocalSnapshot,
    MigrationController,
    MigrationPreview,
    MigrationResult,
    MigrationStatus,
    MigrationStep,
    get_migration_preview,
)
from .preferences import Language, Preferences, PreferenceStore, PreferenceSync, SavedContext

# Remote
from .remote import (
    AccountStore,
    CredentialCipher,
    RemoteTable,
    RestAccountStore,
    SQLiteAccountStore,
    UserProfile,
)
from .retry import RetryOptions, is_auth_error, is_transient_error, with_retry
from .session import AuthEvents, AuthSession, FirstLoginEvent, SessionState

__version__ = "0.1.0"

__all__ = [
    # Wiring
    "HyokaiConfig",
    "HyokaiContext",
    # Local storage
    "KeyValueBackend",
    "MemoryBackend",
    "FileBackend",
    "SafeStore",
    "WriteResult",
    "WriteError",
    # Retry
    "RetryOptions",
    "with_retry",
    "is_transient_error",
    "is_auth_error",
    # History
    "HistoryLedger",
    "SimpleHistoryLedger",
    "HistoryMirror",
    "HistoryEntry",
    "SimpleHistoryEntry",
    "SingleModelResult",
    "CompareModelResult",
    "ModelOutput",
    "TaskMode",
    "format_timestamp",
    "truncate_text",
    # Preferences and GitHub state
    "Preferences",
    "PreferenceStore",
    "PreferenceSync",
    "SavedContext",
    "Language",
    "GitHubLocalState",
    "GitHubSettings",
    "RepoConnection",
    # Session
    "AuthSession",
    "AuthEvents",
    "FirstLoginEvent",
    "SessionState",
    # Remote
    "AccountStore",
    "RemoteTable",
    "UserProfile",
    "SQLiteAccountStore",
    "RestAccountStore",
    "CredentialCipher",
    # Migration
    "LocalSnapshot",
    "LocalDataMigrator",
    "MigrationController",
    "MigrationPreview",
    "MigrationResult",
    "MigrationStatus",
    "MigrationStep",
    "get_migration_preview",
    # Exceptions
    "HyokaiStorageError",
    "StorageIOError",
    "StorageQuotaError",
    "RemoteStoreError",
    "AuthError",
    "CredentialError",
    "MigrationError",
    "MigrationStateError",
    "ConfigurationError",
    # Version
    "__version__",
]
