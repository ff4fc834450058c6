"""
Remote account store abstraction.

Every implementation offers the same upsert-based interface, so the
retry executor can repeat any write:

- SQLiteAccountStore: aiosqlite, for desktop hosts and tests
- RestAccountStore: PostgREST + edge function client over aiohttp
"""

from .base import ENTITY_KEYS, AccountStore, RemoteTable, UserProfile, entity_id
from .credentials import CredentialCipher
from .rest import RestAccountStore, RestAccountStoreConfig
from .sqlite import SQLiteAccountStore, SQLiteAccountStoreConfig

__all__ = [
    # Core interface
    "AccountStore",
    "RemoteTable",
    "UserProfile",
    "ENTITY_KEYS",
    "entity_id",
    # Implementations
    "SQLiteAccountStore",
    "SQLiteAccountStoreConfig",
    "RestAccountStore",
    "RestAccountStoreConfig",
    # Credentials
    "CredentialCipher",
]
