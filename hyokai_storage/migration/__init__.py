"""
One-time migration of local data into the account store.

Key classes:
- LocalSnapshot: single read of every migratable category
- LocalDataMigrator: ordered, idempotent push with retries
- MigrationController: IDLE/PREVIEW/MIGRATING/SUCCESS/ERROR state machine
"""

from .controller import MigrationController
from .migrator import LocalDataMigrator, is_locally_migrated
from .snapshot import LocalSnapshot, get_migration_preview
from .types import (
    TOTAL_STEPS,
    MigrationPreview,
    MigrationResult,
    MigrationStatus,
    MigrationStep,
)

__all__ = [
    "MigrationController",
    "LocalDataMigrator",
    "LocalSnapshot",
    "get_migration_preview",
    "is_locally_migrated",
    # Types
    "MigrationPreview",
    "MigrationResult",
    "MigrationStatus",
    "MigrationStep",
    "TOTAL_STEPS",
]
