"""
Migration types and data structures.

Defines the types used while moving local data into the account store:
the ordered steps, the preview shown before confirming, the per-run
result and the controller's status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class MigrationStatus(Enum):
    """State of the migration controller."""

    IDLE = "idle"
    PREVIEW = "preview"
    MIGRATING = "migrating"
    SUCCESS = "success"
    ERROR = "error"


class MigrationStep(Enum):
    """Ordered migration steps. Definition order is execution order."""

    PREFERENCES = "preferences"
    SAVED_CONTEXTS = "saved_contexts"
    ACTIVE_CONTEXT = "active_context"
    GITHUB_CREDENTIAL = "github_credential"
    GITHUB_REPOS = "github_repos"
    HISTORY = "history"
    SIMPLE_HISTORY = "simple_history"
    MARK_COMPLETE = "mark_complete"


TOTAL_STEPS = len(MigrationStep)


@dataclass(frozen=True)
class MigrationPreview:
    """Counts and flags describing what a migration would push."""

    saved_contexts: int = 0
    has_current_context: bool = False
    has_github_pat: bool = False
    github_repos: int = 0
    has_preferences: bool = False
    history_entries: int = 0
    simple_history_entries: int = 0

    @property
    def has_data(self) -> bool:
        return (
            self.saved_contexts > 0
            or self.has_current_context
            or self.has_github_pat
            or self.github_repos > 0
            or self.has_preferences
            or self.history_entries > 0
            or self.simple_history_entries > 0
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasData": self.has_data,
            "savedContexts": self.saved_contexts,
            "hasCurrentContext": self.has_current_context,
            "hasGitHubPAT": self.has_github_pat,
            "githubRepos": self.github_repos,
            "hasPreferences": self.has_preferences,
            "historyEntries": self.history_entries,
            "simpleHistoryEntries": self.simple_history_entries,
        }


@dataclass
class MigrationResult:
    """Result of one migration run.

    ``rows`` counts the rows pushed per remote table. On failure,
    ``failed_step`` names the step that exhausted its retries; steps
    listed in ``completed_steps`` stay pushed.
    """

    user_id: str
    completed_steps: list[MigrationStep] = field(default_factory=list)
    rows: dict[str, int] = field(default_factory=dict)

    # Timing
    started_at: datetime | None = None
    completed_at: datetime | None = None

    # Error info (if failed)
    failed_step: MigrationStep | None = None
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.failed_step is None and MigrationStep.MARK_COMPLETE in self.completed_steps

    @property
    def duration_seconds(self) -> float | None:
        """Calculate migration duration."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "user_id": self.user_id,
            "succeeded": self.succeeded,
            "completed_steps": [s.value for s in self.completed_steps],
            "rows": dict(self.rows),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "failed_step": self.failed_step.value if self.failed_step else None,
            "error_message": self.error_message,
        }
