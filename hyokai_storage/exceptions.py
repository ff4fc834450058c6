"""
Custom exceptions for Hyokai storage.

Local storage faults are normally absorbed by SafeStore and never reach
callers; remote and migration faults propagate as these types so the
UI layer can tell them apart.
"""

from __future__ import annotations


class HyokaiStorageError(Exception):
    """Base exception for all Hyokai storage errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class StorageIOError(HyokaiStorageError):
    """Raised when a local storage I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class StorageQuotaError(HyokaiStorageError):
    """Raised when a write would exceed the key-value store's capacity."""

    def __init__(self, key: str, required_bytes: int | None = None, quota_bytes: int | None = None):
        details: dict = {"key": key}
        if required_bytes is not None:
            details["required_bytes"] = required_bytes
        if quota_bytes is not None:
            details["quota_bytes"] = quota_bytes
        message = f"Storage quota exceeded writing '{key}'"
        if required_bytes is not None and quota_bytes is not None:
            message += f": {required_bytes} > {quota_bytes} bytes"
        super().__init__(message, details)
        self.key = key
        self.required_bytes = required_bytes
        self.quota_bytes = quota_bytes


class RemoteStoreError(HyokaiStorageError):
    """Raised when a remote account store operation fails.

    The message carries the HTTP status (when there is one) so that
    message-based classification in ``retry`` keeps working.
    """

    def __init__(
        self,
        message: str,
        table: str | None = None,
        status: int | None = None,
        cause: Exception | None = None,
    ):
        details: dict = {}
        if table:
            details["table"] = table
        if status is not None:
            details["status"] = status
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.table = table
        self.status = status
        self.cause = cause


class AuthError(HyokaiStorageError):
    """Raised for auth-related remote failures.

    These are never retried and indicate the user needs to re-authenticate.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        details = {"cause": str(cause)} if cause else {}
        super().__init__(message, details)
        self.cause = cause


class CredentialError(HyokaiStorageError):
    """Raised when a stored credential cannot be encrypted or decrypted."""


class MigrationError(HyokaiStorageError):
    """Raised when a migration step fails after exhausting its retries."""

    def __init__(self, step: str, cause: Exception | None = None):
        details = {"step": step}
        if cause:
            details["cause"] = str(cause)
        message = f"Failed to migrate {step.replace('_', ' ')}"
        if cause:
            message += f": {cause}"
        super().__init__(message, details)
        self.step = step
        self.cause = cause


class MigrationStateError(HyokaiStorageError):
    """Raised on an invalid migration state transition."""

    def __init__(self, action: str, status: str):
        super().__init__(
            f"Cannot {action} while migration is {status}",
            {"action": action, "status": status},
        )
        self.action = action
        self.status = status


class ConfigurationError(HyokaiStorageError):
    """Raised when configuration is missing or invalid."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid configuration for {field}: {reason}", {"field": field})
        self.field = field
        self.reason = reason
