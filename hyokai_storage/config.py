"""
Configuration for Hyokai storage.

Settings come from a YAML file (default ``~/.hyokai/settings.yaml``)
with environment variables taking precedence:

```yaml
storage:
  path: ~/.hyokai/storage.json   # omit for in-memory storage
  quota_bytes: 5242880
account:
  backend: sqlite                # sqlite | rest
  sqlite_path: ~/.hyokai/account.db
  url: https://project.example.co
  api_key: public-anon-key
  timeout: 30
retry:
  max_retries: 3
  base_delay_ms: 500
  max_delay_ms: 5000
migration:
  success_display_delay: 2.0
logging:
  format: text                  # text | json
  level: WARNING
```

Environment: ``HYOKAI_CONFIG``, ``HYOKAI_STORAGE_PATH``,
``HYOKAI_QUOTA_BYTES``, ``HYOKAI_ACCOUNT_BACKEND``, ``HYOKAI_SQLITE_PATH``,
``HYOKAI_REMOTE_URL``, ``HYOKAI_REMOTE_API_KEY``, ``HYOKAI_REMOTE_TIMEOUT``,
``HYOKAI_MAX_RETRIES``, ``HYOKAI_BASE_DELAY_MS``, ``HYOKAI_MAX_DELAY_MS``,
``HYOKAI_LOG_FORMAT``, ``HYOKAI_LOG_LEVEL`` and ``PAT_ENCRYPTION_KEY``.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError
from .logging_utils import LOG_FORMATS, PACKAGE_LOGGER, configure_structured_logging
from .local.backend import DEFAULT_QUOTA_BYTES, FileBackend, KeyValueBackend, MemoryBackend
from .remote.base import AccountStore
from .remote.credentials import ENCRYPTION_KEY_ENV, CredentialCipher
from .remote.rest import RestAccountStore, RestAccountStoreConfig
from .remote.sqlite import SQLiteAccountStore, SQLiteAccountStoreConfig
from .retry import RetryOptions

DEFAULT_CONFIG_PATH = Path.home() / ".hyokai" / "settings.yaml"
ACCOUNT_BACKENDS = ("sqlite", "rest")


def _as_int(field: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(field, f"expected an integer, got {value!r}") from e


def _as_float(field: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(field, f"expected a number, got {value!r}") from e


@dataclass
class HyokaiConfig:
    """Resolved settings for one Hyokai storage instance."""

    storage_path: Path | None = None
    quota_bytes: int = DEFAULT_QUOTA_BYTES

    account_backend: str = "sqlite"
    sqlite_path: str = ":memory:"
    remote_url: str | None = None
    remote_api_key: str | None = None
    remote_timeout: float = 30.0
    encryption_key: str | None = None

    max_retries: int = 3
    base_delay_ms: int = 500
    max_delay_ms: int = 5000

    success_display_delay: float = 2.0

    log_format: str = "text"
    log_level: str = "WARNING"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HyokaiConfig:
        """Build from the nested settings layout shown in the module docstring."""
        storage = data.get("storage") or {}
        account = data.get("account") or {}
        retry = data.get("retry") or {}
        migration = data.get("migration") or {}
        log = data.get("logging") or {}
        defaults = cls()

        path = storage.get("path")
        return cls(
            storage_path=Path(path).expanduser() if path else None,
            quota_bytes=_as_int(
                "storage.quota_bytes", storage.get("quota_bytes", defaults.quota_bytes)
            ),
            account_backend=str(account.get("backend", defaults.account_backend)),
            sqlite_path=str(account.get("sqlite_path", defaults.sqlite_path)),
            remote_url=account.get("url"),
            remote_api_key=account.get("api_key"),
            remote_timeout=_as_float(
                "account.timeout", account.get("timeout", defaults.remote_timeout)
            ),
            encryption_key=account.get("encryption_key"),
            max_retries=_as_int(
                "retry.max_retries", retry.get("max_retries", defaults.max_retries)
            ),
            base_delay_ms=_as_int(
                "retry.base_delay_ms", retry.get("base_delay_ms", defaults.base_delay_ms)
            ),
            max_delay_ms=_as_int(
                "retry.max_delay_ms", retry.get("max_delay_ms", defaults.max_delay_ms)
            ),
            success_display_delay=_as_float(
                "migration.success_display_delay",
                migration.get("success_display_delay", defaults.success_display_delay),
            ),
            log_format=str(log.get("format", defaults.log_format)).lower(),
            log_level=str(log.get("level", defaults.log_level)).upper(),
        )

    @classmethod
    def from_file(cls, path: Path) -> HyokaiConfig:
        """Load settings from YAML. A missing file yields the defaults.

        Raises:
            ConfigurationError: If the file is not valid YAML or not a mapping
        """
        if not path.exists():
            return cls()
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(str(path), f"invalid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(str(path), "top level must be a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_environment(
        cls,
        base: HyokaiConfig | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> HyokaiConfig:
        """Overlay environment variables on ``base`` (defaults if None)."""
        env = os.environ if environ is None else environ
        config = dataclasses.replace(base) if base is not None else cls()

        if value := env.get("HYOKAI_STORAGE_PATH"):
            config.storage_path = Path(value).expanduser()
        if value := env.get("HYOKAI_QUOTA_BYTES"):
            config.quota_bytes = _as_int("HYOKAI_QUOTA_BYTES", value)
        if value := env.get("HYOKAI_ACCOUNT_BACKEND"):
            config.account_backend = value.lower()
        if value := env.get("HYOKAI_SQLITE_PATH"):
            config.sqlite_path = value
        if value := env.get("HYOKAI_REMOTE_URL"):
            config.remote_url = value
        if value := env.get("HYOKAI_REMOTE_API_KEY"):
            config.remote_api_key = value
        if value := env.get("HYOKAI_REMOTE_TIMEOUT"):
            config.remote_timeout = _as_float("HYOKAI_REMOTE_TIMEOUT", value)
        if value := env.get("HYOKAI_MAX_RETRIES"):
            config.max_retries = _as_int("HYOKAI_MAX_RETRIES", value)
        if value := env.get("HYOKAI_BASE_DELAY_MS"):
            config.base_delay_ms = _as_int("HYOKAI_BASE_DELAY_MS", value)
        if value := env.get("HYOKAI_MAX_DELAY_MS"):
            config.max_delay_ms = _as_int("HYOKAI_MAX_DELAY_MS", value)
        if value := env.get("HYOKAI_LOG_FORMAT"):
            config.log_format = value.lower()
        if value := env.get("HYOKAI_LOG_LEVEL"):
            config.log_level = value.upper()
        if value := env.get(ENCRYPTION_KEY_ENV):
            config.encryption_key = value
        return config

    @classmethod
    def load(
        cls,
        path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> HyokaiConfig:
        """Read the YAML file, then apply environment overrides, then validate."""
        env = os.environ if environ is None else environ
        if path is None:
            override = env.get("HYOKAI_CONFIG")
            path = Path(override).expanduser() if override else DEFAULT_CONFIG_PATH
        config = cls.from_environment(cls.from_file(path), env)
        config.validate()
        return config

    def validate(self) -> None:
        """Raises ConfigurationError for inconsistent settings."""
        if self.account_backend not in ACCOUNT_BACKENDS:
            raise ConfigurationError(
                "account.backend", f"must be one of {', '.join(ACCOUNT_BACKENDS)}"
            )
        if self.account_backend == "rest":
            if not self.remote_url:
                raise ConfigurationError("account.url", "required for the rest backend")
            if not self.remote_api_key:
                raise ConfigurationError("account.api_key", "required for the rest backend")
        if self.quota_bytes <= 0:
            raise ConfigurationError("storage.quota_bytes", "must be positive")
        if self.max_retries < 0:
            raise ConfigurationError("retry.max_retries", "must not be negative")
        if self.base_delay_ms < 0 or self.max_delay_ms < self.base_delay_ms:
            raise ConfigurationError("retry.max_delay_ms", "must be at least base_delay_ms")
        if self.log_format not in LOG_FORMATS:
            raise ConfigurationError(
                "logging.format", f"must be one of {', '.join(LOG_FORMATS)}"
            )
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ConfigurationError("logging.level", f"unknown level {self.log_level!r}")

    def configure_logging(self) -> None:
        """Install the JSON handler on the package logger when ``log_format`` is json."""
        if self.log_format == "json":
            configure_structured_logging(self.log_level, PACKAGE_LOGGER)

    def retry_options(self) -> RetryOptions:
        return RetryOptions(
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
        )

    def create_backend(self) -> KeyValueBackend:
        """File backend when a storage path is set, in-memory otherwise."""
        if self.storage_path is not None:
            return FileBackend(self.storage_path, quota_bytes=self.quota_bytes)
        return MemoryBackend(quota_bytes=self.quota_bytes)

    def create_cipher(self) -> CredentialCipher | None:
        return CredentialCipher(self.encryption_key) if self.encryption_key else None

    async def create_account_store(self, access_token: str | None = None) -> AccountStore:
        """Create and initialize the configured account store."""
        if self.account_backend == "rest":
            if not self.remote_url or not self.remote_api_key:
                raise ConfigurationError(
                    "account.url", "url and api_key are required for the rest backend"
                )
            return RestAccountStore(
                RestAccountStoreConfig(
                    base_url=self.remote_url,
                    api_key=self.remote_api_key,
                    timeout=self.remote_timeout,
                ),
                access_token=access_token,
            )
        return await SQLiteAccountStore.create(
            SQLiteAccountStoreConfig(db_path=self.sqlite_path),
            cipher=self.create_cipher(),
        )
