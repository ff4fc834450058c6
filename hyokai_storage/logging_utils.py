"""
Structured JSON logging for the storage layer.

Setting ``logging.format: json`` in the settings file switches the
``hyokai_storage`` loggers to one JSON object per line. Context passed
through ``extra`` (key, user_id, step, attempt) becomes top-level fields.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import IO, Any

PACKAGE_LOGGER = "hyokai_storage"
LOG_FORMATS = ("text", "json")

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class StructuredJsonFormatter(logging.Formatter):
    """Render a record as ``{"timestamp", "level", "logger", "message", ...extra}``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for name, value in vars(record).items():
            if name in _RECORD_ATTRS or name.startswith("_"):
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            entry[name] = value

        return json.dumps(entry, ensure_ascii=False)


def configure_structured_logging(
    level: int | str = logging.INFO,
    logger_name: str = PACKAGE_LOGGER,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """
    Route ``logger_name`` through a single JSON handler.

    Args:
        level: Logging level for the configured logger
        logger_name: Logger to configure (default: the package logger)
        stream: Output stream (default: stdout)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)

    # Calling twice must not duplicate output
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_storage_logger(name: str) -> logging.Logger:
    """Logger named ``hyokai_storage.{name}``."""
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


class StorageLoggerAdapter(logging.LoggerAdapter):
    """
    Attaches fixed context (the migrating user_id) to every record.

    Per-call ``extra`` is merged with, not replaced by, the adapter's context.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs
