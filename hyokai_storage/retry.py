"""Retry utilities for remote account store calls.

Provides a single retry executor with deterministic exponential backoff,
used by every remote write in preference sync, history mirroring and
migration, plus message-based classification of transient and auth
errors.

Each ``with_retry`` call has its own independent budget; there is no
circuit breaker. Wrapped operations must be safe to repeat (upserts).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from .exceptions import AuthError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_PATTERNS = (
    "timeout",
    "network",
    "connection",
    "econnreset",
    "econnrefused",
    "fetch failed",
    "failed to fetch",
    "502",
    "503",
    "504",
    "rate limit",
    "too many requests",
)

AUTH_PATTERNS = (
    "jwt",
    "token",
    "auth",
    "unauthorized",
    "401",
    "invalid claim",
    "expired",
    "not authenticated",
    "permission denied",
    "pgrst301",  # PostgREST auth error code
)


@dataclass
class RetryOptions:
    """Configuration for retry with exponential backoff."""

    max_retries: int = 3
    base_delay_ms: int = 500
    max_delay_ms: int = 5000
    # Observability hook: (attempt_number, error), attempt_number starts at 1
    on_retry: Callable[[int, Exception], None] | None = None
    # When set, errors it rejects are raised without retrying
    should_retry: Callable[[Exception], bool] | None = None

    def delay_ms(self, attempt: int) -> int:
        """Backoff before the retry following failure number ``attempt`` (0-based)."""
        return min(self.base_delay_ms * 2**attempt, self.max_delay_ms)


def _message(error: object) -> str | None:
    if not isinstance(error, BaseException):
        return None
    return str(error).lower()


def is_transient_error(error: object) -> bool:
    """Check if an error is likely transient and worth retrying."""
    message = _message(error)
    if message is None:
        return False
    return any(pattern in message for pattern in TRANSIENT_PATTERNS)


def is_auth_error(error: object) -> bool:
    """Check if an error is auth-related (never retried)."""
    if isinstance(error, AuthError):
        return True
    message = _message(error)
    if message is None:
        return False
    return any(pattern in message for pattern in AUTH_PATTERNS)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run an async operation, retrying failures with exponential backoff.

    Args:
        operation: Zero-argument async callable
        options: Retry configuration (defaults if None)
        sleep: Awaitable used for the backoff delay, in seconds

    Returns:
        Result of the operation

    Raises:
        AuthError: Immediately, for auth-related failures
        Exception: The last error once retries are exhausted, or a
            non-retryable error as classified by ``should_retry``
    """
    opts = options or RetryOptions()
    total = opts.max_retries + 1

    for attempt in range(total):
        try:
            result = await operation()
        except Exception as exc:
            if is_auth_error(exc):
                logger.error(
                    "RETRY_ABORTED: auth error on attempt=%d/%d: %s", attempt + 1, total, exc
                )
                if isinstance(exc, AuthError):
                    raise
                raise AuthError(str(exc), cause=exc) from exc

            if opts.should_retry is not None and not opts.should_retry(exc):
                logger.error(
                    "RETRY_SKIPPED: non-retryable error on attempt=%d/%d: %s",
                    attempt + 1,
                    total,
                    exc,
                )
                raise

            if attempt >= opts.max_retries:
                logger.error("RETRY_EXHAUSTED: attempt=%d/%d: %s", attempt + 1, total, exc)
                raise

            delay = opts.delay_ms(attempt)
            if opts.on_retry:
                opts.on_retry(attempt + 1, exc)
            logger.warning(
                "RETRYING: attempt=%d/%d delay=%dms: %s",
                attempt + 1,
                total,
                delay,
                exc,
            )
            await sleep(delay / 1000)
        else:
            if attempt > 0:
                logger.warning(
                    "RETRY_RECOVERED: succeeded on attempt %d/%d after %d retries",
                    attempt + 1,
                    total,
                    attempt,
                )
            return result

    # Unreachable, but satisfies type checker
    raise RuntimeError("with_retry exhausted without raising")  # pragma: no cover
