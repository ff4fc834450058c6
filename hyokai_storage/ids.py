"""ID generation utilities.

Centralizes the ID formats so callers never build IDs by hand.

History IDs:        {epoch_ms}-{suffix7}
Simple history IDs: simple-{epoch_ms}-{suffix7}
Repo IDs:           repo_{epoch_ms}_{suffix6}
Session IDs:        anon_{epoch_ms base36}_{suffix13}

The random base36 suffix keeps IDs distinct for appends that land in
the same millisecond.
"""

from __future__ import annotations

import secrets
import string
import time

_BASE36 = string.digits + string.ascii_lowercase


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def random_suffix(length: int = 7) -> str:
    """Random base36 string of ``length`` characters."""
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def generate_id(prefix: str | None = None) -> str:
    """Generate a unique ledger entry ID."""
    base = f"{now_ms()}-{random_suffix()}"
    return f"{prefix}-{base}" if prefix else base


def generate_repo_id() -> str:
    """Generate an ID for a locally connected repository."""
    return f"repo_{now_ms()}_{random_suffix(6)}"


def _to_base36(value: int) -> str:
    digits = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
        if value == 0:
            return "".join(reversed(digits))


def generate_session_id() -> str:
    """Generate an anonymous usage session ID."""
    return f"anon_{_to_base36(now_ms())}_{random_suffix(13)}"
