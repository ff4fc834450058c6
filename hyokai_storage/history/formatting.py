"""Display helpers for history panels."""

from __future__ import annotations

from datetime import datetime

from ..ids import now_ms

_MINUTE = 60 * 1000
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR
_WEEK = 7 * _DAY


def format_timestamp(timestamp: int, now: int | None = None) -> str:
    """Relative time for recent entries, short date otherwise.

    Args:
        timestamp: Entry time in epoch milliseconds
        now: Reference time in epoch milliseconds (defaults to the clock)
    """
    now = now_ms() if now is None else now
    diff = now - timestamp

    if diff < _MINUTE:
        return "Just now"
    if diff < _HOUR:
        return f"{diff // _MINUTE}m ago"
    if diff < _DAY:
        return f"{diff // _HOUR}h ago"
    if diff < _WEEK:
        return f"{diff // _DAY}d ago"

    date = datetime.fromtimestamp(timestamp / 1000)
    label = f"{date:%b} {date.day}"
    if date.year != datetime.fromtimestamp(now / 1000).year:
        label += f", {date.year}"
    return label


def truncate_text(text: str, max_length: int = 100) -> str:
    """Shorten ``text`` for previews, marking the cut with an ellipsis."""
    if len(text) <= max_length:
        return text
    return text[:max_length].strip() + "..."
