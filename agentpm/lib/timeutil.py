"""
Timestamp helpers.

All services take a clock instead of reading the system time directly, so
tests can pin time with a lambda.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]

TIME_FORMAT_HINT = "use ISO 8601 format like 2025-08-16T15:30:00Z"


def system_clock() -> datetime:
    """Current UTC time, truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def fixed_clock(moment: datetime) -> Clock:
    """Clock that always returns the same instant."""
    return lambda: moment


def format_timestamp(value: datetime) -> str:
    """Format as RFC 3339, with a trailing Z for UTC values."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    if value.utcoffset() == timedelta(0):
        return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return value.isoformat(timespec="seconds")


def parse_timestamp(text: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp. Returns None for empty or unparseable input."""
    if not text:
        return None
    value = text.strip()
    if value.endswith("Z") or value.endswith("z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_time_override(text: str) -> datetime:
    """Parse a user-supplied --time value.

    Raises:
        ValueError: If the value is not a valid timestamp
    """
    parsed = parse_timestamp(text)
    if parsed is None:
        raise ValueError(f"invalid time format: {text} ({TIME_FORMAT_HINT})")
    return parsed
