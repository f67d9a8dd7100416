"""Shared time and duration helpers.

Timestamps are handled as timezone-aware UTC datetimes everywhere. Naive
datetimes read back from storage are assumed to already be UTC.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware).

    Returns:
        A timezone-aware datetime object representing the current time in UTC.

    Example:
        >>> from mailbox_janitor.core.utils import utc_now
        >>> now = utc_now()
        >>> now.tzinfo is not None
        True
    """
    return datetime.now(timezone.utc)


def to_aware_utc(dt: datetime) -> datetime:
    """Convert any datetime to timezone-aware UTC.

    - If naive: assumes UTC and attaches tzinfo
    - If timezone-aware: converts to UTC

    Args:
        dt: A datetime object (naive or aware).

    Returns:
        A timezone-aware datetime in UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Serialize a datetime as ISO-8601 UTC with an explicit offset.

    Example:
        >>> format_timestamp(datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))
        '2024-01-15T10:30:00.000000+00:00'
    """
    return to_aware_utc(dt).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    """Parse a timestamp written by format_timestamp (or any ISO-8601 form).

    A trailing ``Z`` is accepted as UTC.

    Raises:
        ValueError: If the value is not a valid ISO-8601 timestamp.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return to_aware_utc(datetime.fromisoformat(text))


_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_MAX_DURATION_SECONDS = timedelta.max.total_seconds()


def parse_duration(value: str | int | float | timedelta) -> timedelta:
    """Parse a duration such as ``5m``, ``1h30m``, ``500ms`` or ``90``.

    Units are ns, us (or µs), ms, s, m and h, and may be chained. A bare
    number is read as seconds.

    Raises:
        ValueError: If the value cannot be parsed, is negative, or is not a
            finite duration that fits in a timedelta.
    """
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, (int, float)):
        try:
            seconds = float(value)
        except OverflowError:
            raise ValueError(f"duration out of range: {value!r}") from None
    else:
        text = value.strip()
        if not text:
            raise ValueError("empty duration")
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for match in _DURATION_PART.finditer(text):
                if match.start() != pos:
                    raise ValueError(f"invalid duration: {value!r}") from None
                seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                pos = match.end()
            if pos != len(text):
                raise ValueError(f"invalid duration: {value!r}") from None
    if math.isnan(seconds):
        raise ValueError(f"invalid duration: {value!r}")
    if seconds < 0:
        raise ValueError(f"duration must not be negative: {value!r}")
    if seconds >= _MAX_DURATION_SECONDS:
        raise ValueError(f"duration out of range: {value!r}")
    return timedelta(seconds=seconds)
