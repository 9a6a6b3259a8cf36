"""
Wall-clock sources and timestamp helpers.

Signals carry an ISO-8601 timestamp with a timezone offset, captured when the
Signal is recorded. The reducer never reads the clock: durations are computed
from the timestamps already stored in the log.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


class SystemClock:
    """Local wall clock with the host's UTC offset."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).astimezone()


class ManualClock:
    """
    Clock that only moves when told to.

    Used by tests and by tooling that re-stamps imported logs.
    """

    def __init__(self, start: Optional[datetime] = None) -> None:
        start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, ms: int = 1) -> datetime:
        """Move the clock forward by ms milliseconds and return the new time."""
        self.current = self.current + timedelta(milliseconds=ms)
        return self.current


def format_timestamp(dt: datetime) -> str:
    """RFC 3339 string with millisecond precision and explicit offset."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat(timespec="milliseconds")


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a stored timestamp.

    Accepts a trailing "Z" for UTC. Naive values are taken as UTC.
    Returns None for anything unparseable instead of raising.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def elapsed_ms(start, end) -> Optional[int]:
    """Milliseconds from start to end, or None if either is unparseable."""
    a = parse_timestamp(start)
    b = parse_timestamp(end)
    if a is None or b is None:
        return None
    delta = b - a
    return (delta.days * 86_400_000) + (delta.seconds * 1000) + (delta.microseconds // 1000)


def fmt_duration(ms: Optional[int]) -> str:
    """Human form of a duration: 850ms, 3.4s, 2m5s."""
    if ms is None:
        return "incomplete"
    if ms < 1_000:
        return f"{ms}ms"
    if ms < 60_000:
        return f"{ms / 1000:.1f}s"
    return f"{ms // 60_000}m{(ms % 60_000) // 1000}s"
