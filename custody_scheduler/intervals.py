"""
Half-open time intervals.

An activity occupies [start, end): one ending exactly when another starts
does not overlap it.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from custody_scheduler.exceptions import InvalidIntervalError


def to_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Return True when [a_start, a_end) and [b_start, b_end) share any instant."""
    return a_start < b_end and b_start < a_end


def validate_interval(start: datetime, end: datetime) -> "Interval":
    """
    Build a UTC interval, rejecting empty or inverted ranges.

    Raises:
        InvalidIntervalError: If start >= end
    """
    start, end = to_utc(start), to_utc(end)
    if start >= end:
        raise InvalidIntervalError(start, end)
    return Interval(start, end)


@dataclass(frozen=True)
class Interval:
    """Represents a half-open [start, end) time range."""

    start: datetime
    end: datetime

    def overlaps(self, other: "Interval") -> bool:
        return overlaps(self.start, self.end, other.start, other.end)

    def contains(self, other: "Interval") -> bool:
        """True when other lies entirely within this interval."""
        return self.start <= other.start and other.end <= self.end

    @property
    def duration_minutes(self) -> int:
        """Calculate interval duration in minutes."""
        delta = self.end - self.start
        return int(delta.total_seconds() / 60)
