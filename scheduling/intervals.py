"""Half-open time intervals and instant parsing."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, Protocol

from common.models import ConfirmationStatus, TimeSlotType

HOUR = timedelta(hours=1)


class IntervalLike(Protocol):
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Span:
    """A ``[start, end)`` range that is not (yet) persisted."""

    start: datetime
    end: datetime
    type: TimeSlotType = TimeSlotType.AVAILABLE

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def overlaps(a: IntervalLike, b: IntervalLike) -> bool:
    """Half-open overlap: touching at a boundary is not an overlap."""
    return a.start < b.end and b.start < a.end


def touches(a: IntervalLike, b: IntervalLike) -> bool:
    return a.end == b.start or b.end == a.start


def covers(outer: IntervalLike, inner: IntervalLike) -> bool:
    return outer.start <= inner.start and inner.end <= outer.end


def covered_by_union(candidate: IntervalLike, windows: Iterable[IntervalLike]) -> bool:
    """True when the windows together cover ``candidate`` without a gap."""
    cursor = candidate.start
    for window in sorted(windows, key=lambda w: w.start):
        if window.start > cursor:
            break
        if window.end > cursor:
            cursor = window.end
        if cursor >= candidate.end:
            return True
    return cursor >= candidate.end


def is_active_booking(slot: Any) -> bool:
    """Booked slots count towards occupancy unless denied or soft-deleted."""
    return (
        slot.type == TimeSlotType.BOOKED
        and slot.confirmation_status != ConfirmationStatus.DENIED
        and getattr(slot, "deleted_at", None) is None
    )


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 string (or datetime) into naive UTC, or None when malformed."""
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str) or not value:
        return None
    try:
        return to_naive_utc(datetime.fromisoformat(value))
    except ValueError:
        return None


def is_full_hour(value: datetime) -> bool:
    return value.minute == 0 and value.second == 0 and value.microsecond == 0


def hour_floor(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)


def hour_cells(start: datetime, end: datetime) -> List[datetime]:
    """Start instants of every whole hour touched by ``[start, end)``."""
    cells = []
    cursor = hour_floor(start)
    while cursor < end:
        cells.append(cursor)
        cursor += HOUR
    return cells


def from_epoch(seconds: Optional[float]) -> datetime:
    """Naive UTC instant for epoch ``seconds``; now when omitted."""
    if seconds is None:
        return datetime.now(timezone.utc).replace(tzinfo=None)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
