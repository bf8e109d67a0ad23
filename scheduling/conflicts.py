"""Conflict detection between a candidate interval and a room's existing intervals.

The checks are pure: callers load the room's available, unavailable and
booked intervals around the candidate and pass them in. Rules:

* an unavailable candidate may not overlap an active booking unless forced;
  a forced block leaves the booking in place;
* a booked candidate must be covered by the union of available windows, may
  not overlap an unavailable window and may not push the number of
  simultaneously active bookings above the room's limit;
* an available candidate never conflicts.

All overlap tests are half-open, so intervals that only touch never collide.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Sequence

from common.errors import ConflictError
from common.models import TimeSlotType

from .intervals import IntervalLike, covered_by_union, is_active_booking, overlaps


class ConflictReason(str, Enum):
    NONE = "none"
    OUTSIDE_AVAILABLE = "outside_available"
    INSIDE_UNAVAILABLE = "inside_unavailable"
    TOO_MANY_CONCURRENT = "too_many_concurrent"


UNAVAILABLE_OVER_BOOKING = "Creation of unavailable timeslot conflicts with existing appointments."
BOOKING_OUTSIDE_AVAILABLE = "Appointment conflicts with available timeslot"
BOOKING_INSIDE_UNAVAILABLE = "Appointment conflicts with unavailable timeslot"
TOO_MANY_CONCURRENT = "Too many concurrent bookings"


@dataclass
class ConflictResult:
    reason: ConflictReason = ConflictReason.NONE
    message: str = ""
    conflicting_ids: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.reason == ConflictReason.NONE


def peak_concurrency(window: IntervalLike, bookings: Iterable[IntervalLike]) -> int:
    """Highest number of bookings active at one instant inside ``window``."""
    events: List[tuple[datetime, int]] = []
    for booking in bookings:
        if not overlaps(window, booking):
            continue
        events.append((max(booking.start, window.start), 1))
        events.append((min(booking.end, window.end), -1))
    # ends sort before starts at the same instant: half-open ranges
    events.sort(key=lambda event: (event[0], event[1]))
    active = peak = 0
    for _, delta in events:
        active += delta
        peak = max(peak, active)
    return peak


def check_conflict(
    max_concurrent: int,
    candidate: IntervalLike,
    candidate_type: TimeSlotType,
    available: Sequence[IntervalLike],
    unavailable: Sequence[IntervalLike],
    booked: Sequence,
    force: bool = False,
) -> ConflictResult:
    active_bookings = [b for b in booked if is_active_booking(b)]

    if candidate_type == TimeSlotType.UNAVAILABLE:
        hits = [b for b in active_bookings if overlaps(candidate, b)]
        if hits and not force:
            return ConflictResult(ConflictReason.INSIDE_UNAVAILABLE, UNAVAILABLE_OVER_BOOKING, [b.id for b in hits])
        return ConflictResult()

    if candidate_type != TimeSlotType.BOOKED:
        return ConflictResult()

    if not covered_by_union(candidate, [w for w in available if overlaps(candidate, w)]):
        return ConflictResult(ConflictReason.OUTSIDE_AVAILABLE, BOOKING_OUTSIDE_AVAILABLE)

    blocks = [u for u in unavailable if overlaps(candidate, u)]
    if blocks:
        return ConflictResult(ConflictReason.INSIDE_UNAVAILABLE, BOOKING_INSIDE_UNAVAILABLE, [u.id for u in blocks])

    concurrent = [b for b in active_bookings if overlaps(candidate, b)]
    if peak_concurrency(candidate, concurrent) + 1 > max_concurrent:
        return ConflictResult(ConflictReason.TOO_MANY_CONCURRENT, TOO_MANY_CONCURRENT, [b.id for b in concurrent])

    return ConflictResult()


def raise_for_conflict(result: ConflictResult) -> None:
    if not result.ok:
        raise ConflictError(result.message, result.reason.value)


def dependent_bookings(window: IntervalLike, booked: Sequence) -> list:
    """Active bookings that rely on an available ``window``."""
    return [b for b in booked if is_active_booking(b) and overlaps(window, b)]
