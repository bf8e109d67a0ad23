"""Recurrence arithmetic and series aggregates."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from dateutil.relativedelta import relativedelta

from common.errors import ValidationError
from common.models import TimeSlotRecurrence

from .intervals import Span

_STEPS = {
    TimeSlotRecurrence.DAILY: relativedelta(days=1),
    TimeSlotRecurrence.WEEKLY: relativedelta(weeks=1),
    TimeSlotRecurrence.MONTHLY: relativedelta(months=1),
    TimeSlotRecurrence.YEARLY: relativedelta(years=1),
}


def shift(value: datetime, recurrence: TimeSlotRecurrence, steps: int) -> datetime:
    """Move ``value`` by ``steps`` recurrence units, counted from the template.

    Months and years are calendar units: Jan 31 + 1 month is Feb 28/29 and
    Jan 31 + 2 months is Mar 31, not Mar 28.
    """
    step = _STEPS[recurrence]
    return value + step * steps


def expand_series(start: datetime, end: datetime, recurrence: TimeSlotRecurrence, amount: int) -> List[Span]:
    if recurrence not in _STEPS:
        raise ValueError(f"Recurrence {recurrence!r} does not repeat")
    try:
        return [Span(shift(start, recurrence, i), shift(end, recurrence, i)) for i in range(amount)]
    except (ValueError, OverflowError) as exc:
        raise ValidationError("Series exceeds the supported date range.") from exc


def live_members(members: Iterable) -> list:
    return [m for m in members if m.deleted_at is None]


def select_anchor(members: Sequence) -> Optional[object]:
    """Chronologically first member that still follows the series."""
    candidates = [m for m in live_members(members) if not m.is_dirty]
    if not candidates:
        return None
    return min(candidates, key=lambda m: m.start)


def max_start(slot, members: Sequence) -> Optional[datetime]:
    """Latest start among the non-dirty members of ``slot``'s series."""
    if slot.series_id is None:
        return None
    starts = [m.start for m in live_members(members) if m.series_id == slot.series_id and not m.is_dirty]
    return max(starts) if starts else None
