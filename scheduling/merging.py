"""Coalescing of touching or overlapping same-type intervals."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from common.models import TimeSlotType

from .intervals import IntervalLike, overlaps, touches


@dataclass
class MergePlan:
    start: datetime
    end: datetime
    absorbed: List = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.absorbed)


def plan_merge(
    target: IntervalLike,
    target_type: TimeSlotType,
    candidates: Sequence,
    exclude_series_id: Optional[str] = None,
) -> MergePlan:
    """Grow ``target`` over every same-type neighbour until nothing touches it.

    Candidates must already be scoped to the target's room. The target itself,
    siblings from ``exclude_series_id`` and other types are skipped. Booked
    intervals never merge.
    """
    plan = MergePlan(start=target.start, end=target.end)
    if target_type == TimeSlotType.BOOKED:
        return plan

    target_id = getattr(target, "id", None)
    pool = [
        c
        for c in candidates
        if c.type == target_type
        and getattr(c, "id", None) != target_id
        and not (exclude_series_id is not None and c.series_id == exclude_series_id)
    ]

    grew = True
    while grew:
        grew = False
        for candidate in list(pool):
            if overlaps(plan, candidate) or touches(plan, candidate):
                plan.start = min(plan.start, candidate.start)
                plan.end = max(plan.end, candidate.end)
                plan.absorbed.append(candidate)
                pool.remove(candidate)
                grew = True
    return plan
