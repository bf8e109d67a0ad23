"""Unit tests for coalescing same-type intervals."""
from datetime import datetime, timedelta

from common.models import TimeSlotType
from scheduling.merging import plan_merge


def h(hour: int) -> datetime:
    return datetime(2030, 1, 7) + timedelta(hours=hour)


class Slot:
    def __init__(self, id, start, end, type=TimeSlotType.AVAILABLE, series_id=None):
        self.id = id
        self.start = start
        self.end = end
        self.type = type
        self.series_id = series_id


class TestPlanMerge:
    """Merge planning over neighbouring intervals."""

    def test_chained_neighbours_merge_into_one(self):
        middle = Slot("b", h(4), h(8))
        candidates = [Slot("a", h(0), h(4)), middle, Slot("c", h(8), h(12))]

        plan = plan_merge(middle, TimeSlotType.AVAILABLE, candidates)

        assert (plan.start, plan.end) == (h(0), h(12))
        assert sorted(s.id for s in plan.absorbed) == ["a", "c"]

    def test_chain_found_from_the_edge(self):
        first = Slot("a", h(0), h(4))
        candidates = [first, Slot("c", h(8), h(12)), Slot("b", h(4), h(8))]

        plan = plan_merge(first, TimeSlotType.AVAILABLE, candidates)

        assert (plan.start, plan.end) == (h(0), h(12))

    def test_merge_is_idempotent(self):
        merged = Slot("a", h(0), h(12))

        plan = plan_merge(merged, TimeSlotType.AVAILABLE, [merged])

        assert not plan.changed
        assert (plan.start, plan.end) == (h(0), h(12))

    def test_overlapping_neighbour_is_absorbed(self):
        target = Slot("a", h(0), h(6))

        plan = plan_merge(target, TimeSlotType.AVAILABLE, [Slot("b", h(4), h(10))])

        assert (plan.start, plan.end) == (h(0), h(10))

    def test_other_types_are_ignored(self):
        target = Slot("a", h(0), h(4))

        plan = plan_merge(target, TimeSlotType.AVAILABLE, [Slot("b", h(4), h(8), TimeSlotType.UNAVAILABLE)])

        assert not plan.changed

    def test_gaps_are_kept(self):
        target = Slot("a", h(0), h(4))

        plan = plan_merge(target, TimeSlotType.AVAILABLE, [Slot("b", h(5), h(8))])

        assert not plan.changed

    def test_series_siblings_stay_separate(self):
        target = Slot("a", h(0), h(4), series_id="s1")
        candidates = [Slot("b", h(4), h(8), series_id="s1"), Slot("c", h(-4), h(0))]

        plan = plan_merge(target, TimeSlotType.AVAILABLE, candidates, exclude_series_id="s1")

        assert [s.id for s in plan.absorbed] == ["c"]

    def test_bookings_never_merge(self):
        target = Slot("a", h(0), h(4), TimeSlotType.BOOKED)

        plan = plan_merge(target, TimeSlotType.BOOKED, [Slot("b", h(4), h(8), TimeSlotType.BOOKED)])

        assert not plan.changed
