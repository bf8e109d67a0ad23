"""Week grids for the room overview and the availability editor.

``render_calendar`` lays a week out as ``grid[row][day][lane]`` where rows are
the hours of the day between the earliest and the latest available hour of the
week, days run Monday (0) to Sunday (6) and there is one lane per concurrent
booking the room allows. Free lanes are run-length encoded: the first lane of
a run of ``n`` free lanes reads ``"available n"`` and the rest of the run is
``None``. A booking shows its record in the cell of its first hour and
``"appointment_blocked"`` in its lane for every later hour.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from common.errors import IntegrityViolation

from .intervals import hour_cells

UNAVAILABLE = "unavailable"
APPOINTMENT_BLOCKED = "appointment_blocked"
DAYS_PER_WEEK = 7
HOURS_PER_DAY = 24

Cell = Tuple[int, int]


def week_bounds(moment: datetime | date) -> Tuple[datetime, datetime]:
    """Monday 00:00 of the ISO week containing ``moment`` and the following Monday."""
    day = moment.date() if isinstance(moment, datetime) else moment
    monday = datetime.combine(day - timedelta(days=day.weekday()), time.min)
    return monday, monday + timedelta(days=DAYS_PER_WEEK)


def _cells_in_week(start: datetime, end: datetime, week_start: datetime) -> List[Cell]:
    week_end = week_start + timedelta(days=DAYS_PER_WEEK)
    clipped_start, clipped_end = max(start, week_start), min(end, week_end)
    if clipped_start >= clipped_end:
        return []
    cells = []
    for cell_start in hour_cells(clipped_start, clipped_end):
        offset = cell_start - week_start
        cells.append((offset.days, offset.seconds // 3600))
    return cells


def _open_cells(week_start: datetime, available: Sequence, unavailable: Sequence) -> Set[Cell]:
    opened: Set[Cell] = set()
    for window in available:
        opened.update(_cells_in_week(window.start, window.end, week_start))
    for window in unavailable:
        opened.difference_update(_cells_in_week(window.start, window.end, week_start))
    return opened


def _encode_lanes(lanes: List[Any]) -> List[Any]:
    encoded: List[Any] = []
    index = 0
    while index < len(lanes):
        if lanes[index] is not None:
            encoded.append(lanes[index])
            index += 1
            continue
        run_end = index
        while run_end < len(lanes) and lanes[run_end] is None:
            run_end += 1
        encoded.append(f"available {run_end - index}")
        encoded.extend([None] * (run_end - index - 1))
        index = run_end
    return encoded


def render_calendar(
    max_concurrent: int,
    week_start: datetime,
    available: Sequence,
    unavailable: Sequence,
    appointments: Sequence,
    serialize: Callable[[Any], Any] = lambda appointment: appointment,
) -> Tuple[List[List[List[Any]]], int]:
    """Return ``(grid, min_hour)`` for the week starting at ``week_start``.

    Raises ``IntegrityViolation`` when more bookings overlap than the room has
    lanes, which the conflict checks are supposed to make impossible.
    """
    opened = _open_cells(week_start, available, unavailable)
    if not opened:
        return [], 0

    min_hour = min(hour for _, hour in opened)
    max_hour = max(hour for _, hour in opened)
    lanes: Dict[Cell, List[Any]] = {cell: [None] * max_concurrent for cell in opened}

    for appointment in sorted(appointments, key=lambda a: (a.start, a.start - a.end)):
        cells = _cells_in_week(appointment.start, appointment.end, week_start)
        if not cells or any(cell not in lanes for cell in cells):
            continue
        lane = next(
            (i for i in range(max_concurrent) if all(lanes[cell][i] is None for cell in cells)),
            None,
        )
        if lane is None:
            raise IntegrityViolation(
                f"Appointment {appointment.id} exceeds max concurrent bookings ({max_concurrent})"
            )
        first, *rest = cells
        lanes[first][lane] = serialize(appointment)
        for cell in rest:
            lanes[cell][lane] = APPOINTMENT_BLOCKED

    closed = [UNAVAILABLE] + [None] * (max_concurrent - 1)
    grid = []
    for hour in range(min_hour, max_hour + 1):
        row = []
        for day in range(DAYS_PER_WEEK):
            cell_lanes = lanes.get((day, hour))
            row.append(_encode_lanes(cell_lanes) if cell_lanes is not None else list(closed))
        grid.append(row)
    return grid, min_hour


def render_availability_calendar(
    week_start: datetime, available: Sequence, unavailable: Sequence
) -> List[List[Optional[str]]]:
    """24 x 7 grid naming the available or unavailable timeslot behind every hour."""
    grid: List[List[Optional[str]]] = [[None] * DAYS_PER_WEEK for _ in range(HOURS_PER_DAY)]
    for label, windows in (("available", available), (UNAVAILABLE, unavailable)):
        for window in windows:
            for day, hour in _cells_in_week(window.start, window.end, week_start):
                grid[hour][day] = f"{label} {window.id}"
    return grid
