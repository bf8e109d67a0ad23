"""Cached weekly views of a room's timeslots."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from common.cache import SimpleTTLCache, cache_key
from common.config import get_settings
from common.models import TimeSlotType
from common.schemas import AppointmentRead

from . import repository
from .calendar import render_availability_calendar, render_calendar, week_bounds
from .intervals import is_active_booking

_calendar_cache: Optional[SimpleTTLCache[Dict[str, Any]]] = None


def calendar_cache() -> SimpleTTLCache[Dict[str, Any]]:
    global _calendar_cache
    if _calendar_cache is None:
        _calendar_cache = SimpleTTLCache(ttl=get_settings().calendar_cache_ttl)
    return _calendar_cache


def reset_calendar_cache() -> None:
    global _calendar_cache
    _calendar_cache = None


def _week_intervals(db: Session, room_id: int, week_start: datetime, week_end: datetime):
    return repository.split_by_type(repository.room_intervals(db, room_id, week_start, week_end))


def room_calendar(db: Session, room_id: int, moment: datetime) -> Dict[str, Any]:
    room = repository.get_room(db, room_id)
    week_start, week_end = week_bounds(moment)

    def build() -> Dict[str, Any]:
        available, unavailable, booked = _week_intervals(db, room.id, week_start, week_end)
        appointments = [b for b in booked if is_active_booking(b)]
        latest = repository.max_starts(db, [a.series_id for a in appointments])

        def serialize(appointment) -> Dict[str, Any]:
            read = AppointmentRead.model_validate(appointment)
            read.max_start = latest.get(appointment.series_id)
            return read.model_dump(mode="json")

        grid, min_hour = render_calendar(
            room.max_concurrent_bookings, week_start, available, unavailable, appointments, serialize
        )
        return {"calendar": grid, "min_timeslot": min_hour}

    key = cache_key("calendar", room.id, room.created_at.isoformat(), week_start.date().isoformat(), room.revision)
    return calendar_cache().get_or_set(key, build)


def availability_calendar(db: Session, room_id: int, moment: datetime) -> List[List[Optional[str]]]:
    room = repository.get_room(db, room_id)
    week_start, week_end = week_bounds(moment)

    def build() -> List[List[Optional[str]]]:
        slots = repository.room_intervals(
            db, room.id, week_start, week_end, types=[TimeSlotType.AVAILABLE, TimeSlotType.UNAVAILABLE]
        )
        available, unavailable, _ = repository.split_by_type(slots)
        return render_availability_calendar(week_start, available, unavailable)

    key = cache_key("availability", room.id, room.created_at.isoformat(), week_start.date().isoformat(), room.revision)
    return calendar_cache().get_or_set(key, build)
