"""Database access for rooms and their intervals."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from common.errors import NotFoundError
from common.models import Room, TimeSlot, TimeSlotType

from .intervals import IntervalLike


def get_room(db: Session, room_id: int) -> Room:
    room = db.query(Room).filter(Room.id == room_id).first()
    if room is None:
        raise NotFoundError("Room not found.")
    return room


def get_timeslot(db: Session, room_id: int, timeslot_id: str) -> TimeSlot:
    slot = (
        db.query(TimeSlot)
        .filter(TimeSlot.id == timeslot_id, TimeSlot.deleted_at.is_(None))
        .first()
    )
    if slot is None or slot.room_id != room_id:
        raise NotFoundError("Timeslot not found.")
    return slot


def get_appointment(db: Session, appointment_id: str) -> TimeSlot:
    appointment = (
        db.query(TimeSlot)
        .filter(
            TimeSlot.id == appointment_id,
            TimeSlot.type == TimeSlotType.BOOKED,
            TimeSlot.deleted_at.is_(None),
        )
        .first()
    )
    if appointment is None:
        raise NotFoundError("Appointment not found.")
    return appointment


def room_intervals(
    db: Session,
    room_id: int,
    start: datetime,
    end: datetime,
    types: Optional[Iterable[TimeSlotType]] = None,
    inclusive: bool = False,
) -> List[TimeSlot]:
    """Live intervals of a room overlapping ``[start, end)``.

    With ``inclusive`` intervals that only touch the range are returned too,
    which is what merging needs.
    """
    query = db.query(TimeSlot).filter(TimeSlot.room_id == room_id, TimeSlot.deleted_at.is_(None))
    if inclusive:
        query = query.filter(TimeSlot.start <= end, TimeSlot.end >= start)
    else:
        query = query.filter(TimeSlot.start < end, TimeSlot.end > start)
    if types is not None:
        query = query.filter(TimeSlot.type.in_(list(types)))
    return query.order_by(TimeSlot.start.asc(), TimeSlot.end.desc()).all()


def split_by_type(slots: Sequence[TimeSlot]) -> Tuple[List[TimeSlot], List[TimeSlot], List[TimeSlot]]:
    available = [s for s in slots if s.type == TimeSlotType.AVAILABLE]
    unavailable = [s for s in slots if s.type == TimeSlotType.UNAVAILABLE]
    booked = [s for s in slots if s.type == TimeSlotType.BOOKED]
    return available, unavailable, booked


def conflict_context(
    db: Session, room_id: int, span: IntervalLike, exclude_ids: Iterable[str] = ()
) -> Tuple[List[TimeSlot], List[TimeSlot], List[TimeSlot]]:
    excluded = set(exclude_ids)
    slots = [s for s in room_intervals(db, room_id, span.start, span.end) if s.id not in excluded]
    return split_by_type(slots)


def series_members(
    db: Session, series_id: str, room_id: Optional[int] = None, with_deleted: bool = False
) -> List[TimeSlot]:
    query = db.query(TimeSlot).filter(TimeSlot.series_id == series_id)
    if room_id is not None:
        query = query.filter(TimeSlot.room_id == room_id)
    if not with_deleted:
        query = query.filter(TimeSlot.deleted_at.is_(None))
    return query.order_by(TimeSlot.start.asc()).all()


def max_starts(db: Session, series_ids: Iterable[Optional[str]]) -> Dict[str, datetime]:
    """Latest start of the non-dirty, live members of each series."""
    wanted = {series_id for series_id in series_ids if series_id}
    if not wanted:
        return {}
    rows = (
        db.query(TimeSlot.series_id, func.max(TimeSlot.start))
        .filter(
            TimeSlot.series_id.in_(wanted),
            TimeSlot.is_dirty.is_(False),
            TimeSlot.deleted_at.is_(None),
        )
        .group_by(TimeSlot.series_id)
        .all()
    )
    return {series_id: latest for series_id, latest in rows}


def page(query, offset: int, limit: int):
    """Return ``(total, rows)``; a limit of 0 means no limit."""
    total = query.order_by(None).count()
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    return total, query.all()


def apply_series_spans(
    db: Session,
    replaced: Sequence[TimeSlot],
    spans: Sequence[IntervalLike],
    template: Dict,
) -> List[TimeSlot]:
    """Lay ``spans`` onto the replaced members of a series.

    Live members are reused in chronological order so their ids survive;
    missing members are created from ``template`` and surplus ones (soft
    deleted members included) are removed.
    """
    reusable = sorted((m for m in replaced if m.deleted_at is None), key=lambda m: m.start)
    retired = [m for m in replaced if m.deleted_at is not None]
    result: List[TimeSlot] = []
    for index, span in enumerate(spans):
        if index < len(reusable):
            slot = reusable[index]
            for key, value in template.items():
                setattr(slot, key, value)
        else:
            slot = TimeSlot(**template)
            db.add(slot)
        slot.start, slot.end = span.start, span.end
        result.append(slot)
    for surplus in reusable[len(spans):] + retired:
        db.delete(surplus)
    db.flush()
    return result
