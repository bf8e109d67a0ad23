"""Room-scoped operations on available and unavailable timeslots."""
from __future__ import annotations

import logging
import uuid
from typing import List

from sqlalchemy.orm import Session

from common.errors import ConflictError, NotFoundError, ValidationError
from common.events import publish_event
from common.models import Room, TimeSlot, TimeSlotType
from common.schemas import TimeslotCreate, TimeslotSeriesUpdate, TimeslotUpdate

from . import repository
from .conflicts import check_conflict, dependent_bookings, raise_for_conflict
from .intervals import IntervalLike, Span, covered_by_union, overlaps
from .locking import room_transaction
from .merging import plan_merge
from .series import expand_series, select_anchor
from .validation import (
    validate_range,
    validate_series,
    validate_series_spacing,
    validate_single,
    validate_type,
)

logger = logging.getLogger("scheduling.timeslots")

DEPENDENT_BOOKINGS = "Cannot delete available timeslot because at least one booked appointment depends on it."
SHRINK_DEPENDENT_BOOKINGS = "Cannot shrink available timeslot because at least one booked appointment depends on it."


def _check(db: Session, room: Room, span: IntervalLike, slot_type: TimeSlotType, force: bool, exclude=()) -> List[str]:
    """Raise on conflict; return ids of bookings a forced block lands on."""
    available, unavailable, booked = repository.conflict_context(db, room.id, span, exclude)
    raise_for_conflict(
        check_conflict(room.max_concurrent_bookings, span, slot_type, available, unavailable, booked, force)
    )
    if force and slot_type == TimeSlotType.UNAVAILABLE:
        blocked = dependent_bookings(span, booked)
        if blocked:
            logger.info(
                "Forced unavailable timeslot %s - %s in room %s over %d appointment(s)",
                span.start, span.end, room.id, len(blocked),
            )
        return [b.id for b in blocked]
    return []


def _announce_blocked(room_id: int, appointment_ids: List[str]) -> None:
    if appointment_ids:
        publish_event("appointments_blocked", {"room_id": room_id, "appointment_ids": sorted(set(appointment_ids))})


def merge_into_neighbours(db: Session, room: Room, slot: TimeSlot) -> TimeSlot:
    """Absorb touching or overlapping same-type intervals into ``slot``."""
    while True:
        neighbours = repository.room_intervals(db, room.id, slot.start, slot.end, types=[slot.type], inclusive=True)
        plan = plan_merge(slot, slot.type, neighbours, exclude_series_id=slot.series_id)
        if not plan.changed:
            return slot
        logger.info(
            "Merging %d %s timeslot(s) into %s (room %s)", len(plan.absorbed), slot.type.value, slot.id, room.id
        )
        for absorbed in plan.absorbed:
            db.delete(absorbed)
        slot.start, slot.end = plan.start, plan.end
        if slot.series_id is not None:
            slot.is_dirty = True
        db.flush()


def create_timeslot(db: Session, room_id: int, payload: TimeslotCreate) -> TimeSlot:
    with room_transaction(db, room_id) as room:
        slot_type = validate_type(payload.type)
        validate_single(payload.amount, payload.recurrence)
        start, end = validate_range(payload.start, payload.end)

        span = Span(start, end, slot_type)
        blocked = _check(db, room, span, slot_type, payload.force)

        slot = TimeSlot(room_id=room.id, type=slot_type, start=start, end=end)
        db.add(slot)
        db.flush()
        slot = merge_into_neighbours(db, room, slot)
    _announce_blocked(room_id, blocked)
    return slot


def create_timeslot_series(db: Session, room_id: int, payload: TimeslotCreate) -> List[TimeSlot]:
    with room_transaction(db, room_id) as room:
        slot_type = validate_type(payload.type)
        amount, recurrence = validate_series(payload.amount, payload.recurrence)
        start, end = validate_range(payload.start, payload.end)

        spans = expand_series(start, end, recurrence, amount)
        validate_series_spacing(spans)
        blocked = []
        for span in spans:
            blocked += _check(db, room, span, slot_type, payload.force)

        series_id = str(uuid.uuid4())
        slots = [
            TimeSlot(
                room_id=room.id,
                type=slot_type,
                start=span.start,
                end=span.end,
                series_id=series_id,
                amount=amount,
                recurrence=recurrence,
            )
            for span in spans
        ]
        db.add_all(slots)
        db.flush()
        slots = [merge_into_neighbours(db, room, slot) for slot in slots]
        logger.info("Created %s series %s with %d timeslot(s) in room %s", slot_type.value, series_id, amount, room.id)
    _announce_blocked(room_id, blocked)
    return slots


def _ensure_still_covered(db: Session, room: Room, slot: TimeSlot, new_span: Span) -> None:
    """An available window may not shrink away from the bookings inside it."""
    old_span = Span(slot.start, slot.end)
    _, _, booked = repository.conflict_context(db, room.id, old_span)
    for booking in dependent_bookings(old_span, booked):
        windows = [
            w
            for w in repository.room_intervals(db, room.id, booking.start, booking.end, types=[TimeSlotType.AVAILABLE])
            if w.id != slot.id
        ]
        windows.append(new_span)
        if not covered_by_union(booking, [w for w in windows if overlaps(booking, w)]):
            raise ConflictError(SHRINK_DEPENDENT_BOOKINGS, "outside_available")


def update_timeslot(db: Session, room_id: int, timeslot_id: str, payload: TimeslotUpdate) -> TimeSlot:
    with room_transaction(db, room_id) as room:
        slot = repository.get_timeslot(db, room.id, timeslot_id)
        if slot.type == TimeSlotType.BOOKED:
            raise ValidationError("Type appointment is illegal here.")

        start, end = validate_range(
            payload.start if payload.start is not None else slot.start,
            payload.end if payload.end is not None else slot.end,
        )
        span = Span(start, end, slot.type)
        blocked = _check(db, room, span, slot.type, payload.force, exclude=[slot.id])
        if slot.type == TimeSlotType.AVAILABLE and not payload.force:
            _ensure_still_covered(db, room, slot, span)

        slot.start, slot.end = start, end
        if slot.series_id is not None:
            slot.is_dirty = True
        db.flush()
        slot = merge_into_neighbours(db, room, slot)
    _announce_blocked(room_id, blocked)
    return slot


def update_timeslot_series(db: Session, room_id: int, series_id: str, payload: TimeslotSeriesUpdate) -> List[TimeSlot]:
    with room_transaction(db, room_id) as room:
        members = repository.series_members(db, series_id, room.id, with_deleted=True)
        if not members:
            raise NotFoundError("Timeslot series not found.")
        anchor = select_anchor(members)
        if anchor is None:
            raise NotFoundError("No timeslots for series found.")
        if anchor.type == TimeSlotType.BOOKED:
            raise ValidationError("Type appointment is illegal here.")

        amount, recurrence = validate_series(
            payload.amount if payload.amount is not None else anchor.amount,
            payload.recurrence if payload.recurrence is not None else anchor.recurrence.value,
        )
        start, end = validate_range(
            payload.start if payload.start is not None else anchor.start,
            payload.end if payload.end is not None else anchor.end,
        )
        spans = expand_series(start, end, recurrence, amount)
        validate_series_spacing(spans)

        replaced = [m for m in members if not m.is_dirty or m.deleted_at is not None]
        replaced_ids = [m.id for m in replaced]
        blocked = []
        for span in spans:
            blocked += _check(db, room, span, anchor.type, payload.force, exclude=replaced_ids)

        template = {
            "room_id": room.id,
            "type": anchor.type,
            "series_id": series_id,
            "amount": amount,
            "recurrence": recurrence,
            "is_dirty": False,
        }
        slots = repository.apply_series_spans(db, replaced, spans, template)
        slots = [merge_into_neighbours(db, room, slot) for slot in slots]
        logger.info("Regenerated series %s with %d timeslot(s) in room %s", series_id, amount, room.id)
    _announce_blocked(room_id, blocked)
    return slots


def delete_timeslot(db: Session, room_id: int, timeslot_id: str, force: bool = False) -> None:
    with room_transaction(db, room_id) as room:
        slot = repository.get_timeslot(db, room.id, timeslot_id)
        if slot.type == TimeSlotType.AVAILABLE and not force:
            _, _, booked = repository.conflict_context(db, room.id, slot)
            if dependent_bookings(slot, booked):
                raise ConflictError(DEPENDENT_BOOKINGS, "outside_available")
        db.delete(slot)


def delete_timeslot_series(db: Session, room_id: int, series_id: str, force: bool = False) -> None:
    with room_transaction(db, room_id) as room:
        members = repository.series_members(db, series_id, with_deleted=True)
        if not members:
            raise NotFoundError("Timeslot series not found.")
        if any(member.room_id != room.id for member in members):
            raise NotFoundError("Timeslot series not found for this room.")

        series_type = members[0].type
        if series_type == TimeSlotType.AVAILABLE and not force:
            for member in repository.series_members(db, series_id):
                _, _, booked = repository.conflict_context(db, room.id, member)
                if dependent_bookings(member, booked):
                    raise ConflictError(DEPENDENT_BOOKINGS, "outside_available")
        for member in members:
            db.delete(member)
        logger.info("Deleted %s series %s (%d member(s)) in room %s", series_type.value, series_id, len(members), room.id)


def list_room_timeslots(db: Session, room_id: int, slot_type: TimeSlotType, offset: int = 0, limit: int = 0):
    repository.get_room(db, room_id)
    query = (
        db.query(TimeSlot)
        .filter(TimeSlot.room_id == room_id, TimeSlot.type == slot_type, TimeSlot.deleted_at.is_(None))
        .order_by(TimeSlot.start.asc())
    )
    total, slots = repository.page(query, offset, limit)
    return total, slots, repository.max_starts(db, [s.series_id for s in slots])
