"""Booking operations: appointments are booked timeslots owned by a user."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from common.errors import ConflictError, ForbiddenError, NotFoundError
from common.events import publish_event
from common.models import ConfirmationStatus, RoleEnum, Room, TimeSlot, TimeSlotType, User
from common.schemas import AppointmentCreate, AppointmentSeriesUpdate, AppointmentUpdate

from . import repository
from .conflicts import ConflictResult, check_conflict, raise_for_conflict
from .intervals import IntervalLike, Span
from .locking import room_transaction
from .series import expand_series, live_members, select_anchor
from .validation import validate_booking_range, validate_series, validate_series_spacing, validate_single

logger = logging.getLogger("scheduling.appointments")

NOTHING_BOOKABLE = "None of the series appointments could be booked."


def default_status(room: Room) -> ConfirmationStatus:
    return ConfirmationStatus.ACCEPTED if room.auto_accept_bookings else ConfirmationStatus.PENDING


def is_admin(user: User) -> bool:
    return user.role == RoleEnum.ADMIN


def ensure_may_access(user: User, appointment: TimeSlot) -> None:
    if not is_admin(user) and appointment.user_id != user.id:
        raise ForbiddenError("You are not allowed to access this appointment.")


def _ensure_may_set_status(user: User, status: Optional[ConfirmationStatus]) -> None:
    if status is not None and not is_admin(user):
        raise ForbiddenError("Only admins can change the confirmation status.")


def _booking_conflict(db: Session, room: Room, span: IntervalLike, exclude: Sequence[str] = ()) -> ConflictResult:
    available, unavailable, booked = repository.conflict_context(db, room.id, span, exclude)
    return check_conflict(room.max_concurrent_bookings, span, TimeSlotType.BOOKED, available, unavailable, booked)


def _bookable_spans(db: Session, room: Room, spans: Sequence[Span], force: bool, exclude: Sequence[str] = ()) -> List[Span]:
    """Spans free to book; with ``force`` conflicting instances are dropped instead of failing the batch."""
    bookable = []
    skipped = None
    for span in spans:
        result = _booking_conflict(db, room, span, exclude)
        if result.ok:
            bookable.append(span)
        elif force:
            logger.info("Skipping %s - %s in room %s: %s", span.start, span.end, room.id, result.message)
            skipped = result
        else:
            raise_for_conflict(result)
    if not bookable:
        raise ConflictError(NOTHING_BOOKABLE, skipped.reason.value)
    return bookable


def _resolve_status(user: User, room: Room, requested: Optional[ConfirmationStatus], current: ConfirmationStatus):
    if is_admin(user):
        return requested if requested is not None else current
    return default_status(room)


def _event_payload(appointment: TimeSlot) -> Dict:
    return {
        "appointment_id": appointment.id,
        "room_id": appointment.room_id,
        "user_id": appointment.user_id,
        "start": appointment.start.isoformat(),
        "end": appointment.end.isoformat(),
        "confirmation_status": appointment.confirmation_status.value,
    }


def create_appointment(db: Session, user: User, payload: AppointmentCreate) -> TimeSlot:
    with room_transaction(db, payload.room_id) as room:
        validate_single(payload.amount, payload.recurrence, noun="appointment")
        start, end = validate_booking_range(payload.start, payload.end)
        raise_for_conflict(_booking_conflict(db, room, Span(start, end, TimeSlotType.BOOKED)))

        appointment = TimeSlot(
            room_id=room.id,
            user_id=user.id,
            type=TimeSlotType.BOOKED,
            start=start,
            end=end,
            confirmation_status=default_status(room),
        )
        db.add(appointment)
        db.flush()
    logger.info("User %s booked room %s from %s to %s", user.id, appointment.room_id, start, end)
    publish_event("appointment_created", _event_payload(appointment))
    return appointment


def create_appointment_series(db: Session, user: User, payload: AppointmentCreate) -> List[TimeSlot]:
    with room_transaction(db, payload.room_id) as room:
        amount, recurrence = validate_series(payload.amount, payload.recurrence)
        start, end = validate_booking_range(payload.start, payload.end)
        spans = expand_series(start, end, recurrence, amount)
        validate_series_spacing(spans)
        bookable = _bookable_spans(db, room, spans, payload.force)

        series_id = str(uuid.uuid4())
        status = default_status(room)
        appointments = [
            TimeSlot(
                room_id=room.id,
                user_id=user.id,
                type=TimeSlotType.BOOKED,
                start=span.start,
                end=span.end,
                series_id=series_id,
                amount=amount,
                recurrence=recurrence,
                confirmation_status=status,
            )
            for span in bookable
        ]
        db.add_all(appointments)
        db.flush()
    logger.info(
        "User %s booked series %s (%d of %d appointment(s)) in room %s",
        user.id, series_id, len(appointments), amount, payload.room_id,
    )
    publish_event(
        "appointment_series_created",
        {"series_id": series_id, "room_id": payload.room_id, "user_id": user.id, "count": len(appointments)},
    )
    return appointments


def update_appointment(db: Session, user: User, appointment_id: str, payload: AppointmentUpdate) -> TimeSlot:
    room_id = repository.get_appointment(db, appointment_id).room_id
    with room_transaction(db, room_id) as room:
        appointment = repository.get_appointment(db, appointment_id)
        ensure_may_access(user, appointment)
        _ensure_may_set_status(user, payload.confirmation_status)

        if payload.start is None and payload.end is None:
            if payload.confirmation_status is None:
                return appointment
            reactivated = (
                appointment.confirmation_status == ConfirmationStatus.DENIED
                and payload.confirmation_status != ConfirmationStatus.DENIED
            )
            if reactivated:
                raise_for_conflict(_booking_conflict(db, room, appointment, exclude=[appointment.id]))
            appointment.confirmation_status = payload.confirmation_status
        else:
            start, end = validate_booking_range(
                payload.start if payload.start is not None else appointment.start,
                payload.end if payload.end is not None else appointment.end,
            )
            status = _resolve_status(user, room, payload.confirmation_status, appointment.confirmation_status)
            if status != ConfirmationStatus.DENIED:
                raise_for_conflict(
                    _booking_conflict(db, room, Span(start, end, TimeSlotType.BOOKED), exclude=[appointment.id])
                )
            appointment.start, appointment.end = start, end
            appointment.confirmation_status = status
            if appointment.series_id is not None:
                appointment.is_dirty = True
        db.flush()
    publish_event("appointment_updated", _event_payload(appointment))
    return appointment


def _series_for(db: Session, series_id: str) -> Tuple[int, List[TimeSlot]]:
    members = [m for m in repository.series_members(db, series_id) if m.type == TimeSlotType.BOOKED]
    if not members:
        raise NotFoundError("Appointment series not found.")
    return members[0].room_id, members


def update_appointment_series(
    db: Session, user: User, series_id: str, payload: AppointmentSeriesUpdate
) -> List[TimeSlot]:
    room_id, _ = _series_for(db, series_id)
    with room_transaction(db, room_id) as room:
        members = repository.series_members(db, series_id, room.id, with_deleted=True)
        live = live_members(members)
        for member in live:
            ensure_may_access(user, member)
        _ensure_may_set_status(user, payload.confirmation_status)

        reshaping = any(v is not None for v in (payload.start, payload.end, payload.amount, payload.recurrence))
        if not reshaping:
            if payload.confirmation_status is not None:
                for member in live:
                    reactivated = (
                        member.confirmation_status == ConfirmationStatus.DENIED
                        and payload.confirmation_status != ConfirmationStatus.DENIED
                    )
                    if reactivated:
                        raise_for_conflict(_booking_conflict(db, room, member, exclude=[member.id]))
                    member.confirmation_status = payload.confirmation_status
                db.flush()
            return live

        anchor = select_anchor(members)
        if anchor is None:
            raise NotFoundError("No appointments for series found.")
        amount, recurrence = validate_series(
            payload.amount if payload.amount is not None else anchor.amount,
            payload.recurrence if payload.recurrence is not None else anchor.recurrence.value,
        )
        start, end = validate_booking_range(
            payload.start if payload.start is not None else anchor.start,
            payload.end if payload.end is not None else anchor.end,
        )
        spans = expand_series(start, end, recurrence, amount)
        validate_series_spacing(spans)

        replaced = [m for m in members if not m.is_dirty or m.deleted_at is not None]
        status = _resolve_status(user, room, payload.confirmation_status, anchor.confirmation_status)
        if status == ConfirmationStatus.DENIED:
            bookable = spans
        else:
            bookable = _bookable_spans(db, room, spans, payload.force, exclude=[m.id for m in replaced])

        template = {
            "room_id": room.id,
            "user_id": anchor.user_id,
            "type": TimeSlotType.BOOKED,
            "series_id": series_id,
            "amount": amount,
            "recurrence": recurrence,
            "is_dirty": False,
            "confirmation_status": status,
        }
        appointments = repository.apply_series_spans(db, replaced, bookable, template)
        logger.info("Regenerated appointment series %s (%d appointment(s)) in room %s", series_id, len(appointments), room.id)
    publish_event("appointment_series_updated", {"series_id": series_id, "room_id": room_id, "count": len(appointments)})
    return appointments


def delete_appointment(db: Session, user: User, appointment_id: str) -> None:
    """Delete one appointment; series members are only marked deleted so the series keeps its shape."""
    room_id = repository.get_appointment(db, appointment_id).room_id
    with room_transaction(db, room_id):
        appointment = repository.get_appointment(db, appointment_id)
        ensure_may_access(user, appointment)
        payload = _event_payload(appointment)
        if appointment.series_id is not None:
            appointment.deleted_at = datetime.utcnow()
        else:
            db.delete(appointment)
    publish_event("appointment_deleted", payload)


def delete_appointment_series(db: Session, user: User, series_id: str) -> None:
    room_id, _ = _series_for(db, series_id)
    with room_transaction(db, room_id) as room:
        members = repository.series_members(db, series_id, room.id, with_deleted=True)
        for member in live_members(members):
            ensure_may_access(user, member)
        for member in members:
            db.delete(member)
    logger.info("Deleted appointment series %s (%d member(s)) in room %s", series_id, len(members), room_id)
    publish_event("appointment_series_deleted", {"series_id": series_id, "room_id": room_id})


def _booked_query(db: Session):
    return (
        db.query(TimeSlot)
        .filter(TimeSlot.type == TimeSlotType.BOOKED, TimeSlot.deleted_at.is_(None))
        .order_by(TimeSlot.start.asc())
    )


def list_appointments(db: Session, user: User, offset: int = 0, limit: int = 0):
    query = _booked_query(db)
    if not is_admin(user):
        query = query.filter(TimeSlot.user_id == user.id)
    total, appointments = repository.page(query, offset, limit)
    return total, appointments, repository.max_starts(db, [a.series_id for a in appointments])


def list_room_appointments(db: Session, room_id: int, offset: int = 0, limit: int = 0):
    repository.get_room(db, room_id)
    total, appointments = repository.page(_booked_query(db).filter(TimeSlot.room_id == room_id), offset, limit)
    return total, appointments, repository.max_starts(db, [a.series_id for a in appointments])


def list_series_appointments(db: Session, user: User, series_id: str):
    _, members = _series_for(db, series_id)
    for member in members:
        ensure_may_access(user, member)
    return members, repository.max_starts(db, [series_id])


def get_appointment(db: Session, user: User, appointment_id: str):
    appointment = repository.get_appointment(db, appointment_id)
    ensure_may_access(user, appointment)
    return appointment, repository.max_starts(db, [appointment.series_id])
