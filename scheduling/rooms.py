"""Room settings changes that depend on the room's bookings."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from common.errors import ConflictError
from common.events import publish_event
from common.models import Room, TimeSlot, TimeSlotType

from . import repository
from .locking import room_lock, room_transaction

logger = logging.getLogger("scheduling.rooms")

MAX_CONCURRENT_LOWERED = "Maximum concurrent bookings can not be set lower."


def update_room(db: Session, room_id: int, changes: Dict[str, Any]) -> Room:
    with room_transaction(db, room_id) as room:
        new_max = changes.get("max_concurrent_bookings")
        if new_max is not None and new_max < room.max_concurrent_bookings:
            raise ConflictError(MAX_CONCURRENT_LOWERED, "too_many_concurrent")
        for key, value in changes.items():
            setattr(room, key, value)
    return room


def delete_room(db: Session, room_id: int) -> List[Dict[str, Any]]:
    """Delete a room with all its intervals and report the upcoming appointments that were cancelled."""
    with room_lock(room_id):
        room = repository.get_room(db, room_id)
        upcoming = (
            db.query(TimeSlot)
            .filter(
                TimeSlot.room_id == room_id,
                TimeSlot.type == TimeSlotType.BOOKED,
                TimeSlot.deleted_at.is_(None),
                TimeSlot.end > datetime.utcnow(),
            )
            .order_by(TimeSlot.start.asc())
            .all()
        )
        cancelled = [
            {"appointment_id": a.id, "user_id": a.user_id, "start": a.start.isoformat(), "end": a.end.isoformat()}
            for a in upcoming
        ]
        try:
            db.delete(room)
            db.commit()
        except Exception:
            db.rollback()
            raise
    logger.info("Deleted room %s, cancelling %d upcoming appointment(s)", room_id, len(cancelled))
    publish_event("room_deleted", {"room_id": room_id, "name": room.name, "cancelled": cancelled})
    return cancelled
