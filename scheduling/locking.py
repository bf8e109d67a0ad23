"""Per-room serialization of interval mutations.

Every create/update/delete of a room's intervals runs inside
``room_transaction``: conflict check, persist and merge happen while the room
is locked and are committed together. The process-local lock covers worker
threads of one service; ``SELECT ... FOR UPDATE`` on the room row covers
separate processes on databases that support row locks.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from sqlalchemy.orm import Session

from common.errors import NotFoundError
from common.models import Room

logger = logging.getLogger("scheduling.locking")

_room_locks: Dict[int, threading.Lock] = {}
_lock_users: Dict[int, int] = {}
_registry_lock = threading.Lock()


@contextmanager
def room_lock(room_id: int) -> Iterator[None]:
    """Hold the process-local lock of ``room_id``.

    A room's entry lives only while some thread holds or waits for it.
    """
    with _registry_lock:
        lock = _room_locks.setdefault(room_id, threading.Lock())
        _lock_users[room_id] = _lock_users.get(room_id, 0) + 1
    try:
        with lock:
            yield
    finally:
        with _registry_lock:
            _lock_users[room_id] -= 1
            if not _lock_users[room_id]:
                del _lock_users[room_id]
                del _room_locks[room_id]


@contextmanager
def room_transaction(db: Session, room_id: int) -> Iterator[Room]:
    """Lock ``room_id``, yield the room and commit on success, roll back on error."""
    with room_lock(room_id):
        room = db.query(Room).filter(Room.id == room_id).with_for_update().populate_existing().first()
        if room is None:
            db.rollback()
            raise NotFoundError("Room not found.")
        try:
            yield room
            room.revision = (room.revision or 0) + 1
            db.commit()
        except Exception:
            db.rollback()
            logger.debug("Rolled back interval mutation for room %s", room_id)
            raise
