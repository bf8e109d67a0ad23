"""SQLAlchemy models shared across all services."""
from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class RoleEnum(str, Enum):
    PENDING = "pending"
    VISITOR = "visitor"
    ADMIN = "admin"


class TimeSlotType(str, Enum):
    BOOKED = "booked"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class TimeSlotRecurrence(str, Enum):
    SINGLE = "single"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ConfirmationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DENIED = "denied"


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), unique=True)
    role: Mapped[RoleEnum] = mapped_column(SqlEnum(RoleEnum), default=RoleEnum.VISITOR)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    appointments: Mapped[List["TimeSlot"]] = relationship(
        back_populates="user", cascade="all", passive_deletes=True
    )


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str] = mapped_column(Text, default="")
    max_concurrent_bookings: Mapped[int] = mapped_column(Integer, default=1)
    auto_accept_bookings: Mapped[bool] = mapped_column(Boolean, default=False)
    revision: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    timeslots: Mapped[List["TimeSlot"]] = relationship(
        back_populates="room", cascade="all", passive_deletes=True
    )


class TimeSlot(Base):
    """One interval of a room's time, tagged by ``type``.

    Available and unavailable intervals only carry the room; booked intervals
    (appointments) additionally carry the booking user and a confirmation
    status. Series members share ``series_id``; ``is_dirty`` marks a member
    that was edited on its own and no longer follows series-wide edits.
    """

    __tablename__ = "timeslots"
    __table_args__ = (Index("ix_timeslots_room_type_start", "room_id", "type", "start"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, default=None)
    type: Mapped[TimeSlotType] = mapped_column(SqlEnum(TimeSlotType), index=True)
    start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    series_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, default=None)
    amount: Mapped[int] = mapped_column(Integer, default=1)
    recurrence: Mapped[TimeSlotRecurrence] = mapped_column(SqlEnum(TimeSlotRecurrence), default=TimeSlotRecurrence.SINGLE)
    is_dirty: Mapped[bool] = mapped_column(Boolean, default=False)
    confirmation_status: Mapped[Optional[ConfirmationStatus]] = mapped_column(SqlEnum(ConfirmationStatus), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)

    room: Mapped[Room] = relationship(back_populates="timeslots")
    user: Mapped[Optional[User]] = relationship(back_populates="appointments")
