"""Pydantic schemas shared across the microservices."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, EmailStr, Field

from .models import ConfirmationStatus, RoleEnum, TimeSlotRecurrence, TimeSlotType


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserBase(BaseModel):
    name: str = Field(..., max_length=100)
    username: str = Field(..., max_length=50)
    email: EmailStr
    role: RoleEnum = RoleEnum.VISITOR


class UserCreate(UserBase):
    password: str = Field(..., min_length=8)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=8)
    role: Optional[RoleEnum] = None


class UserRead(UserBase):
    id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class RoomBase(BaseModel):
    name: str = Field(..., max_length=100)
    description: str = ""
    max_concurrent_bookings: int = Field(1, ge=1)
    auto_accept_bookings: bool = False


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    max_concurrent_bookings: Optional[int] = Field(None, ge=1)
    auto_accept_bookings: Optional[bool] = None


class RoomRead(RoomBase):
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RoomPage(BaseModel):
    total: int
    data: List[RoomRead]


# Timeslot and appointment requests keep their fields loose so the engine can
# answer malformed input with its own ordered messages instead of a 422.


class TimeslotCreate(BaseModel):
    type: Optional[Any] = None
    start: Optional[Any] = None
    end: Optional[Any] = None
    amount: Optional[Any] = None
    recurrence: Optional[Any] = None
    force: bool = False


class TimeslotUpdate(BaseModel):
    start: Optional[Any] = None
    end: Optional[Any] = None
    force: bool = False


class TimeslotSeriesUpdate(TimeslotUpdate):
    amount: Optional[Any] = None
    recurrence: Optional[Any] = None


class ForceRequest(BaseModel):
    force: bool = False


class TimeslotRead(BaseModel):
    id: str
    room_id: int
    type: TimeSlotType
    start: datetime
    end: datetime
    series_id: Optional[str] = None
    amount: int
    recurrence: TimeSlotRecurrence
    is_dirty: bool
    created_at: datetime
    updated_at: datetime
    max_start: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TimeslotPage(BaseModel):
    total: int
    data: List[TimeslotRead]


class AppointmentCreate(BaseModel):
    room_id: int
    start: Optional[Any] = None
    end: Optional[Any] = None
    amount: Optional[Any] = None
    recurrence: Optional[Any] = None
    force: bool = False


class AppointmentUpdate(BaseModel):
    start: Optional[Any] = None
    end: Optional[Any] = None
    confirmation_status: Optional[ConfirmationStatus] = None


class AppointmentSeriesUpdate(AppointmentUpdate):
    amount: Optional[Any] = None
    recurrence: Optional[Any] = None
    force: bool = False


class AppointmentRead(TimeslotRead):
    user_id: int
    confirmation_status: ConfirmationStatus


class AppointmentPage(BaseModel):
    total: int
    data: List[AppointmentRead]


class CalendarRead(BaseModel):
    calendar: List[List[List[Any]]]
    min_timeslot: int
