"""Ordered validation of timeslot and appointment requests.

Checks run in a fixed order so clients always see the first problem of a
request: type, single/series parameters, start/end format, duration.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional, Tuple

from common.config import get_settings
from common.errors import ValidationError
from common.models import TimeSlotRecurrence, TimeSlotType

from .intervals import is_full_hour, parse_instant


def _coerce_enum(enum_cls, raw: Any):
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        return None


def validate_type(raw: Any) -> TimeSlotType:
    if raw is None:
        raise ValidationError("No type specified.")
    slot_type = _coerce_enum(TimeSlotType, raw)
    if slot_type is None:
        raise ValidationError("Invalid type.")
    if slot_type == TimeSlotType.BOOKED:
        raise ValidationError("Type appointment is illegal here.")
    return slot_type


def _as_int(raw: Any) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def validate_single(amount: Any, recurrence: Any, noun: str = "timeslot") -> None:
    if amount is not None:
        parsed = _as_int(amount)
        if parsed is None or parsed > 1:
            raise ValidationError(f"Single {noun} amount cannot be greater than 1.")
    if recurrence is not None and _coerce_enum(TimeSlotRecurrence, recurrence) != TimeSlotRecurrence.SINGLE:
        raise ValidationError(f"Single {noun} recurrence cannot be set.")


def validate_series(amount: Any, recurrence: Any) -> Tuple[int, TimeSlotRecurrence]:
    parsed_amount = _as_int(amount) if amount is not None else None
    if parsed_amount is None or parsed_amount <= 1:
        raise ValidationError("Series needs to have at least 2 appointments.")
    max_amount = get_settings().max_series_amount
    if parsed_amount > max_amount:
        raise ValidationError(f"Series can have at most {max_amount} appointments.")
    if recurrence is None or recurrence == TimeSlotRecurrence.SINGLE.value:
        raise ValidationError("Series can only be recurring.")
    parsed_recurrence = _coerce_enum(TimeSlotRecurrence, recurrence)
    if parsed_recurrence is None:
        raise ValidationError("Illegal recurrence.")
    if parsed_recurrence == TimeSlotRecurrence.SINGLE:
        raise ValidationError("Series can only be recurring.")
    return parsed_amount, parsed_recurrence


def validate_range(start: Any, end: Any) -> Tuple[datetime, datetime]:
    parsed_start = parse_instant(start)
    if parsed_start is None:
        raise ValidationError("Invalid start format.")
    parsed_end = parse_instant(end)
    if parsed_end is None:
        raise ValidationError("Invalid end format.")
    min_hours = get_settings().min_timeslot_hours
    if parsed_end - parsed_start < timedelta(hours=min_hours):
        raise ValidationError(f"Duration must be at least {min_hours}h.")
    return parsed_start, parsed_end


def validate_booking_range(start: Any, end: Any) -> Tuple[datetime, datetime]:
    parsed_start, parsed_end = validate_range(start, end)
    if not (is_full_hour(parsed_start) and is_full_hour(parsed_end)):
        raise ValidationError("Appointments must start and end on a full hour.")
    return parsed_start, parsed_end


def validate_series_spacing(spans) -> None:
    for current, following in zip(spans, spans[1:]):
        if current.end > following.start:
            raise ValidationError("Series instances must not overlap each other.")
