from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from circuitbreaker import circuit
from fastapi import Body, Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import require_admin
from common.errors import ValidationError, register_error_handlers
from common.logging_middleware import add_audit_middleware
from common.models import Room, TimeSlot, TimeSlotType, User
from common.rate_limit import apply_rate_limiter, limiter
from common.schemas import (
    CalendarRead,
    ForceRequest,
    RoomCreate,
    RoomPage,
    RoomRead,
    RoomUpdate,
    TimeslotCreate,
    TimeslotPage,
    TimeslotRead,
    TimeslotSeriesUpdate,
    TimeslotUpdate,
)
from scheduling import overview, repository, rooms, timeslots
from scheduling.intervals import from_epoch

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Rooms Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "rooms")
    register_error_handlers(fastapi_app)
    return fastapi_app


app = create_app()


def _timeslot_read(slot: TimeSlot, latest: Dict[str, object]) -> TimeslotRead:
    read = TimeslotRead.model_validate(slot)
    read.max_start = latest.get(slot.series_id)
    return read


def _series_read(db: Session, slots: List[TimeSlot]) -> List[TimeslotRead]:
    latest = repository.max_starts(db, [slot.series_id for slot in slots])
    return [_timeslot_read(slot, latest) for slot in slots]


def _moment(date: Optional[float]):
    try:
        return from_epoch(date)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValidationError("Invalid date.") from exc


def _forced(force: bool, body: Optional[ForceRequest]) -> bool:
    """DELETE takes ``{"force": true}`` as body; the query flag is also honoured."""
    return force or (body is not None and body.force)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "rooms"}


@app.get("/rooms", response_model=RoomPage)
@circuit(failure_threshold=5, recovery_timeout=60)
def list_rooms(
    request: Request,
    offset: int = Query(0, ge=0),
    limit: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> RoomPage:
    total, room_rows = repository.page(db.query(Room).order_by(Room.name.asc(), Room.id.asc()), offset, limit)
    return RoomPage(total=total, data=[RoomRead.model_validate(room) for room in room_rows])


@app.post("/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def add_room(
    request: Request,
    room_in: RoomCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Room:
    room = Room(**room_in.model_dump())
    db.add(room)
    db.commit()
    db.refresh(room)
    return room


@app.get("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("60/minute")
def get_room(request: Request, room_id: int, db: Session = Depends(get_db)) -> Room:
    return repository.get_room(db, room_id)


@app.patch("/rooms/{room_id}", response_model=RoomRead)
@limiter.limit("15/minute")
def update_room(
    request: Request,
    room_id: int,
    room_update: RoomUpdate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Room:
    return rooms.update_room(db, room_id, room_update.model_dump(exclude_unset=True, exclude_none=True))


@app.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("15/minute")
def delete_room(
    request: Request,
    room_id: int,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    rooms.delete_room(db, room_id)


@app.get("/rooms/{room_id}/calendar", response_model=CalendarRead)
@limiter.limit("60/minute")
def room_calendar(
    request: Request,
    room_id: int,
    date: Optional[float] = Query(None, description="Epoch seconds inside the requested week"),
    db: Session = Depends(get_db),
) -> dict:
    return overview.room_calendar(db, room_id, _moment(date))


@app.get("/rooms/{room_id}/availability-calendar", response_model=List[List[Optional[str]]])
@limiter.limit("60/minute")
def availability_calendar(
    request: Request,
    room_id: int,
    date: Optional[float] = Query(None, description="Epoch seconds inside the requested week"),
    db: Session = Depends(get_db),
) -> list:
    return overview.availability_calendar(db, room_id, _moment(date))


def _timeslot_page(db: Session, room_id: int, slot_type: TimeSlotType, offset: int, limit: int) -> TimeslotPage:
    total, slots, latest = timeslots.list_room_timeslots(db, room_id, slot_type, offset, limit)
    return TimeslotPage(total=total, data=[_timeslot_read(slot, latest) for slot in slots])


@app.get("/rooms/{room_id}/timeslots/available", response_model=TimeslotPage)
@limiter.limit("60/minute")
def list_available_timeslots(
    request: Request,
    room_id: int,
    offset: int = Query(0, ge=0),
    limit: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> TimeslotPage:
    return _timeslot_page(db, room_id, TimeSlotType.AVAILABLE, offset, limit)


@app.get("/rooms/{room_id}/timeslots/unavailable", response_model=TimeslotPage)
@limiter.limit("60/minute")
def list_unavailable_timeslots(
    request: Request,
    room_id: int,
    offset: int = Query(0, ge=0),
    limit: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> TimeslotPage:
    return _timeslot_page(db, room_id, TimeSlotType.UNAVAILABLE, offset, limit)


@app.get("/rooms/{room_id}/timeslots/{timeslot_id}", response_model=TimeslotRead)
@limiter.limit("60/minute")
def get_timeslot(request: Request, room_id: int, timeslot_id: str, db: Session = Depends(get_db)) -> TimeslotRead:
    repository.get_room(db, room_id)
    slot = repository.get_timeslot(db, room_id, timeslot_id)
    return _timeslot_read(slot, repository.max_starts(db, [slot.series_id]))


@app.post("/rooms/{room_id}/timeslots", response_model=TimeslotRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_timeslot(
    request: Request,
    room_id: int,
    payload: TimeslotCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> TimeslotRead:
    slot = timeslots.create_timeslot(db, room_id, payload)
    return _series_read(db, [slot])[0]


@app.post(
    "/rooms/{room_id}/timeslots/series",
    response_model=List[TimeslotRead],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("10/minute")
def create_timeslot_series(
    request: Request,
    room_id: int,
    payload: TimeslotCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> List[TimeslotRead]:
    return _series_read(db, timeslots.create_timeslot_series(db, room_id, payload))


@app.patch("/rooms/{room_id}/timeslots/series/{series_id}", response_model=List[TimeslotRead])
@limiter.limit("10/minute")
def update_timeslot_series(
    request: Request,
    room_id: int,
    series_id: str,
    payload: TimeslotSeriesUpdate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> List[TimeslotRead]:
    return _series_read(db, timeslots.update_timeslot_series(db, room_id, series_id, payload))


@app.patch("/rooms/{room_id}/timeslots/{timeslot_id}", response_model=TimeslotRead)
@limiter.limit("30/minute")
def update_timeslot(
    request: Request,
    room_id: int,
    timeslot_id: str,
    payload: TimeslotUpdate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> TimeslotRead:
    slot = timeslots.update_timeslot(db, room_id, timeslot_id, payload)
    return _series_read(db, [slot])[0]


@app.delete("/rooms/{room_id}/timeslots/series/{series_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("10/minute")
def delete_timeslot_series(
    request: Request,
    room_id: int,
    series_id: str,
    force: bool = False,
    body: Optional[ForceRequest] = Body(None),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    timeslots.delete_timeslot_series(db, room_id, series_id, _forced(force, body))


@app.delete("/rooms/{room_id}/timeslots/{timeslot_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
def delete_timeslot(
    request: Request,
    room_id: int,
    timeslot_id: str,
    force: bool = False,
    body: Optional[ForceRequest] = Body(None),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    timeslots.delete_timeslot(db, room_id, timeslot_id, _forced(force, body))
