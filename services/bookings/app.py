from contextlib import asynccontextmanager
from typing import Dict, List

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from common.auth import BOOKING_ROLES
from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import allow_roles, get_current_active_user
from common.errors import register_error_handlers
from common.logging_middleware import add_audit_middleware
from common.models import TimeSlot, User
from common.rate_limit import apply_rate_limiter, limiter
from common.schemas import (
    AppointmentCreate,
    AppointmentPage,
    AppointmentRead,
    AppointmentSeriesUpdate,
    AppointmentUpdate,
)
from scheduling import appointments, repository

settings = get_settings()
allow_booking = allow_roles(*BOOKING_ROLES)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Bookings Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "bookings")
    register_error_handlers(fastapi_app)
    return fastapi_app


app = create_app()


def _appointment_read(appointment: TimeSlot, latest: Dict[str, object]) -> AppointmentRead:
    read = AppointmentRead.model_validate(appointment)
    read.max_start = latest.get(appointment.series_id)
    return read


def _many(db: Session, rows: List[TimeSlot]) -> List[AppointmentRead]:
    latest = repository.max_starts(db, [row.series_id for row in rows])
    return [_appointment_read(row, latest) for row in rows]


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "bookings"}


@app.get("/appointments", response_model=AppointmentPage)
@limiter.limit("30/minute")
def list_appointments(
    request: Request,
    offset: int = Query(0, ge=0),
    limit: int = Query(0, ge=0),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> AppointmentPage:
    total, rows, latest = appointments.list_appointments(db, current_user, offset, limit)
    return AppointmentPage(total=total, data=[_appointment_read(row, latest) for row in rows])


@app.get("/rooms/{room_id}/appointments", response_model=AppointmentPage)
@limiter.limit("30/minute")
def list_room_appointments(
    request: Request,
    room_id: int,
    offset: int = Query(0, ge=0),
    limit: int = Query(0, ge=0),
    _: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> AppointmentPage:
    total, rows, latest = appointments.list_room_appointments(db, room_id, offset, limit)
    return AppointmentPage(total=total, data=[_appointment_read(row, latest) for row in rows])


@app.get("/appointments/series/{series_id}", response_model=List[AppointmentRead])
@limiter.limit("30/minute")
def get_appointment_series(
    request: Request,
    series_id: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> List[AppointmentRead]:
    rows, latest = appointments.list_series_appointments(db, current_user, series_id)
    return [_appointment_read(row, latest) for row in rows]


@app.get("/appointments/{appointment_id}", response_model=AppointmentRead)
@limiter.limit("60/minute")
def get_appointment(
    request: Request,
    appointment_id: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> AppointmentRead:
    appointment, latest = appointments.get_appointment(db, current_user, appointment_id)
    return _appointment_read(appointment, latest)


@app.post("/appointments", response_model=AppointmentRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_appointment(
    request: Request,
    payload: AppointmentCreate,
    current_user: User = Depends(allow_booking),
    db: Session = Depends(get_db),
) -> AppointmentRead:
    return _many(db, [appointments.create_appointment(db, current_user, payload)])[0]


@app.post("/appointments/series", response_model=List[AppointmentRead], status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def create_appointment_series(
    request: Request,
    payload: AppointmentCreate,
    current_user: User = Depends(allow_booking),
    db: Session = Depends(get_db),
) -> List[AppointmentRead]:
    return _many(db, appointments.create_appointment_series(db, current_user, payload))


@app.patch("/appointments/series/{series_id}", response_model=List[AppointmentRead])
@limiter.limit("10/minute")
def update_appointment_series(
    request: Request,
    series_id: str,
    payload: AppointmentSeriesUpdate,
    current_user: User = Depends(allow_booking),
    db: Session = Depends(get_db),
) -> List[AppointmentRead]:
    return _many(db, appointments.update_appointment_series(db, current_user, series_id, payload))


@app.patch("/appointments/{appointment_id}", response_model=AppointmentRead)
@limiter.limit("20/minute")
def update_appointment(
    request: Request,
    appointment_id: str,
    payload: AppointmentUpdate,
    current_user: User = Depends(allow_booking),
    db: Session = Depends(get_db),
) -> AppointmentRead:
    return _many(db, [appointments.update_appointment(db, current_user, appointment_id, payload)])[0]


@app.delete("/appointments/series/{series_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("10/minute")
def delete_appointment_series(
    request: Request,
    series_id: str,
    current_user: User = Depends(allow_booking),
    db: Session = Depends(get_db),
) -> None:
    appointments.delete_appointment_series(db, current_user, series_id)


@app.delete("/appointments/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def delete_appointment(
    request: Request,
    appointment_id: str,
    current_user: User = Depends(allow_booking),
    db: Session = Depends(get_db),
) -> None:
    appointments.delete_appointment(db, current_user, appointment_id)
