import os
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("PUBLISH_EVENTS", "false")

from common.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from common.database import Base, SessionLocal, engine  # noqa: E402
from common.models import RoleEnum  # noqa: E402
from scheduling.overview import reset_calendar_cache  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402
from services.rooms.app import app as rooms_app  # noqa: E402
from services.users.app import app as users_app  # noqa: E402

PASSWORD = "Passw0rd!"

ADMIN_PAYLOAD = {
    "name": "Admin",
    "username": "admin",
    "email": "admin@example.com",
    "password": PASSWORD,
    "role": RoleEnum.ADMIN.value,
}

USER_PAYLOAD = {
    "name": "User",
    "username": "user1",
    "email": "user1@example.com",
    "password": PASSWORD,
}

OTHER_USER_PAYLOAD = {
    "name": "Other",
    "username": "user2",
    "email": "user2@example.com",
    "password": PASSWORD,
}


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    reset_calendar_cache()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def users_client() -> Generator[TestClient, None, None]:
    with TestClient(users_app) as client:
        yield client


@pytest.fixture()
def rooms_client() -> Generator[TestClient, None, None]:
    with TestClient(rooms_app) as client:
        yield client


@pytest.fixture()
def bookings_client() -> Generator[TestClient, None, None]:
    with TestClient(bookings_app) as client:
        yield client


def auth_header(users_client, username: str, password: str = PASSWORD) -> dict[str, str]:
    response = users_client.post(
        "/users/login",
        data={"username": username, "password": password},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(users_client) -> dict[str, str]:
    users_client.post("/users/register", json=ADMIN_PAYLOAD)
    return auth_header(users_client, ADMIN_PAYLOAD["username"])


@pytest.fixture()
def user_headers(users_client, admin_headers) -> dict[str, str]:
    users_client.post("/users/register", json=USER_PAYLOAD)
    return auth_header(users_client, USER_PAYLOAD["username"])


@pytest.fixture()
def other_user_headers(users_client, admin_headers) -> dict[str, str]:
    users_client.post("/users/register", json=OTHER_USER_PAYLOAD)
    return auth_header(users_client, OTHER_USER_PAYLOAD["username"])


@pytest.fixture()
def make_room(rooms_client, admin_headers) -> Callable[..., int]:
    def factory(name: str = "Lab 1", max_concurrent_bookings: int = 1, auto_accept_bookings: bool = False) -> int:
        response = rooms_client.post(
            "/rooms",
            json={
                "name": name,
                "description": "Teaching lab",
                "max_concurrent_bookings": max_concurrent_bookings,
                "auto_accept_bookings": auto_accept_bookings,
            },
            headers=admin_headers,
        )
        assert response.status_code == 201, response.text
        return response.json()["id"]

    return factory


@pytest.fixture()
def add_slot(rooms_client, admin_headers) -> Callable[..., dict]:
    def factory(room_id: int, start: str, end: str, type: str = "available", **extra) -> dict:
        response = rooms_client.post(
            f"/rooms/{room_id}/timeslots",
            json={"type": type, "start": start, "end": end, **extra},
            headers=admin_headers,
        )
        assert response.status_code == 201, response.text
        return response.json()

    return factory
