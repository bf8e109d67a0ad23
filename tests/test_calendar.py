from datetime import datetime, timezone

MONDAY = "2030-01-07"
TUESDAY = "2030-01-08"
WEDNESDAY_NOON = datetime(2030, 1, 9, 12, tzinfo=timezone.utc).timestamp()
NEXT_WEEK = datetime(2030, 1, 15, 12, tzinfo=timezone.utc).timestamp()


def at(day: str, hour: int) -> str:
    return f"{day}T{hour:02d}:00:00"


def book(bookings_client, headers, room_id: int, start: str, end: str):
    response = bookings_client.post(
        "/appointments",
        json={"room_id": room_id, "start": start, "end": end},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_week_calendar(rooms_client, bookings_client, user_headers, make_room, add_slot):
    room_id = make_room(max_concurrent_bookings=2)
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 12))
    add_slot(room_id, at(TUESDAY, 9), at(TUESDAY, 11))
    add_slot(room_id, at(MONDAY, 11), at(MONDAY, 12), type="unavailable")
    appointment = book(bookings_client, user_headers, room_id, at(MONDAY, 8), at(MONDAY, 10))

    response = rooms_client.get(f"/rooms/{room_id}/calendar?date={WEDNESDAY_NOON}")
    assert response.status_code == 200
    body = response.json()
    assert body["min_timeslot"] == 8

    grid = body["calendar"]
    assert len(grid) == 4
    assert all(len(row) == 7 for row in grid)

    first_cell = grid[0][0]
    assert first_cell[0]["id"] == appointment["id"]
    assert first_cell[1] == "available 1"
    assert grid[1][0] == ["appointment_blocked", "available 1"]
    assert grid[2][0] == ["available 2", None]
    assert grid[3][0] == ["unavailable", None]

    assert grid[0][1] == ["unavailable", None]
    assert grid[1][1] == ["available 2", None]
    assert grid[0][6] == ["unavailable", None]


def test_calendar_reflects_new_bookings(rooms_client, bookings_client, user_headers, make_room, add_slot):
    room_id = make_room(max_concurrent_bookings=2)
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 10))
    url = f"/rooms/{room_id}/calendar?date={WEDNESDAY_NOON}"

    before = rooms_client.get(url).json()
    assert before["calendar"][0][0] == ["available 2", None]

    book(bookings_client, user_headers, room_id, at(MONDAY, 8), at(MONDAY, 9))
    after = rooms_client.get(url).json()
    assert after["calendar"][0][0][1] == "available 1"


def test_empty_week(rooms_client, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 10))

    response = rooms_client.get(f"/rooms/{room_id}/calendar?date={NEXT_WEEK}")
    assert response.json() == {"calendar": [], "min_timeslot": 0}


def test_calendar_unknown_room(rooms_client):
    response = rooms_client.get(f"/rooms/42/calendar?date={WEDNESDAY_NOON}")
    assert response.status_code == 404
    assert response.json()["detail"] == "Room not found."


def test_availability_calendar(rooms_client, make_room, add_slot):
    room_id = make_room()
    available = add_slot(room_id, at(MONDAY, 8), at(MONDAY, 12))
    blocked = add_slot(room_id, at(MONDAY, 11), at(MONDAY, 13), type="unavailable")

    response = rooms_client.get(f"/rooms/{room_id}/availability-calendar?date={WEDNESDAY_NOON}")
    assert response.status_code == 200
    grid = response.json()
    assert len(grid) == 24
    assert all(len(row) == 7 for row in grid)
    assert grid[8][0] == f"available {available['id']}"
    assert grid[10][0] == f"available {available['id']}"
    assert grid[11][0] == f"unavailable {blocked['id']}"
    assert grid[12][0] == f"unavailable {blocked['id']}"
    assert grid[13][0] is None
    assert grid[8][1] is None
