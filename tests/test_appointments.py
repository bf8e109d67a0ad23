MONDAY = "2030-01-07"
TUESDAY = "2030-01-08"


def at(day: str, hour: int) -> str:
    return f"{day}T{hour:02d}:00:00"


def book(bookings_client, headers, room_id: int, start: str, end: str, **extra):
    return bookings_client.post(
        "/appointments",
        json={"room_id": room_id, "start": start, "end": end, **extra},
        headers=headers,
    )


def book_series(bookings_client, headers, room_id: int, start: str, end: str, amount: int, recurrence: str, **extra):
    return bookings_client.post(
        "/appointments/series",
        json={"room_id": room_id, "start": start, "end": end, "amount": amount, "recurrence": recurrence, **extra},
        headers=headers,
    )


def test_booking_flow(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 0), at(TUESDAY, 0))

    response = book(bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 14))
    assert response.status_code == 201, response.text
    appointment = response.json()
    assert appointment["type"] == "booked"
    assert appointment["confirmation_status"] == "pending"
    assert appointment["series_id"] is None

    listing = bookings_client.get("/appointments", headers=user_headers).json()
    assert listing["total"] == 1
    assert listing["data"][0]["id"] == appointment["id"]


def test_auto_accept_room(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room(auto_accept_bookings=True)
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))

    response = book(bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 12))
    assert response.json()["confirmation_status"] == "accepted"


def test_booking_outside_available(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 12))

    response = book(bookings_client, user_headers, room_id, at(MONDAY, 11), at(MONDAY, 13))
    assert response.status_code == 409
    assert response.json() == {
        "detail": "Appointment conflicts with available timeslot",
        "reason": "outside_available",
    }


def test_booking_inside_unavailable(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))
    add_slot(room_id, at(MONDAY, 12), at(MONDAY, 14), type="unavailable")

    response = book(bookings_client, user_headers, room_id, at(MONDAY, 11), at(MONDAY, 13))
    assert response.status_code == 409
    assert response.json()["reason"] == "inside_unavailable"
    assert response.json()["detail"] == "Appointment conflicts with unavailable timeslot"


def test_concurrency_limit(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room(max_concurrent_bookings=2)
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))

    assert book(bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 12)).status_code == 201
    assert book(bookings_client, user_headers, room_id, at(MONDAY, 11), at(MONDAY, 13)).status_code == 201

    third = book(bookings_client, user_headers, room_id, at(MONDAY, 11), at(MONDAY, 12))
    assert third.status_code == 409
    assert third.json()["reason"] == "too_many_concurrent"
    assert third.json()["detail"] == "Too many concurrent bookings"

    # 12-13 overlaps only the second booking
    assert book(bookings_client, user_headers, room_id, at(MONDAY, 12), at(MONDAY, 13)).status_code == 201


def test_overlapping_booking_rejected_with_single_lane(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room(max_concurrent_bookings=1)
    add_slot(room_id, at(MONDAY, 0), at(TUESDAY, 0))

    assert book(bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 14)).status_code == 201
    second = book(bookings_client, user_headers, room_id, at(MONDAY, 12), at(MONDAY, 16))
    assert second.status_code == 409
    assert second.json()["reason"] == "too_many_concurrent"


def test_booking_validation(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))

    cases = [
        ({"amount": 2}, at(MONDAY, 10), at(MONDAY, 12), "Single appointment amount cannot be greater than 1."),
        ({}, "soon", at(MONDAY, 12), "Invalid start format."),
        ({}, at(MONDAY, 10), f"{MONDAY}T10:30:00", "Duration must be at least 1h."),
        ({}, f"{MONDAY}T10:30:00", at(MONDAY, 12), "Appointments must start and end on a full hour."),
    ]
    for extra, start, end, message in cases:
        response = book(bookings_client, user_headers, room_id, start, end, **extra)
        assert response.status_code == 400, extra
        assert response.json()["detail"] == message

    missing_room = book(bookings_client, user_headers, 999, at(MONDAY, 10), at(MONDAY, 12))
    assert missing_room.status_code == 404


def test_only_owner_or_admin_sees_appointment(bookings_client, admin_headers, user_headers, other_user_headers, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))
    appointment = book(bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 12)).json()

    assert bookings_client.get(f"/appointments/{appointment['id']}", headers=other_user_headers).status_code == 403
    assert bookings_client.get(f"/appointments/{appointment['id']}", headers=admin_headers).status_code == 200
    assert bookings_client.get("/appointments", headers=other_user_headers).json()["total"] == 0
    assert bookings_client.get("/appointments", headers=admin_headers).json()["total"] == 1
    assert bookings_client.delete(f"/appointments/{appointment['id']}", headers=other_user_headers).status_code == 403


def test_confirmation_status_changes(bookings_client, admin_headers, user_headers, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))
    appointment = book(bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 12)).json()
    url = f"/appointments/{appointment['id']}"

    forbidden = bookings_client.patch(url, json={"confirmation_status": "accepted"}, headers=user_headers)
    assert forbidden.status_code == 403

    accepted = bookings_client.patch(url, json={"confirmation_status": "accepted"}, headers=admin_headers)
    assert accepted.status_code == 200
    assert accepted.json()["confirmation_status"] == "accepted"

    moved = bookings_client.patch(url, json={"start": at(MONDAY, 13), "end": at(MONDAY, 15)}, headers=user_headers)
    assert moved.status_code == 200
    assert moved.json()["start"] == at(MONDAY, 13)
    assert moved.json()["confirmation_status"] == "pending"


def test_denied_booking_frees_its_lane(bookings_client, admin_headers, user_headers, other_user_headers, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))
    first = book(bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 12)).json()

    denied = bookings_client.patch(
        f"/appointments/{first['id']}", json={"confirmation_status": "denied"}, headers=admin_headers
    )
    assert denied.json()["confirmation_status"] == "denied"
    assert book(bookings_client, other_user_headers, room_id, at(MONDAY, 10), at(MONDAY, 12)).status_code == 201

    reactivated = bookings_client.patch(
        f"/appointments/{first['id']}", json={"confirmation_status": "accepted"}, headers=admin_headers
    )
    assert reactivated.status_code == 409
    assert reactivated.json()["reason"] == "too_many_concurrent"


def test_appointment_series(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))
    add_slot(room_id, at(TUESDAY, 8), at(TUESDAY, 18))

    response = book_series(bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 12), 2, "daily")
    assert response.status_code == 201, response.text
    appointments = response.json()
    assert [a["start"] for a in appointments] == [at(MONDAY, 10), at(TUESDAY, 10)]
    series_id = appointments[0]["series_id"]
    assert all(a["max_start"] == at(TUESDAY, 10) for a in appointments)

    series = bookings_client.get(f"/appointments/series/{series_id}", headers=user_headers)
    assert series.status_code == 200
    assert len(series.json()) == 2


def test_appointment_series_conflict_aborts_whole_batch(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))

    response = book_series(bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 12), 2, "daily")
    assert response.status_code == 409
    assert response.json()["reason"] == "outside_available"
    assert bookings_client.get("/appointments", headers=user_headers).json()["total"] == 0


def test_forced_appointment_series_skips_conflicts(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))

    response = book_series(
        bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 12), 3, "daily", force=True
    )
    assert response.status_code == 201
    assert [a["start"] for a in response.json()] == [at(MONDAY, 10)]


def test_deleting_series_member_keeps_series(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))
    add_slot(room_id, at(TUESDAY, 8), at(TUESDAY, 18))
    appointments = book_series(
        bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 12), 2, "daily"
    ).json()
    series_id = appointments[0]["series_id"]

    assert bookings_client.delete(f"/appointments/{appointments[1]['id']}", headers=user_headers).status_code == 204
    remaining = bookings_client.get(f"/appointments/series/{series_id}", headers=user_headers).json()
    assert [a["id"] for a in remaining] == [appointments[0]["id"]]

    # the freed hour can be booked again
    assert book(bookings_client, user_headers, room_id, at(TUESDAY, 10), at(TUESDAY, 12)).status_code == 201

    assert bookings_client.delete(f"/appointments/series/{series_id}", headers=user_headers).status_code == 204
    assert bookings_client.get(f"/appointments/series/{series_id}", headers=user_headers).status_code == 404


def test_appointment_series_update(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room()
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))
    add_slot(room_id, at(TUESDAY, 8), at(TUESDAY, 18))
    appointments = book_series(
        bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 12), 2, "daily"
    ).json()
    series_id = appointments[0]["series_id"]

    response = bookings_client.patch(
        f"/appointments/series/{series_id}",
        json={"start": at(MONDAY, 14), "end": at(MONDAY, 16)},
        headers=user_headers,
    )
    assert response.status_code == 200, response.text
    updated = response.json()
    assert [a["id"] for a in updated] == [a["id"] for a in appointments]
    assert [a["start"] for a in updated] == [at(MONDAY, 14), at(TUESDAY, 14)]


def test_room_appointments_listing(bookings_client, user_headers, make_room, add_slot):
    room_id = make_room()
    other_room_id = make_room(name="Lab 2")
    add_slot(room_id, at(MONDAY, 8), at(MONDAY, 18))
    add_slot(other_room_id, at(MONDAY, 8), at(MONDAY, 18))
    book(bookings_client, user_headers, room_id, at(MONDAY, 10), at(MONDAY, 12))
    book(bookings_client, user_headers, other_room_id, at(MONDAY, 10), at(MONDAY, 12))

    listing = bookings_client.get(f"/rooms/{room_id}/appointments", headers=user_headers).json()
    assert listing["total"] == 1
    assert listing["data"][0]["room_id"] == room_id
