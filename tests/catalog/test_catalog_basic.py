from datetime import date, datetime, timedelta, timezone

from fastapi.testclient import TestClient
from jose import jwt

from bookings_service.auth import ALGORITHM, SECRET_KEY
from bookings_service.main import app

client = TestClient(app)

CLASS_DAY = "2030-03-11"


def make_token(role: str = "admin", version: int = 1) -> str:
    payload = {
        "sub": "admin",
        "role": role,
        "ver": version,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=30),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def admin_headers() -> dict:
    return {"Authorization": f"Bearer {make_token()}"}


def create_class(capacity: int = 10, day: str = CLASS_DAY, start: str = "08:00", end: str = "09:00", **extra):
    body = {
        "type": "class_session",
        "name": "Morning Yoga",
        "instructor": "Maya",
        "date": day,
        "startTime": start,
        "endTime": end,
        "price": 15,
        "capacity": capacity,
    }
    body.update(extra)
    return client.post("/api/v1/admin/catalog", json=body, headers=admin_headers())


def enroll(resource_id: int, people: int):
    return client.post(
        "/api/v1/bookings",
        json={
            "name": "Lara",
            "email": "lara@example.com",
            "phone": "70123456",
            "bookingItems": [{"classId": resource_id, "peopleCount": people}],
        },
    )


def test_admin_creates_class_session():
    res = create_class()
    assert res.status_code == 201
    data = res.json()
    assert data["kind"] == "class_session"
    assert data["instructor_name"] == "Maya"
    assert data["duration"] == 60
    assert data["available_capacity"] == 10


def test_catalog_create_requires_admin():
    res = client.post(
        "/api/v1/admin/catalog",
        json={"type": "room_slot", "name": "Slot", "date": CLASS_DAY, "startTime": "10:00", "endTime": "11:00",
              "price": 0, "capacity": 18},
    )
    assert res.status_code == 401


def test_catalog_resource_must_fit_operating_hours():
    assert create_class(start="06:00", end="07:30").status_code == 400
    assert create_class(start="10:00", end="09:00").status_code == 400


def test_public_listing_splits_kinds_and_hides_past():
    create_class()
    create_class(day=(date.today() - timedelta(days=3)).isoformat())
    client.post(
        "/api/v1/admin/catalog",
        json={"type": "room_slot", "name": "Evening Slot", "date": CLASS_DAY, "startTime": "19:00",
              "endTime": "20:00", "price": 0, "capacity": 18},
        headers=admin_headers(),
    )

    res = client.get("/api/v1/catalog")
    assert res.status_code == 200
    data = res.json()
    assert len(data["classes"]) == 1
    assert len(data["room_slots"]) == 1

    everything = client.get("/api/v1/admin/catalog", headers=admin_headers())
    assert len(everything.json()) == 3


def test_enrollment_consumes_capacity():
    resource_id = create_class(capacity=10).json()["id"]

    first = enroll(resource_id, 6)
    assert first.status_code == 201
    item = first.json()["booking"]["items"][0]
    assert item["kind"] == "class_enrollment"
    assert item["price"] == 90.0
    assert item["start_time"] == "08:00"

    capacity = client.get(f"/api/v1/catalog/{resource_id}/capacity").json()
    assert capacity == {"resource_id": resource_id, "capacity": 10, "used_capacity": 6, "available_capacity": 4}

    full = enroll(resource_id, 5)
    assert full.status_code == 409
    assert "4 seat(s)" in full.json()["detail"]

    assert enroll(resource_id, 4).status_code == 201
    assert client.get(f"/api/v1/catalog/{resource_id}").json()["available_capacity"] == 0


def test_cancelled_enrollment_frees_seats():
    resource_id = create_class(capacity=5).json()["id"]
    booking_id = enroll(resource_id, 5).json()["booking"]["id"]

    client.patch(f"/api/v1/bookings/{booking_id}/status", json={"status": "cancelled"}, headers=admin_headers())

    assert client.get(f"/api/v1/catalog/{resource_id}/capacity").json()["used_capacity"] == 0
    assert enroll(resource_id, 5).status_code == 201


def test_class_session_blocks_room_rentals():
    create_class(start="08:00", end="09:00")

    availability = client.get("/api/v1/availability", params={"date": CLASS_DAY}).json()
    assert availability["confirmed_slots"] == ["08:00", "08:30"]

    res = client.post(
        "/api/v1/bookings",
        json={
            "name": "Omar",
            "email": "omar@example.com",
            "phone": "1",
            "items": [{"date": CLASS_DAY, "start_time": "08:30", "end_time": "09:30", "headcount": 3}],
        },
    )
    assert res.status_code == 409


def test_capacity_cannot_drop_below_enrolled():
    resource_id = create_class(capacity=10).json()["id"]
    enroll(resource_id, 6)

    body = {"type": "class_session", "name": "Morning Yoga", "date": CLASS_DAY, "startTime": "08:00",
            "endTime": "09:00", "price": 15, "capacity": 5}
    res = client.put(f"/api/v1/admin/catalog/{resource_id}", json=body, headers=admin_headers())
    assert res.status_code == 409

    body["capacity"] = 12
    res = client.put(f"/api/v1/admin/catalog/{resource_id}", json=body, headers=admin_headers())
    assert res.status_code == 200
    assert res.json()["available_capacity"] == 6


def test_delete_resource_keeps_booking_items():
    resource_id = create_class().json()["id"]
    booking_id = enroll(resource_id, 2).json()["booking"]["id"]

    res = client.delete(f"/api/v1/admin/catalog/{resource_id}", headers=admin_headers())
    assert res.status_code == 200
    assert client.get(f"/api/v1/catalog/{resource_id}").status_code == 404

    item = client.get(f"/api/v1/bookings/{booking_id}").json()["items"][0]
    assert item["catalog_resource_id"] is None
    assert item["headcount"] == 2


def test_unknown_resource():
    assert client.get("/api/v1/catalog/999/capacity").status_code == 404
    assert enroll(999, 1).status_code == 404


def test_confirmed_full_class_reopens_after_cancel():
    resource_id = create_class(capacity=5).json()["id"]
    booking_id = enroll(resource_id, 5).json()["booking"]["id"]
    res = client.patch(f"/api/v1/bookings/{booking_id}/status", json={"status": "confirmed"}, headers=admin_headers())
    assert res.json()["status"] == "confirmed"
    assert enroll(resource_id, 1).status_code == 409

    client.patch(f"/api/v1/bookings/{booking_id}/status", json={"status": "cancelled"}, headers=admin_headers())

    assert enroll(resource_id, 5).status_code == 201


def test_resources_cannot_overlap_class_sessions():
    resource_id = create_class(start="08:00", end="09:00").json()["id"]

    assert create_class(start="08:30", end="09:30").status_code == 409
    slot = client.post(
        "/api/v1/admin/catalog",
        json={"type": "room_slot", "name": "Early Slot", "date": CLASS_DAY, "startTime": "08:00",
              "endTime": "09:00", "price": 0, "capacity": 18},
        headers=admin_headers(),
    )
    assert slot.status_code == 409

    # back-to-back is fine, and a session does not clash with itself on update
    assert create_class(start="09:00", end="10:00").status_code == 201
    body = {"type": "class_session", "name": "Morning Yoga", "date": CLASS_DAY, "startTime": "08:00",
            "endTime": "09:00", "price": 15, "capacity": 12}
    assert client.put(f"/api/v1/admin/catalog/{resource_id}", json=body, headers=admin_headers()).status_code == 200
