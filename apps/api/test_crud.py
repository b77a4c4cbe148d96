from datetime import datetime, timedelta, timezone

from sqlalchemy import false
from sqlmodel import select

from conftest import PASSWORD, auth_headers
from models import Doctor, DoctorMeeting, OPDBooking, UserRefreshToken, UserRole
from routers import users as users_router


def booking_payload(hospital_ids, **overrides):
    payload = {
        "patient_name": "Sunil Patil",
        "patient_phone": "9123456780",
        "age": 54,
        "gender": "Male",
        "medical_condition": "Cataract",
        "city": "Pune",
        "hospital_ids": hospital_ids,
        "appointment_date": "2026-10-20",
        "appointment_time": "10:30",
        "source": "Doctor Referral",
    }
    payload.update(overrides)
    return payload


def test_create_booking_resolves_referee_by_phone(client, session, factory):
    agent = factory.user()
    apollo = factory.hospital("Apollo")
    fortis = factory.hospital("Fortis")
    doctor = factory.doctor(agent, phone="9988776655")

    response = client.post(
        "/api/v1/patientLeads/create-web",
        json=booking_payload([fortis.id, apollo.id], referee_phone="9988776655"),
        headers=auth_headers(agent),
    )

    assert response.status_code == 201
    body = response.json()
    assert len(body["booking_reference"]) == 7
    assert body["referee_id"] == doctor.id
    assert body["created_by_agent_id"] == agent.id
    assert body["current_disposition"] == "Booked"
    assert body["hospital_ids"] == sorted([apollo.id, fortis.id])

    rows = client.get("/api/v1/opd/getOPDBookings", headers=auth_headers(agent)).json()["rows"]
    assert rows[0]["booking_reference"] == body["booking_reference"]
    assert rows[0]["hospital_names"] == "Apollo, Fortis"


def test_create_booking_rejects_unknown_hospital(client, factory):
    agent = factory.user()

    response = client.post(
        "/api/v1/patientLeads/create-web",
        json=booking_payload([404]),
        headers=auth_headers(agent),
    )

    assert response.status_code == 400


def test_create_booking_with_unknown_referee_phone_is_not_found(client, factory):
    agent = factory.user()
    hospital = factory.hospital()

    response = client.post(
        "/api/v1/patientLeads/create-web",
        json=booking_payload([hospital.id], referee_phone="9000000999"),
        headers=auth_headers(agent),
    )

    assert response.status_code == 404


def test_create_booking_validates_phone(client, factory):
    agent = factory.user()
    hospital = factory.hospital()

    response = client.post(
        "/api/v1/patientLeads/create-web",
        json=booking_payload([hospital.id], patient_phone="12345"),
        headers=auth_headers(agent),
    )

    assert response.status_code == 422


def test_update_patient_phone(client, session, factory):
    agent = factory.user()
    factory.booking(agent, "phone01")

    response = client.patch(
        "/api/v1/patientLeads/phone01/phone",
        json={"patient_phone": "9876501234"},
        headers=auth_headers(agent),
    )

    assert response.status_code == 200
    assert response.json()["patient_phone"] == "9876501234"


def test_update_unknown_booking_is_not_found(client, factory):
    operations = factory.user(role=UserRole.OPERATIONS)

    response = client.patch(
        "/api/v1/patientLeads/missing/disposition",
        json={"current_disposition": "Admitted"},
        headers=auth_headers(operations),
    )

    assert response.status_code == 404


def test_doctor_lookup_by_phone(client, factory):
    agent = factory.user()
    factory.doctor(agent, first_name="Meera", last_name="Joshi", phone="9988776655")

    found = client.get("/api/v1/doctors/get-by-phone/9988776655", headers=auth_headers(agent))
    missing = client.get("/api/v1/doctors/get-by-phone/9000000001", headers=auth_headers(agent))

    assert found.status_code == 200
    assert found.json()["name"] == "Meera Joshi"
    assert found.json()["locality"] == "Kothrud"
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Doctor not found"


def test_create_doctor_defaults_primary_agent_to_caller(client, session, factory):
    agent = factory.user()

    response = client.post(
        "/api/v1/doctors/create-web",
        json={"first_name": "Meera", "last_name": "Joshi", "phone": "9988776655", "locality": "Baner"},
        headers=auth_headers(agent),
    )
    duplicate = client.post(
        "/api/v1/doctors/create-web",
        json={"first_name": "Other", "phone": "9988776655"},
        headers=auth_headers(agent),
    )

    assert response.status_code == 201
    assert response.json()["assigned_agent_id_primary"] == agent.id
    assert duplicate.status_code == 409


def test_log_meeting_updates_last_meeting(client, session, factory):
    agent = factory.user()
    doctor = factory.doctor(agent)
    doctor_id = doctor.id
    meeting_time = datetime(2026, 10, 1, 11, 15)

    response = client.post(
        "/api/v1/meetings/create-web",
        json={"doctor_id": doctor_id, "meeting_time": meeting_time.isoformat(), "duration": 20},
        headers=auth_headers(agent),
    )

    assert response.status_code == 201
    assert response.json()["agent_id"] == agent.id
    session.expire_all()
    assert session.get(Doctor, doctor_id).last_meeting == meeting_time


def test_older_meeting_keeps_newer_last_meeting(client, session, factory):
    agent = factory.user()
    newest = datetime(2026, 10, 10, 9, 0)
    doctor = factory.doctor(agent, last_meeting=newest)
    doctor_id = doctor.id

    client.post(
        "/api/v1/meetings/create-web",
        json={"doctor_id": doctor_id, "meeting_time": "2026-09-01T09:00:00"},
        headers=auth_headers(agent),
    )

    session.expire_all()
    assert session.get(Doctor, doctor_id).last_meeting == newest


def test_log_meeting_for_unknown_doctor(client, factory):
    agent = factory.user()

    response = client.post(
        "/api/v1/meetings/create-web",
        json={"doctor_id": 12345},
        headers=auth_headers(agent),
    )

    assert response.status_code == 404


def test_hospital_lookups(client, factory):
    agent = factory.user()
    factory.hospital("Ruby Hall", "Pune")
    factory.hospital("Apollo", "Pune")
    factory.hospital("Fortis", "Mumbai")

    cities = client.get("/api/v1/hospitals/cities", headers=auth_headers(agent))
    pune = client.get("/api/v1/hospitals/by-city/Pune", headers=auth_headers(agent))

    assert cities.json() == ["Mumbai", "Pune"]
    assert [h["hospital_name"] for h in pune.json()] == ["Apollo", "Ruby Hall"]


def test_super_admin_manages_users(client, factory):
    admin = factory.user(first_name="Admin", role=UserRole.SUPER_ADMIN)

    created = client.post(
        "/api/v1/users",
        json={"first_name": "Neha", "last_name": "Rao", "phone": "9811122233", "password": "fieldwork42"},
        headers=auth_headers(admin),
    )
    assert created.status_code == 201
    new_id = created.json()["id"]
    assert created.json()["role"] == "agent"

    login = client.post("/api/v1/auth/login", json={"phone": "9811122233", "password": "fieldwork42"})
    assert login.status_code == 200
    agent_token = login.json()["access_token"]

    deactivated = client.patch(
        f"/api/v1/users/{new_id}/status", json={"is_active": False}, headers=auth_headers(admin)
    )
    assert deactivated.status_code == 200
    assert deactivated.json()["is_active"] is False

    blocked = client.get("/api/v1/opd/getMatrix", headers={"Authorization": f"Bearer {agent_token}"})
    assert blocked.status_code == 403


def test_user_management_rejects_weak_password_and_non_admins(client, factory):
    admin = factory.user(first_name="Admin", role=UserRole.SUPER_ADMIN)
    agent = factory.user()
    payload = {"first_name": "Neha", "phone": "9811122233", "password": "short"}

    weak = client.post("/api/v1/users", json=payload, headers=auth_headers(admin))
    forbidden = client.post(
        "/api/v1/users", json={**payload, "password": "fieldwork42"}, headers=auth_headers(agent)
    )

    assert weak.status_code == 400
    assert forbidden.status_code == 403


def test_bookings_are_never_created_for_another_agent(client, session, factory):
    agent = factory.user()
    other_agent = factory.user(first_name="Sita")
    hospital = factory.hospital()
    other_id = other_agent.id

    response = client.post(
        "/api/v1/patientLeads/create-web",
        json=booking_payload([hospital.id], created_by_agent_id=other_id),
        headers=auth_headers(agent),
    )

    assert response.status_code == 201
    booking = session.exec(select(OPDBooking)).one()
    assert booking.created_by_agent_id == agent.id


def test_meeting_time_with_utc_offset_is_stored_as_local_time(client, session, factory):
    agent = factory.user()
    doctor = factory.doctor(agent)
    doctor_id = doctor.id
    earlier = datetime(2026, 10, 17, 9, 0)
    utc_time = datetime(2026, 10, 17, 10, 0, tzinfo=timezone.utc)
    local_time = utc_time.astimezone().replace(tzinfo=None)

    first = client.post(
        "/api/v1/meetings/create-web",
        json={"doctor_id": doctor_id, "meeting_time": earlier.isoformat()},
        headers=auth_headers(agent),
    )
    second = client.post(
        "/api/v1/meetings/create-web",
        json={"doctor_id": doctor_id, "meeting_time": "2026-10-17T10:00:00Z"},
        headers=auth_headers(agent),
    )

    assert first.status_code == 201
    assert second.status_code == 201
    meeting = session.get(DoctorMeeting, second.json()["id"])
    assert meeting.meeting_time == local_time
    assert meeting.meeting_time.tzinfo is None
    session.expire_all()
    assert session.get(Doctor, doctor_id).last_meeting == max(earlier, local_time)


def test_written_timestamps_are_naive_local_time(client, session, factory):
    agent = factory.user()
    before = datetime.now()

    response = client.post("/api/v1/auth/login", json={"phone": agent.phone, "password": PASSWORD})

    assert response.status_code == 200
    stored = session.exec(select(UserRefreshToken)).one()
    assert stored.created_at.tzinfo is None
    assert stored.expires_at.tzinfo is None
    assert stored.created_at >= before
    assert stored.expires_at > before + timedelta(days=1)


def test_concurrent_duplicate_user_phone_is_a_conflict(client, factory, monkeypatch):
    admin = factory.user(first_name="Admin", role=UserRole.SUPER_ADMIN)
    factory.user(first_name="Neha", phone="9811122233")
    # Hide the existing row from the pre-check, as if it was committed by a parallel request
    monkeypatch.setattr(users_router, "select", lambda entity: select(entity).where(false()))

    response = client.post(
        "/api/v1/users",
        json={"first_name": "Neha", "phone": "9811122233", "password": "fieldwork42"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 409
    assert response.json()["detail"] == "Phone number already registered"
