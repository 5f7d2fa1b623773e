"""Tests for appointment endpoints."""

from datetime import UTC, date, datetime, timedelta
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointments import appointments
from app.models.notifications import notifications
from app.schemas.users import Identity, IdentityCreate, UserRole
from app.services.appointment_service import AppointmentService
from app.services.identity_service import IdentityService
from conftest import TestSessionLocal, at, bearer

GUEST = {"name": "Marta Diaz", "phone": "+34611111111"}


async def book(
    client: AsyncClient,
    doctor: Identity,
    day: date,
    hhmm: str,
    headers: dict | None = None,
    location: str = "Clinic A",
    **extra,
):
    payload = {
        "doctor_id": str(doctor.id),
        "appointment_at": at(day, hhmm).isoformat(),
        "location": location,
        **extra,
    }
    return await client.post("/api/v1/appointments/", json=payload, headers=headers or {})


async def make_patient(db_session: AsyncSession, email: str) -> Identity:
    return await IdentityService(db_session).create_identity(
        IdentityCreate(email=email, full_name="Another Patient", role=UserRole.PATIENT)
    )


@pytest.mark.asyncio
async def test_patient_books_for_themselves(client, doctor, patient, next_monday):
    """Test a registered patient booking a free slot."""
    response = await book(client, doctor, next_monday, "09:00", bearer(patient), guest=GUEST)

    assert response.status_code == 201
    data = response.json()
    assert data["patient_id"] == str(patient.id)
    assert data["guest_name"] is None
    assert data["doctor_name"] == "Dra. Ana Ruiz"
    assert data["doctor_specialty"] == "Cardiology"
    assert data["duration_minutes"] == 30
    assert data["status"] == "scheduled"
    assert data["display_name"] == "Luis Gomez"
    assert data["created_by_doctor"] is False
    assert data["is_past"] is False


@pytest.mark.asyncio
async def test_anonymous_guest_booking(client, doctor, next_monday):
    response = await book(client, doctor, next_monday, "09:30", guest=GUEST)

    assert response.status_code == 201
    data = response.json()
    assert data["patient_id"] is None
    assert data["guest_name"] == "Marta Diaz"
    assert data["guest_phone"] == "+34611111111"
    assert data["display_name"] == "Marta Diaz"


@pytest.mark.asyncio
async def test_booking_without_identity_is_rejected(client, doctor, next_monday):
    response = await book(client, doctor, next_monday, "09:00", guest={"name": "Marta"})

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "MissingIdentityException"
    assert data["message"] == "Either a registered user or guest info is required"


@pytest.mark.asyncio
async def test_booking_unknown_doctor(client, patient, next_monday):
    payload = {
        "doctor_id": str(uuid4()),
        "appointment_at": at(next_monday, "09:00").isoformat(),
        "location": "Clinic A",
    }

    response = await client.post("/api/v1/appointments/", json=payload, headers=bearer(patient))

    assert response.status_code == 404
    assert response.json()["message"] == "Doctor not found or invalid role"


@pytest.mark.asyncio
async def test_booking_a_patient_as_doctor_id_is_not_found(client, patient, next_monday):
    response = await book(client, patient, next_monday, "09:00", bearer(patient))

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_double_booking_is_rejected(client, doctor, patient, next_monday):
    """Test the second booking of the same slot fails."""
    first = await book(client, doctor, next_monday, "10:00", bearer(patient))
    second = await book(client, doctor, next_monday, "10:00", guest=GUEST)

    assert first.status_code == 201
    assert second.status_code == 400
    assert second.json()["error"] == "SlotTakenException"
    assert second.json()["message"] == "This time slot is not available"


@pytest.mark.asyncio
async def test_overlapping_booking_is_rejected(client, doctor, patient, next_monday):
    first = await book(client, doctor, next_monday, "09:00", bearer(patient), duration_minutes=60)
    second = await book(client, doctor, next_monday, "09:30", guest=GUEST)

    assert first.status_code == 201
    assert second.status_code == 400
    assert second.json()["error"] == "SlotTakenException"


@pytest.mark.asyncio
async def test_booking_outside_schedule_is_rejected(client, doctor, patient, next_monday):
    response = await book(client, doctor, next_monday, "13:00", bearer(patient))

    assert response.status_code == 400
    assert response.json()["error"] == "SlotNotAvailableException"


@pytest.mark.asyncio
async def test_booking_in_the_past_is_rejected(client, doctor, patient, next_monday):
    response = await book(client, doctor, next_monday - timedelta(days=14), "09:00", bearer(patient))

    assert response.status_code == 400
    assert response.json()["error"] == "BookingValidationException"


@pytest.mark.asyncio
async def test_manually_blocked_slot_is_rejected(client, doctor, patient, next_monday):
    """Test a blocked time is listed as free but cannot be booked."""
    block = await client.put(
        f"/api/v1/doctors/me/manual-blocks/{next_monday.isoformat()}",
        json={"times": ["10:00"]},
        headers=bearer(doctor),
    )
    assert block.status_code == 200
    assert block.json()["manual_blocks"] == {next_monday.isoformat(): ["10:00"]}

    times = await client.get(
        f"/api/v1/doctors/{doctor.id}/availability/times",
        params={"target_date": next_monday.isoformat(), "location": "Clinic A"},
    )
    assert "10:00" in times.json()["times"]

    response = await book(client, doctor, next_monday, "10:00", bearer(patient))
    assert response.status_code == 400
    assert response.json()["error"] == "SlotBlockedException"

    await client.delete(
        f"/api/v1/doctors/me/manual-blocks/{next_monday.isoformat()}", headers=bearer(doctor)
    )
    response = await book(client, doctor, next_monday, "10:00", bearer(patient))
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_doctor_books_own_calendar_for_guest(client, doctor, next_monday):
    response = await book(client, doctor, next_monday, "11:00", bearer(doctor), guest=GUEST)

    assert response.status_code == 201
    assert response.json()["created_by_doctor"] is True


@pytest.mark.asyncio
async def test_doctor_cannot_book_another_doctor(client, doctor, other_doctor, next_monday):
    response = await book(client, doctor, next_monday, "11:00", bearer(other_doctor), guest=GUEST)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_clinic_books_only_for_managed_doctors(
    client, clinic, doctor, other_doctor, next_monday
):
    managed = await book(client, doctor, next_monday, "09:00", bearer(clinic), guest=GUEST)
    unmanaged = await book(client, other_doctor, next_monday, "09:00", bearer(clinic), guest=GUEST)

    assert managed.status_code == 201
    assert managed.json()["created_by_doctor"] is False
    assert unmanaged.status_code == 403


@pytest.mark.asyncio
async def test_concurrent_booking_is_reported_as_slot_taken(
    client, doctor, patient, next_monday, monkeypatch
):
    """Test the unique index catches a booking the in-memory check missed."""
    first = await book(client, doctor, next_monday, "09:00", bearer(patient))
    assert first.status_code == 201

    monkeypatch.setattr(
        "app.services.appointment_service.check_slot_free", lambda *args, **kwargs: None
    )
    second = await book(client, doctor, next_monday, "09:00", guest=GUEST)

    assert second.status_code == 400
    assert second.json()["error"] == "SlotTakenException"


@pytest.mark.asyncio
async def test_cancel_frees_the_slot(client, db_session, doctor, patient, next_monday):
    created = await book(client, doctor, next_monday, "09:00", bearer(patient))
    appointment_id = created.json()["id"]

    response = await client.patch(
        f"/api/v1/appointments/{appointment_id}/cancel", headers=bearer(patient)
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "cancelled"
    assert data["cancelled_at"] is not None

    rebooked = await book(client, doctor, next_monday, "09:00", guest=GUEST)
    assert rebooked.status_code == 201

    refreshed = await IdentityService(db_session).find_identity_by_id(patient.id)
    assert refreshed.profile.cancellation_count == 1
    assert refreshed.profile.last_cancellation_date is not None


@pytest.mark.asyncio
async def test_cancel_by_unrelated_user_is_forbidden(
    client, db_session, doctor, other_doctor, patient, next_monday
):
    created = await book(client, doctor, next_monday, "09:00", bearer(patient))
    appointment_id = created.json()["id"]
    stranger = await make_patient(db_session, "stranger@example.com")

    for actor in (stranger, other_doctor):
        response = await client.patch(
            f"/api/v1/appointments/{appointment_id}/cancel", headers=bearer(actor)
        )
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_cancel_is_idempotent(client, db_session, doctor, patient, next_monday):
    created = await book(client, doctor, next_monday, "09:00", bearer(patient))
    appointment_id = created.json()["id"]

    first = await client.patch(f"/api/v1/appointments/{appointment_id}/cancel", headers=bearer(patient))
    second = await client.patch(f"/api/v1/appointments/{appointment_id}/cancel", headers=bearer(patient))

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["cancelled_at"] == first.json()["cancelled_at"]

    refreshed = await IdentityService(db_session).find_identity_by_id(patient.id)
    assert refreshed.profile.cancellation_count == 1


@pytest.mark.asyncio
async def test_concurrent_cancellations_count_once(
    client, db_session, doctor, patient, mailer, next_monday, monkeypatch
):
    """Test a cancel that lost the race leaves the cancellation policy alone."""
    yesterday = datetime.now(UTC) - timedelta(days=1)
    await IdentityService(db_session).update_profile(
        patient.id, {"cancellation_count": 1, "last_cancellation_date": yesterday.isoformat()}
    )
    created = await book(client, doctor, next_monday, "09:00", bearer(patient))
    appointment_id = UUID(created.json()["id"])
    # What a second request read before the first one committed
    stale = await AppointmentService(db_session, mailer=mailer).get_appointment(appointment_id, patient)
    assert stale.status == "scheduled"

    first = await client.patch(f"/api/v1/appointments/{appointment_id}/cancel", headers=bearer(patient))
    assert first.status_code == 200

    async with TestSessionLocal() as other_session:
        racing = AppointmentService(other_session, mailer=mailer)
        fetch = racing._fetch
        snapshots = [stale]

        async def fetch_stale_first(appointment_id):
            return snapshots.pop() if snapshots else await fetch(appointment_id)

        monkeypatch.setattr(racing, "_fetch", fetch_stale_first)
        second = await racing.cancel(appointment_id, patient)

    assert second.status == "cancelled"
    refreshed = await IdentityService(db_session).find_identity_by_id(patient.id)
    assert refreshed.profile.cancellation_count == 2
    assert refreshed.is_active is True
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_doctor_cancellation_does_not_count_against_patient(
    client, db_session, doctor, patient, next_monday
):
    created = await book(client, doctor, next_monday, "09:00", bearer(patient))

    response = await client.patch(
        f"/api/v1/appointments/{created.json()['id']}/cancel", headers=bearer(doctor)
    )

    assert response.status_code == 200
    refreshed = await IdentityService(db_session).find_identity_by_id(patient.id)
    assert refreshed.profile.cancellation_count == 0


@pytest.mark.asyncio
async def test_third_cancellation_deactivates_account(
    client, db_session, doctor, patient, mailer, next_monday
):
    """Test repeated cancellations deactivate the patient and send one notice."""
    headers = bearer(patient)
    ids = []
    for hhmm in ("09:00", "09:30", "10:00"):
        created = await book(client, doctor, next_monday, hhmm, headers)
        ids.append(created.json()["id"])

    for appointment_id in ids:
        response = await client.patch(f"/api/v1/appointments/{appointment_id}/cancel", headers=headers)
        assert response.status_code == 200

    refreshed = await IdentityService(db_session).find_identity_by_id(patient.id)
    assert refreshed.is_active is False
    assert refreshed.profile.cancellation_count == 3
    assert [recipient for recipient, _, _ in mailer.sent] == ["patient@example.com"]

    me = await client.get("/api/v1/users/me", headers=headers)
    assert me.status_code == 403
    assert me.json()["message"] == "User account is deactivated"


@pytest.mark.asyncio
async def test_failed_deactivation_notice_keeps_cancellation(
    client, db_session, doctor, patient, mailer, next_monday
):
    yesterday = datetime.now(UTC) - timedelta(days=1)
    await IdentityService(db_session).update_profile(
        patient.id, {"cancellation_count": 2, "last_cancellation_date": yesterday.isoformat()}
    )
    mailer.fail = True
    created = await book(client, doctor, next_monday, "09:00", bearer(patient))

    response = await client.patch(
        f"/api/v1/appointments/{created.json()['id']}/cancel", headers=bearer(patient)
    )

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    result = await db_session.execute(select(notifications.c.status, notifications.c.failure_reason))
    row = result.one()
    assert row.status == "failed"
    assert row.failure_reason == "SMTP server unavailable"


@pytest.mark.asyncio
async def test_patient_upcoming_and_past(client, db_session, doctor, patient, next_monday):
    created = await book(client, doctor, next_monday, "09:00", bearer(patient))
    assert created.status_code == 201

    # A past appointment written directly; booking refuses past dates
    await db_session.execute(
        appointments.insert().values(
            patient_id=patient.id,
            doctor_id=doctor.id,
            doctor_name=doctor.full_name,
            appointment_at=at(next_monday - timedelta(days=14), "09:00"),
            duration_minutes=30,
            location="Clinic A",
            status="scheduled",
        )
    )
    await db_session.commit()

    upcoming = await client.get("/api/v1/appointments/me/upcoming", headers=bearer(patient))
    past = await client.get("/api/v1/appointments/me/past", headers=bearer(patient))

    assert upcoming.json()["total"] == 1
    assert upcoming.json()["items"][0]["id"] == created.json()["id"]
    assert past.json()["total"] == 1
    assert past.json()["items"][0]["is_past"] is True


@pytest.mark.asyncio
async def test_doctor_appointment_list_filters(client, doctor, patient, next_monday):
    patient_booking = await book(client, doctor, next_monday, "09:00", bearer(patient))
    await book(client, doctor, next_monday, "09:30", bearer(doctor), guest=GUEST)
    cancelled = await book(client, doctor, next_monday, "10:00", guest=GUEST)
    await client.patch(f"/api/v1/appointments/{cancelled.json()['id']}/cancel", headers=bearer(doctor))

    all_items = await client.get(f"/api/v1/appointments/doctor/{doctor.id}", headers=bearer(doctor))
    patient_only = await client.get(
        f"/api/v1/appointments/doctor/{doctor.id}",
        params={"exclude_doctor_created": True, "upcoming": True},
        headers=bearer(doctor),
    )
    elsewhere = await client.get(
        f"/api/v1/appointments/doctor/{doctor.id}",
        params={"location": "Clinic B"},
        headers=bearer(doctor),
    )

    assert all_items.json()["total"] == 2
    assert [item["id"] for item in patient_only.json()["items"]] == [patient_booking.json()["id"]]
    assert elsewhere.json()["total"] == 0


@pytest.mark.asyncio
async def test_doctor_appointment_list_access(client, clinic, doctor, other_doctor, patient):
    own = await client.get(f"/api/v1/appointments/doctor/{doctor.id}", headers=bearer(doctor))
    managing_clinic = await client.get(f"/api/v1/appointments/doctor/{doctor.id}", headers=bearer(clinic))
    colleague = await client.get(f"/api/v1/appointments/doctor/{doctor.id}", headers=bearer(other_doctor))
    a_patient = await client.get(f"/api/v1/appointments/doctor/{doctor.id}", headers=bearer(patient))

    assert own.status_code == 200
    assert managing_clinic.status_code == 200
    assert colleague.status_code == 403
    assert a_patient.status_code == 403


@pytest.mark.asyncio
async def test_get_appointment_access(client, db_session, doctor, other_doctor, patient, next_monday):
    created = await book(client, doctor, next_monday, "09:00", bearer(patient))
    appointment_id = created.json()["id"]

    as_patient = await client.get(f"/api/v1/appointments/{appointment_id}", headers=bearer(patient))
    as_doctor = await client.get(f"/api/v1/appointments/{appointment_id}", headers=bearer(doctor))
    as_colleague = await client.get(f"/api/v1/appointments/{appointment_id}", headers=bearer(other_doctor))
    missing = await client.get(f"/api/v1/appointments/{uuid4()}", headers=bearer(patient))

    assert as_patient.status_code == 200
    assert as_doctor.status_code == 200
    assert as_colleague.status_code == 403
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_admin_filtered_list(client, admin, doctor, other_doctor, patient, next_monday):
    await book(client, doctor, next_monday, "09:00", bearer(patient))
    await book(client, other_doctor, next_monday, "09:00", guest=GUEST)
    cancelled = await book(client, doctor, next_monday, "09:30", guest=GUEST)
    await client.patch(f"/api/v1/appointments/{cancelled.json()['id']}/cancel", headers=bearer(admin))

    everything = await client.get("/api/v1/appointments/", headers=bearer(admin))
    by_doctor = await client.get(
        "/api/v1/appointments/", params={"doctor_id": str(doctor.id)}, headers=bearer(admin)
    )
    by_status = await client.get(
        "/api/v1/appointments/", params={"status": "cancelled"}, headers=bearer(admin)
    )
    by_patient = await client.get(
        "/api/v1/appointments/", params={"patient_id": str(patient.id)}, headers=bearer(admin)
    )
    out_of_range = await client.get(
        "/api/v1/appointments/",
        params={"from_date": at(next_monday + timedelta(days=1), "00:00").isoformat()},
        headers=bearer(admin),
    )
    not_admin = await client.get("/api/v1/appointments/", headers=bearer(patient))

    assert everything.json()["total"] == 3
    assert by_doctor.json()["total"] == 2
    assert by_status.json()["total"] == 1
    assert by_patient.json()["total"] == 1
    assert out_of_range.json()["total"] == 0
    assert not_admin.status_code == 403


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(client):
    response = await client.get("/api/v1/appointments/me/upcoming", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401
    assert response.json()["error"] == "HTTPException"


@pytest.mark.asyncio
async def test_list_requires_authentication(client):
    response = await client.get("/api/v1/appointments/me/upcoming")

    assert response.status_code == 401
