"""Tests for the periodic maintenance jobs."""

from datetime import date, datetime, time, timedelta, timezone

from healthchain.models.appointment import Appointment, AppointmentStatus
from healthchain.models.consent import ConsentContractStatus
from healthchain.models.notification import Notification
from healthchain.services.consent import ConsentService
from healthchain.tasks.maintenance import (
    reminder_due,
    run_appointment_reminders,
    run_consent_contract_expiry,
)


NOW = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


def _appointment(db, patient, doctor, when, status=AppointmentStatus.SCHEDULED):
    appointment = Appointment(
        patient_id=patient.id,
        doctor_id=doctor.id,
        appointment_date=when.date(),
        appointment_time=when.time(),
        appointment_type="follow_up",
        status=status,
    )
    db.add(appointment)
    db.commit()
    return appointment


def test_reminder_window():
    assert reminder_due(date(2026, 3, 10), time(20, 0), NOW, 24)
    assert reminder_due(date(2026, 3, 11), time(8, 0), NOW, 24)
    assert not reminder_due(date(2026, 3, 11), time(9, 0), NOW, 24)
    assert not reminder_due(date(2026, 3, 10), time(7, 0), NOW, 24)


def test_reminders_are_sent_once(db, doctor, patient, patient_user):
    soon = _appointment(db, patient, doctor, NOW + timedelta(hours=3))
    _appointment(db, patient, doctor, NOW + timedelta(days=3))
    _appointment(db, patient, doctor, NOW + timedelta(hours=5), status=AppointmentStatus.CANCELLED)

    assert run_appointment_reminders(db, now=NOW, hours=24) == 1
    assert run_appointment_reminders(db, now=NOW, hours=24) == 0

    notification = db.query(Notification).one()
    assert notification.notification_type == "appointment_reminder"
    assert notification.user_id == patient_user.id
    db.refresh(soon)
    assert soon.reminder_sent_at is not None


def test_contract_expiry_sweep(db, doctor, patient):
    service = ConsentService(db, actor=doctor)
    request = service.create_request(patient, "research", "Registry", ["visits"])
    contract = service.respond(request, "approved")
    db.commit()
    contract.valid_until = datetime.now(timezone.utc) - timedelta(days=1)
    db.commit()

    assert run_consent_contract_expiry(db) == 1
    db.refresh(contract)
    assert contract.status == ConsentContractStatus.EXPIRED
