"""Tests for appointment booking, conflicts and cancellation."""

from datetime import date, timedelta

from conftest import auth_headers


def _book(client, user, patient, doctor, **overrides):
    body = {
        "doctor_id": str(doctor.id),
        "appointment_date": (date.today() + timedelta(days=3)).isoformat(),
        "appointment_time": "09:30:00",
        "appointment_type": "consultation",
    }
    body.update(overrides)
    return client.post(
        f"/api/patients/{patient.id}/appointments", json=body, headers=auth_headers(user)
    )


def test_book_appointment_returns_201_in_envelope(client, nurse, doctor, patient):
    response = _book(client, nurse, patient, doctor)

    assert response.status_code == 201
    body = response.json()
    assert body["statusCode"] == 201
    assert body["error"] is None
    assert body["data"]["status"] == "scheduled"
    assert body["data"]["doctor_id"] == str(doctor.id)


def test_same_physician_same_slot_conflicts(client, nurse, doctor, patient, other_patient):
    assert _book(client, nurse, patient, doctor).status_code == 201

    response = _book(client, nurse, other_patient, doctor)

    assert response.status_code == 409
    assert response.json()["error"]["message"] == "Appointment time conflict with existing appointment"


def test_cancelled_appointment_frees_the_slot(client, nurse, doctor, patient, other_patient):
    first = _book(client, nurse, patient, doctor).json()["data"]
    cancel = client.put(
        f"/api/appointments/{first['id']}/cancel",
        json={"reason": "Patient travelling"},
        headers=auth_headers(nurse),
    )
    assert cancel.status_code == 200
    assert cancel.json()["data"]["status"] == "cancelled"

    assert _book(client, nurse, other_patient, doctor).status_code == 201


def test_cancel_twice_is_rejected(client, nurse, doctor, patient):
    appointment = _book(client, nurse, patient, doctor).json()["data"]
    url = f"/api/appointments/{appointment['id']}/cancel"

    assert client.put(url, json={}, headers=auth_headers(nurse)).status_code == 200
    response = client.put(url, json={}, headers=auth_headers(nurse))

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Appointment is already cancelled"


def test_unknown_physician_is_404(client, nurse, patient, admin):
    response = _book(client, nurse, patient, admin)

    assert response.status_code == 404


def test_history_records_cancellation(client, nurse, doctor, patient):
    appointment = _book(client, nurse, patient, doctor).json()["data"]
    client.put(f"/api/appointments/{appointment['id']}/cancel", json={}, headers=auth_headers(nurse))

    response = client.get(f"/api/appointments/{appointment['id']}/history", headers=auth_headers(nurse))

    actions = [entry["action"] for entry in response.json()["data"]]
    assert "cancelled" in actions


def test_patient_cannot_list_another_patients_appointments(client, patient_user, other_patient):
    response = client.get(
        f"/api/patients/{other_patient.id}/appointments", headers=auth_headers(patient_user)
    )

    assert response.status_code == 403


def test_no_show_reopened_into_a_taken_slot_conflicts(client, nurse, doctor, patient, other_patient):
    first = _book(client, nurse, patient, doctor).json()["data"]
    url = f"/api/appointments/{first['id']}"
    assert client.put(url, json={"status": "no_show"}, headers=auth_headers(nurse)).status_code == 200
    assert _book(client, nurse, other_patient, doctor).status_code == 201

    response = client.put(url, json={"status": "scheduled"}, headers=auth_headers(nurse))

    assert response.status_code == 409
    assert response.json()["error"]["message"] == "Appointment time conflict with existing appointment"


def test_no_show_reopened_into_a_free_slot_is_allowed(client, nurse, doctor, patient):
    first = _book(client, nurse, patient, doctor).json()["data"]
    url = f"/api/appointments/{first['id']}"
    client.put(url, json={"status": "no_show"}, headers=auth_headers(nurse))

    response = client.put(url, json={"status": "confirmed"}, headers=auth_headers(nurse))

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "confirmed"
