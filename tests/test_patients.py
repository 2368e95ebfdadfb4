"""Tests for patient registration, lookup and access rules."""

from conftest import auth_headers
from healthchain.models.audit_log import AuditAction, AuditLog
from healthchain.models.patient import Patient
from healthchain.services.record_numbers import validate_number_format


def _register(client, user, **overrides):
    body = {"first_name": "Anong", "last_name": "Wong", "national_id": "9876543210987", "blood_type": "O+"}
    body.update(overrides)
    return client.post("/api/patients", json=body, headers=auth_headers(user))


def test_register_assigns_hospital_number_and_masks_id(client, nurse):
    response = _register(client, nurse)

    assert response.status_code == 201
    data = response.json()["data"]
    assert validate_number_format("hospital_number", data["hospital_number"])
    assert data["national_id_masked"].endswith("0987")
    assert "9876543210987" not in response.text


def test_hospital_numbers_are_sequential(client, nurse, patient, other_patient):
    first = _register(client, nurse).json()["data"]["hospital_number"]
    second = _register(client, nurse, national_id="1111122222333").json()["data"]["hospital_number"]

    assert int(second[-6:]) == int(first[-6:]) + 1


def test_duplicate_national_id_is_409(client, nurse, patient):
    response = _register(client, nurse, national_id="1234567890123")

    assert response.status_code == 409


def test_invalid_blood_type_is_400(client, nurse):
    response = _register(client, nurse, blood_type="Z+")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_pharmacist_cannot_register(client, pharmacist):
    assert _register(client, pharmacist).status_code == 403


def test_lookup_by_hospital_number_is_audited(client, db, doctor, patient):
    response = client.get("/api/patients/hn2026000001", headers=auth_headers(doctor))

    assert response.status_code == 200
    assert response.json()["data"]["id"] == str(patient.id)
    assert db.query(AuditLog).filter(AuditLog.action == AuditAction.READ).count() == 1


def test_patient_sees_only_own_record(client, patient_user, patient, other_patient):
    own = client.get(f"/api/patients/{patient.id}", headers=auth_headers(patient_user))
    other = client.get(f"/api/patients/{other_patient.id}", headers=auth_headers(patient_user))

    assert own.status_code == 200
    assert other.status_code == 403


def test_search_by_name(client, doctor, patient, other_patient):
    response = client.get("/api/patients/search", params={"q": "Somchai"}, headers=auth_headers(doctor))

    assert response.json()["meta"]["count"] == 1


def test_list_paginates(client, doctor, patient, other_patient):
    response = client.get("/api/patients", params={"page": 1, "limit": 1}, headers=auth_headers(doctor))

    meta = response.json()["meta"]["pagination"]
    assert meta == {"page": 1, "limit": 1, "total": 2, "totalPages": 2}
    assert len(response.json()["data"]) == 1


def test_admin_soft_deletes(client, db, admin, doctor, patient):
    response = client.delete(f"/api/patients/{patient.id}", headers=auth_headers(admin))

    assert response.status_code == 200
    db.refresh(patient)
    assert patient.is_active is False
    assert db.query(Patient).count() == 1
    assert client.get(f"/api/patients/{patient.id}", headers=auth_headers(doctor)).status_code == 404


def test_doctor_cannot_delete(client, doctor, patient):
    assert client.delete(f"/api/patients/{patient.id}", headers=auth_headers(doctor)).status_code == 403
