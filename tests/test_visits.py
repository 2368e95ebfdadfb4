"""Tests for visits, vital signs and lab orders."""

from conftest import auth_headers
from healthchain.models.lab import LabOrder
from healthchain.models.prescription import Prescription
from healthchain.models.visit import Visit, VitalSigns
from healthchain.services.record_numbers import validate_number_format


def _create_visit(client, user, patient, **overrides):
    body = {"chief_complaint": "Headache", "visit_type": "walk_in"}
    body.update(overrides)
    return client.post(f"/api/patients/{patient.id}/visits", json=body, headers=auth_headers(user))


def test_visit_with_children_is_created_together(client, db, doctor, patient):
    response = _create_visit(
        client,
        doctor,
        patient,
        vital_signs={"weight": 81, "height": 180, "systolic_bp": 130, "diastolic_bp": 85},
        lab_orders=[{"test_name": "HbA1c", "test_category": "chemistry", "specimen_type": "blood"}],
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert validate_number_format("visit_number", data["visit_number"])
    assert data["doctor_id"] == str(doctor.id)
    assert len(data["lab_orders"]) == 1
    assert validate_number_format("lab_order_number", data["lab_orders"][0]["order_number"])

    vitals = db.query(VitalSigns).one()
    assert float(vitals.bmi) == 25.0


def test_non_physician_doctor_id_is_404(client, db, nurse, patient):
    response = _create_visit(client, nurse, patient, doctor_id=str(nurse.id))

    assert response.status_code == 404
    assert db.query(Visit).count() == 0


def test_complete_visit_once(client, doctor, patient):
    visit = _create_visit(client, doctor, patient).json()["data"]
    url = f"/api/visits/{visit['id']}/complete"

    first = client.put(url, json={"diagnosis": "Tension headache"}, headers=auth_headers(doctor))
    second = client.put(url, json={}, headers=auth_headers(doctor))

    assert first.status_code == 200
    assert first.json()["data"]["status"] == "completed"
    assert first.json()["data"]["diagnosis"] == "Tension headache"
    assert second.status_code == 404


def test_lab_result_completes_order(client, db, doctor, patient):
    visit = _create_visit(client, doctor, patient).json()["data"]
    order = client.post(
        f"/api/visits/{visit['id']}/lab-orders",
        json={"test_name": "Glucose", "test_category": "chemistry", "specimen_type": "blood"},
        headers=auth_headers(doctor),
    ).json()["data"]
    assert order["status"] == "ordered"

    result = client.post(
        f"/api/lab-orders/{order['id']}/results",
        json={"result_value": "180", "result_numeric": 180, "unit": "mg/dL", "abnormal_flag": "high"},
        headers=auth_headers(doctor),
    )
    assert result.status_code == 201

    locked = client.put(
        f"/api/lab-orders/{order['id']}", json={"test_name": "Fasting glucose"}, headers=auth_headers(doctor)
    )
    assert locked.status_code == 400
    assert db.query(LabOrder).one().completed_at is not None


def test_nurse_cannot_order_labs(client, doctor, nurse, patient):
    visit = _create_visit(client, doctor, patient).json()["data"]

    response = client.post(
        f"/api/visits/{visit['id']}/lab-orders",
        json={"test_name": "CBC", "test_category": "hematology", "specimen_type": "blood"},
        headers=auth_headers(nurse),
    )

    assert response.status_code == 403


def test_failing_child_rolls_the_visit_back(client, db, doctor, patient, monkeypatch):
    first = _create_visit(
        client, doctor, patient,
        lab_orders=[{"test_name": "CBC", "test_category": "hematology", "specimen_type": "blood"}],
    ).json()["data"]
    taken_number = first["lab_orders"][0]["order_number"]
    monkeypatch.setattr(
        "healthchain.api.visits.generate_lab_order_number", lambda db: taken_number
    )

    response = _create_visit(
        client, doctor, patient,
        vital_signs={"weight": 70, "height": 170},
        lab_orders=[{"test_name": "Lipid panel", "test_category": "chemistry", "specimen_type": "blood"}],
        prescriptions=[{"items": [{"medication_name": "Paracetamol 500mg"}]}],
    )

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "VISIT_CREATE_FAILED"
    assert db.query(Visit).count() == 1
    assert db.query(VitalSigns).count() == 0
    assert db.query(LabOrder).count() == 1
    assert db.query(Prescription).count() == 0
