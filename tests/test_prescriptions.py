"""Tests for prescriptions and the patient medication list."""

import pytest

from conftest import auth_headers
from healthchain.models.prescription import MedicationStatus, PrescriptionItem
from healthchain.services.record_numbers import validate_number_format


def _visit(client, doctor, patient):
    response = client.post(
        f"/api/patients/{patient.id}/visits",
        json={"chief_complaint": "Fever", "visit_type": "walk_in"},
        headers=auth_headers(doctor),
    )
    assert response.status_code == 201
    return response.json()["data"]


def _prescribe(client, doctor, visit_id, *names):
    return client.post(
        f"/api/visits/{visit_id}/prescriptions",
        json={"items": [{"medication_name": name, "quantity_prescribed": 10} for name in names]},
        headers=auth_headers(doctor),
    )


@pytest.fixture
def prescription(client, doctor, patient):
    response = _prescribe(client, doctor, _visit(client, doctor, patient)["id"], "Amoxicillin 500mg", "Paracetamol 500mg")
    assert response.status_code == 201
    return response.json()["data"]


def _set_status(client, user, prescription_id, new_status):
    return client.put(
        f"/api/prescriptions/{prescription_id}/status",
        json={"status": new_status},
        headers=auth_headers(user),
    )


# ============================================================================
# Prescriptions
# ============================================================================


def test_prescription_is_numbered_and_pending(prescription):
    assert validate_number_format("prescription_number", prescription["prescription_number"])
    assert prescription["status"] == "pending"
    assert len(prescription["items"]) == 2


def test_nurse_cannot_prescribe(client, doctor, nurse, patient):
    visit = _visit(client, doctor, patient)

    assert _prescribe(client, nurse, visit["id"], "Ibuprofen").status_code == 403


def test_dispensing_marks_items_and_dispenser(client, db, pharmacist, prescription):
    response = _set_status(client, pharmacist, prescription["id"], "dispensed")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "dispensed"
    assert data["dispensed_by"] == str(pharmacist.id)
    assert {item["item_status"] for item in data["items"]} == {"dispensed"}


def test_same_status_is_400(client, pharmacist, prescription):
    response = _set_status(client, pharmacist, prescription["id"], "pending")

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Prescription is already pending"


def test_dispensed_cannot_revert_to_pending(client, pharmacist, prescription):
    _set_status(client, pharmacist, prescription["id"], "dispensed")

    response = _set_status(client, pharmacist, prescription["id"], "pending")

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Cannot revert a dispensed prescription"


def test_cancelled_is_final(client, doctor, pharmacist, prescription):
    assert _set_status(client, doctor, prescription["id"], "cancelled").status_code == 200

    response = _set_status(client, pharmacist, prescription["id"], "dispensed")

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Cannot change a cancelled prescription"


def test_nurse_cannot_dispense(client, nurse, prescription):
    assert _set_status(client, nurse, prescription["id"], "dispensed").status_code == 403


# ============================================================================
# Medications
# ============================================================================


def test_medications_list_prescription_items(client, nurse, patient, prescription):
    response = client.get(f"/api/patients/{patient.id}/medications", headers=auth_headers(nurse))

    assert response.status_code == 200
    data = response.json()["data"]
    assert [m["medication_name"] for m in data] == ["Amoxicillin 500mg", "Paracetamol 500mg"]
    assert data[0]["prescription_number"] == prescription["prescription_number"]


def test_add_medication_to_own_prescription(client, db, doctor, patient, prescription):
    response = client.post(
        f"/api/patients/{patient.id}/medications",
        json={"prescription_id": prescription["id"], "medication_name": "Loratadine 10mg"},
        headers=auth_headers(doctor),
    )

    assert response.status_code == 201
    assert response.json()["data"]["item_status"] == MedicationStatus.PRESCRIBED.value
    assert db.query(PrescriptionItem).count() == 3


def test_prescription_of_another_patient_is_404(client, db, doctor, other_patient, prescription):
    response = client.post(
        f"/api/patients/{other_patient.id}/medications",
        json={"prescription_id": prescription["id"], "medication_name": "Loratadine 10mg"},
        headers=auth_headers(doctor),
    )

    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Prescription not found"
    assert db.query(PrescriptionItem).count() == 2


def test_medication_of_another_patient_cannot_be_edited(client, doctor, other_patient, prescription):
    item_id = prescription["items"][0]["id"]

    response = client.put(
        f"/api/patients/{other_patient.id}/medications/{item_id}",
        json={"notes": "Take with food"},
        headers=auth_headers(doctor),
    )

    assert response.status_code == 404


def test_empty_medication_update_is_400(client, doctor, patient, prescription):
    response = client.put(
        f"/api/patients/{patient.id}/medications/{prescription['items'][0]['id']}",
        json={},
        headers=auth_headers(doctor),
    )

    assert response.status_code == 400
