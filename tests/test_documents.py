"""Tests for medical document routes."""

import pytest

from conftest import auth_headers
from healthchain.models.document import MedicalDocument


def _document(**overrides):
    body = {
        "document_type": "medical_certificate",
        "document_title": "Sick leave certificate",
        "content": "Patient requires 3 days of rest.",
        "issued_by": "Dr. Doctor Test",
    }
    body.update(overrides)
    return body


@pytest.fixture
def document(client, doctor, patient):
    response = client.post(
        f"/api/patients/{patient.id}/documents", json=_document(), headers=auth_headers(doctor)
    )
    assert response.status_code == 201
    return response.json()["data"]


def test_missing_fields_are_listed_together(client, db, doctor, patient):
    response = client.post(
        f"/api/patients/{patient.id}/documents",
        json={"document_type": "referral_letter"},
        headers=auth_headers(doctor),
    )

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"]["missing"] == ["document_title", "content", "issued_by"]
    assert db.query(MedicalDocument).count() == 0


def test_unknown_patient_is_404(client, doctor):
    response = client.post("/api/patients/HN2026999999/documents", json=_document(), headers=auth_headers(doctor))

    assert response.status_code == 404


def test_visit_of_another_patient_is_404(client, doctor, patient):
    response = client.post(
        f"/api/patients/{patient.id}/documents",
        json=_document(visit_id="00000000-0000-0000-0000-000000000000"),
        headers=auth_headers(doctor),
    )

    assert response.status_code == 404


def test_created_document_is_draft_and_listed(client, nurse, patient, document):
    assert document["status"] == "draft"

    response = client.get(
        f"/api/patients/{patient.id}/documents",
        params={"documentType": "medical_certificate"},
        headers=auth_headers(nurse),
    )

    assert response.json()["meta"]["pagination"]["total"] == 1


def test_pharmacist_cannot_write_documents(client, pharmacist, patient):
    response = client.post(
        f"/api/patients/{patient.id}/documents", json=_document(), headers=auth_headers(pharmacist)
    )

    assert response.status_code == 403


def test_empty_update_is_400(client, doctor, document):
    response = client.put(f"/api/documents/{document['id']}", json={}, headers=auth_headers(doctor))

    assert response.status_code == 400


def test_patient_reads_own_document_only(client, db, doctor, patient_user, other_patient, document):
    own = client.get(f"/api/documents/{document['id']}", headers=auth_headers(patient_user))
    assert own.status_code == 200

    foreign = client.post(
        f"/api/patients/{other_patient.id}/documents", json=_document(), headers=auth_headers(doctor)
    ).json()["data"]
    denied = client.get(f"/api/documents/{foreign['id']}", headers=auth_headers(patient_user))
    assert denied.status_code == 403
