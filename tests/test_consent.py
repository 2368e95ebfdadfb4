"""Tests for the consent request lifecycle."""

from datetime import timedelta
from uuid import UUID

import pytest

from conftest import auth_headers
from healthchain.models.consent import (
    ConsentAuditTrail,
    ConsentContract,
    ConsentRequest,
    ConsentRequestStatus,
)
from healthchain.models.mixins import utcnow
from healthchain.services.consent import ConsentService, ConsentStateError
from healthchain.tasks.maintenance import run_consent_request_expiry


@pytest.fixture
def consent_request(client, doctor, patient):
    response = client.post(
        f"/api/patients/{patient.id}/consent-requests",
        json={
            "request_type": "research",
            "purpose": "Diabetes outcomes study",
            "data_types": ["lab_results", "prescriptions"],
        },
        headers=auth_headers(doctor),
    )
    assert response.status_code == 201
    return response.json()["data"]


def _respond(client, user, patient, request_id, response="approved"):
    return client.put(
        f"/api/patients/{patient.id}/consent-requests/{request_id}/respond",
        json={"response": response},
        headers=auth_headers(user),
    )


def test_approval_creates_contract_once(client, db, patient_user, patient, consent_request):
    response = _respond(client, patient_user, patient, consent_request["id"])

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["request"]["status"] == "approved"
    assert data["contract"]["status"] == "active"
    assert data["contract"]["contract_number"].startswith("CT")

    second = _respond(client, patient_user, patient, consent_request["id"])
    assert second.status_code == 400
    assert second.json()["error"]["message"] == "Consent request has already been responded to"
    assert db.query(ConsentContract).count() == 1


def test_rejection_creates_no_contract(client, db, patient_user, patient, consent_request):
    response = _respond(client, patient_user, patient, consent_request["id"], "rejected")

    assert response.status_code == 200
    assert response.json()["data"]["contract"] is None
    assert db.query(ConsentContract).count() == 0


def test_expired_request_cannot_be_answered(client, db, patient_user, patient, consent_request):
    row = db.get(ConsentRequest, UUID(consent_request["id"]))
    row.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    response = _respond(client, patient_user, patient, consent_request["id"])

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Consent request has expired"


def test_invalid_response_value(client, patient_user, patient, consent_request):
    response = _respond(client, patient_user, patient, consent_request["id"], "maybe")

    assert response.status_code == 400


def test_request_of_another_patient_is_404(client, db, doctor, patient_user, patient, other_patient):
    foreign = ConsentService(db, actor=doctor).create_request(
        other_patient, "research", "Cohort study", ["visits"]
    )
    db.commit()

    response = _respond(client, patient_user, patient, foreign.id)

    assert response.status_code == 404


def test_list_reports_status_summary(client, patient_user, patient, consent_request):
    response = client.get(
        f"/api/patients/{patient.id}/consent-requests", headers=auth_headers(patient_user)
    )

    meta = response.json()["meta"]
    assert meta["status_summary"]["pending"] == 1
    assert meta["status_summary"]["approved"] == 0
    assert meta["pagination"]["total"] == 1


def test_service_rejects_second_response(db, doctor, patient):
    service = ConsentService(db, actor=doctor)
    request = service.create_request(patient, "insurance", "Claim review", ["visits"])
    service.respond(request, "approved")

    with pytest.raises(ConsentStateError):
        service.respond(request, "rejected")


def test_expiry_sweep_marks_stale_requests(db, doctor, patient):
    request = ConsentService(db, actor=doctor).create_request(
        patient, "research", "Old study", ["lab_results"]
    )
    request.expires_at = utcnow() - timedelta(days=1)
    db.commit()

    assert run_consent_request_expiry(db) == 1
    db.refresh(request)
    assert request.status == ConsentRequestStatus.EXPIRED
    assert db.query(ConsentAuditTrail).filter(ConsentAuditTrail.action == "request_expired").count() == 1


def test_swept_request_reports_expired(client, db, patient_user, patient, consent_request):
    row = db.get(ConsentRequest, UUID(consent_request["id"]))
    row.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()
    assert run_consent_request_expiry(db) == 1

    response = _respond(client, patient_user, patient, consent_request["id"])

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Consent request has expired"


# ============================================================================
# Admin status override
# ============================================================================


def _set_status(client, admin, request_id, new_status):
    return client.put(
        f"/api/admin/consent/requests/{request_id}/status",
        json={"status": new_status},
        headers=auth_headers(admin),
    )


def test_answered_request_cannot_be_reopened(client, db, admin, patient_user, patient, consent_request):
    _respond(client, patient_user, patient, consent_request["id"])

    response = _set_status(client, admin, consent_request["id"], "pending")

    assert response.status_code == 400
    assert db.get(ConsentRequest, UUID(consent_request["id"])).status == ConsentRequestStatus.APPROVED


def test_override_approval_creates_a_single_contract(client, db, admin, consent_request):
    first = _set_status(client, admin, consent_request["id"], "approved")
    assert first.status_code == 200
    assert first.json()["data"]["status"] == "approved"
    assert db.query(ConsentContract).count() == 1

    second = _set_status(client, admin, consent_request["id"], "approved")

    assert second.status_code == 400
    assert db.query(ConsentContract).count() == 1
