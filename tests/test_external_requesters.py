"""Tests for external requester registration, review and consent gating."""

import pytest

from conftest import auth_headers
from healthchain.models.audit_log import AuditLog
from healthchain.models.consent import ConsentRequest
from healthchain.models.external_requester import ExternalRequester, RequesterStatus
from healthchain.models.notification import Notification


REQUESTER_PASSWORD = "Org!Passw0rd"


def _registration(**overrides):
    body = {
        "organization_name": "Siam Health Insurance",
        "organization_type": "insurance_company",
        "primary_contact_first_name": "Anong",
        "primary_contact_last_name": "Wong",
        "primary_contact_email": "contact@siam-insurance.example.com",
        "login_email": "login@siam-insurance.example.com",
        "password": REQUESTER_PASSWORD,
        "allowed_request_types": ["insurance"],
    }
    body.update(overrides)
    return body


def _login(client, email):
    return client.post("/api/auth/login", json={"email": email, "password": REQUESTER_PASSWORD})


@pytest.fixture
def registration(client):
    response = client.post("/api/external-requesters/register", json=_registration())
    assert response.status_code == 201
    return response.json()["data"]


@pytest.fixture
def requester(db, registration):
    return (
        db.query(ExternalRequester)
        .filter(ExternalRequester.registration_number == registration["registrationNumber"])
        .one()
    )


@pytest.fixture
def approved(client, db, admin, requester):
    response = client.put(
        f"/api/admin/external-requesters/{requester.id}/approve",
        json={"max_concurrent_requests": 2},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    db.refresh(requester)
    return requester


def _request_consent(client, user, patient, request_type="insurance"):
    return client.post(
        "/api/consent-requests",
        json={
            "patient_id": str(patient.id),
            "request_type": request_type,
            "purpose": "Claim review",
            "data_types": ["visits"],
        },
        headers=auth_headers(user),
    )


# ============================================================================
# Registration
# ============================================================================


def test_registration_is_pending_and_cannot_sign_in(client, registration):
    assert registration["registrationNumber"].startswith("ER")
    assert registration["status"] == "pending_admin_approval"
    assert registration["adminApproved"] is False

    response = _login(client, "login@siam-insurance.example.com")
    assert response.status_code == 403


def test_duplicate_login_email_is_409(client, registration):
    response = client.post(
        "/api/external-requesters/register",
        json=_registration(organization_name="Another Org"),
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "ACCOUNT_EXISTS"


def test_duplicate_username_is_409(client, doctor):
    response = client.post(
        "/api/external-requesters/register",
        json=_registration(username=doctor.username),
    )

    assert response.status_code == 409
    assert response.json()["error"]["message"] == "Username already exists"


def test_weak_password_is_rejected(client, db):
    response = client.post("/api/external-requesters/register", json=_registration(password="weakpassword"))

    assert response.status_code == 400
    assert db.query(ExternalRequester).count() == 0


def test_status_lookup_needs_matching_email(client, registration):
    number = registration["registrationNumber"]

    found = client.get(
        "/api/external-requesters/register/status",
        params={"registrationNumber": number, "email": "LOGIN@siam-insurance.example.com"},
    )
    assert found.status_code == 200
    assert found.json()["data"]["organizationName"] == "Siam Health Insurance"

    wrong = client.get(
        "/api/external-requesters/register/status",
        params={"registrationNumber": number, "email": "someone@else.example.com"},
    )
    assert wrong.status_code == 404
    assert wrong.json()["error"]["code"] == "REGISTRATION_NOT_FOUND"


# ============================================================================
# Admin review
# ============================================================================


def test_approval_activates_the_account(client, db, approved):
    assert approved.status == RequesterStatus.ACTIVE
    assert approved.is_verified is True
    assert approved.user.is_active is True
    assert approved.max_concurrent_requests == 2

    assert _login(client, "login@siam-insurance.example.com").status_code == 200
    assert db.query(Notification).filter(Notification.user_id == approved.user_id).count() == 1
    assert db.query(AuditLog).filter(AuditLog.resource_type == "external_requesters").count() == 2


def test_rejection_is_final(client, db, admin, requester):
    rejected = client.put(
        f"/api/admin/external-requesters/{requester.id}/reject",
        json={"reason": "Licence could not be verified"},
        headers=auth_headers(admin),
    )
    assert rejected.status_code == 200
    assert rejected.json()["data"]["status"] == "rejected"

    reopened = client.put(
        f"/api/admin/external-requesters/{requester.id}/status",
        json={"status": "active"},
        headers=auth_headers(admin),
    )
    assert reopened.status_code == 400
    assert _login(client, "login@siam-insurance.example.com").status_code == 403


def test_second_approval_is_400(client, admin, approved):
    response = client.put(
        f"/api/admin/external-requesters/{approved.id}/approve", headers=auth_headers(admin)
    )

    assert response.status_code == 400


def test_suspension_blocks_sign_in(client, admin, approved):
    response = client.put(
        f"/api/admin/external-requesters/{approved.id}/status",
        json={"status": "suspended", "reason": "Audit pending"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    assert _login(client, "login@siam-insurance.example.com").status_code == 403


def test_unknown_requester_is_404(client, admin):
    response = client.get(
        "/api/admin/external-requesters/00000000-0000-0000-0000-000000000000",
        headers=auth_headers(admin),
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "EXTERNAL_REQUESTER_NOT_FOUND"


def test_list_filters_by_status(client, admin, requester):
    pending = client.get(
        "/api/admin/external-requesters", params={"status": "pending"}, headers=auth_headers(admin)
    )
    active = client.get(
        "/api/admin/external-requesters", params={"status": "active"}, headers=auth_headers(admin)
    )

    assert pending.json()["meta"]["pagination"]["total"] == 1
    assert pending.json()["data"][0]["requestCounts"]["total"] == 0
    assert active.json()["meta"]["pagination"]["total"] == 0


def test_review_routes_are_admin_only(client, doctor, requester):
    response = client.get("/api/admin/external-requesters", headers=auth_headers(doctor))

    assert response.status_code == 403


# ============================================================================
# Profile and consent requests
# ============================================================================


def test_profile_update_keeps_access_scope(client, approved):
    response = client.put(
        "/api/external-requesters/profile",
        json={"primary_contact_phone": "021234567", "organization_name": "Siam Health Insurance PCL"},
        headers=auth_headers(approved.user),
    )
    assert response.status_code == 200

    profile = client.get("/api/external-requesters/profile", headers=auth_headers(approved.user))
    data = profile.json()["data"]
    assert data["profile"]["organization_name"] == "Siam Health Insurance PCL"
    assert data["profile"]["allowed_request_types"] == ["insurance"]
    assert data["requestCounts"]["total"] == 0


def test_approved_requester_can_ask_for_consent(client, db, approved, patient):
    response = _request_consent(client, approved.user, patient)

    assert response.status_code == 201
    assert db.query(ConsentRequest).filter(ConsentRequest.requester_id == approved.user_id).count() == 1


def test_request_type_outside_allow_list_is_400(client, db, approved, patient):
    response = _request_consent(client, approved.user, patient, request_type="research")

    assert response.status_code == 400
    assert db.query(ConsentRequest).count() == 0


def test_pending_request_limit(client, db, approved, patient, other_patient):
    assert _request_consent(client, approved.user, patient).status_code == 201
    assert _request_consent(client, approved.user, other_patient).status_code == 201

    third = _request_consent(client, approved.user, patient)

    assert third.status_code == 400
    assert "pending requests" in third.json()["error"]["message"]


def test_stats_count_organisations_and_requests(client, admin, approved, patient):
    _request_consent(client, approved.user, patient)

    stats = client.get("/api/admin/external-requesters/stats", headers=auth_headers(admin)).json()["data"]

    assert stats["overall"]["total"] == 1
    assert stats["overall"]["active"] == 1
    assert stats["overall"]["verified"] == 1
    assert stats["byOrganizationType"] == [{"organizationType": "insurance_company", "count": 1}]
    assert stats["requests"]["pending"] == 1
