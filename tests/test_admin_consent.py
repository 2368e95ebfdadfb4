"""Tests for admin consent management and the consent dashboard."""

from datetime import timedelta

import pytest

from conftest import auth_headers
from healthchain.models.consent import ConsentAuditTrail, ConsentContract, ConsentContractStatus
from healthchain.models.mixins import utcnow
from healthchain.services.consent import ConsentService


@pytest.fixture
def pending(db, doctor, patient):
    request = ConsentService(db, actor=doctor).create_request(
        patient, "research", "Hypertension registry", ["visits", "vital_signs"]
    )
    db.commit()
    return request


@pytest.fixture
def contract(db, patient_user, pending):
    contract = ConsentService(db, actor=patient_user).respond(pending, "approved")
    db.commit()
    return contract


def _put(client, admin, path, body=None):
    return client.put(f"/api/admin/consent{path}", json=body, headers=auth_headers(admin))


# ============================================================================
# Dashboard
# ============================================================================


def test_dashboard_stats_count_requests_and_contracts(client, db, admin, doctor, patient, contract):
    ConsentService(db, actor=doctor).create_request(patient, "insurance", "Claim 1182", ["visits"])
    db.commit()

    response = client.get("/api/admin/consent/dashboard/stats", headers=auth_headers(admin))

    stats = response.json()["data"]
    assert stats["totalRequests"] == 2
    assert stats["pendingRequests"] == 1
    assert stats["approvedRequests"] == 1
    assert stats["activeContracts"] == 1
    assert stats["expiredContracts"] == 0
    assert stats["violationAlerts"] == 0


def test_contract_past_validity_counts_as_expired(client, db, admin, contract):
    contract.valid_until = utcnow() - timedelta(days=1)
    db.commit()

    stats = client.get("/api/admin/consent/dashboard/stats", headers=auth_headers(admin)).json()["data"]

    assert stats["activeContracts"] == 0
    assert stats["expiredContracts"] == 1


def test_alerts_are_ordered_by_severity(client, db, admin):
    now = utcnow()
    for minutes, action in enumerate(("violation", "request_created", "warning", "violation")):
        db.add(ConsentAuditTrail(action=action, created_at=now - timedelta(minutes=minutes)))
    db.commit()

    response = client.get("/api/admin/consent/dashboard/alerts", headers=auth_headers(admin))

    alerts = response.json()["data"]
    assert [a["severity"] for a in alerts] == ["high", "high", "medium", "low"]
    assert alerts[0]["createdAt"] > alerts[1]["createdAt"]


def test_alert_limit(client, db, admin):
    for _ in range(4):
        db.add(ConsentAuditTrail(action="warning"))
    db.commit()

    response = client.get(
        "/api/admin/consent/dashboard/alerts", params={"limit": 2}, headers=auth_headers(admin)
    )

    assert len(response.json()["data"]) == 2


# ============================================================================
# Requests
# ============================================================================


def test_admin_approval_creates_contract(client, db, admin, pending):
    response = _put(client, admin, f"/requests/{pending.id}/approve", {"reason": "Ethics board cleared"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["request"]["status"] == "approved"
    assert data["contract"]["status"] == "active"
    assert db.query(ConsentContract).count() == 1


def test_admin_rejection_without_body(client, db, admin, pending):
    response = _put(client, admin, f"/requests/{pending.id}/reject")

    assert response.status_code == 200
    assert response.json()["data"]["contract"] is None
    assert db.query(ConsentContract).count() == 0


def test_deciding_twice_is_400(client, admin, pending):
    _put(client, admin, f"/requests/{pending.id}/reject")

    response = _put(client, admin, f"/requests/{pending.id}/approve")

    assert response.status_code == 400


def test_unknown_request_is_404(client, admin):
    response = _put(client, admin, "/requests/00000000-0000-0000-0000-000000000000/approve")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "CONSENT_REQUEST_NOT_FOUND"


def test_request_search_matches_patient_name(client, admin, pending):
    found = client.get("/api/admin/consent/requests", params={"search": "Jaidee"}, headers=auth_headers(admin))
    missed = client.get("/api/admin/consent/requests", params={"search": "Nobody"}, headers=auth_headers(admin))

    assert found.json()["meta"]["pagination"]["total"] == 1
    assert missed.json()["meta"]["pagination"]["total"] == 0


# ============================================================================
# Contracts
# ============================================================================


def test_contract_status_change_is_trailed(client, db, admin, contract):
    response = _put(client, admin, f"/contracts/{contract.id}/status", {"status": "suspended", "reason": "Audit"})

    assert response.status_code == 200
    db.refresh(contract)
    assert contract.status == ConsentContractStatus.SUSPENDED
    trail = db.query(ConsentAuditTrail).filter(ConsentAuditTrail.action == "contract_status_changed").one()
    assert trail.change_reason == "Audit"


def test_unknown_contract_is_404(client, admin):
    response = client.get(
        "/api/admin/consent/contracts/00000000-0000-0000-0000-000000000000", headers=auth_headers(admin)
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "CONSENT_CONTRACT_NOT_FOUND"


def test_dashboard_is_admin_only(client, doctor):
    response = client.get("/api/admin/consent/dashboard/stats", headers=auth_headers(doctor))

    assert response.status_code == 403
