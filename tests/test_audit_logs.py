"""Tests for the admin audit log browser and its statistics."""

from datetime import timedelta

import pytest

from conftest import auth_headers
from healthchain.models.audit_log import AuditLog
from healthchain.models.mixins import utcnow
from healthchain.services.audit import AuditService


@pytest.fixture
def entries(db, doctor, nurse, patient):
    doctor_audit = AuditService(db, user=doctor)
    doctor_audit.log_create("visits", None, new_values={"fields": ["chief_complaint"]})
    doctor_audit.log_read("patients", patient.id)
    AuditService(db, user=nurse).log_delete("medical_documents", None)
    return db.query(AuditLog).all()


def _list(client, admin, **params):
    response = client.get("/api/admin/audit-logs", params=params, headers=auth_headers(admin))
    assert response.status_code == 200
    return response.json()


def test_filters_by_user_and_action(client, admin, doctor, entries):
    by_user = _list(client, admin, user_id=str(doctor.id))
    assert by_user["meta"]["pagination"]["total"] == 2

    deletes = _list(client, admin, action="DELETE")
    assert [e["resource_type"] for e in deletes["data"]] == ["medical_documents"]


def test_filters_by_resource_type(client, admin, entries):
    body = _list(client, admin, resource_type="patients")

    assert body["meta"]["pagination"]["total"] == 1
    assert body["data"][0]["action"] == "READ"


def test_date_range_excludes_older_entries(client, db, admin, entries):
    old = entries[0]
    old.created_at = utcnow() - timedelta(days=40)
    db.commit()

    body = _list(client, admin, start_date=(utcnow() - timedelta(days=7)).date().isoformat())

    assert body["meta"]["pagination"]["total"] == 2


def test_sort_by_action_ascending(client, admin, entries):
    body = _list(client, admin, sort="action", order="asc")

    assert [e["action"] for e in body["data"]] == ["CREATE", "DELETE", "READ"]


def test_unknown_sort_column_is_400(client, admin, entries):
    response = client.get("/api/admin/audit-logs", params={"sort": "password"}, headers=auth_headers(admin))

    assert response.status_code == 400


def test_suspicious_activity_starts_above_ten(client, db, admin, doctor, nurse, patient):
    doctor_audit = AuditService(db, user=doctor)
    for _ in range(11):
        doctor_audit.log_read("patients", patient.id)
    nurse_audit = AuditService(db, user=nurse)
    for _ in range(10):
        nurse_audit.log_read("patients", patient.id)

    response = client.get("/api/admin/audit-logs/stats", headers=auth_headers(admin))

    data = response.json()["data"]
    assert data["total"] == 21
    assert data["by_action"]["READ"] == 21
    assert data["suspicious_activity"] == [
        {"user_id": str(doctor.id), "action": "READ", "resource_type": "patients", "count": 11}
    ]


def test_unknown_entry_is_404(client, admin):
    response = client.get(
        "/api/admin/audit-logs/00000000-0000-0000-0000-000000000000", headers=auth_headers(admin)
    )

    assert response.status_code == 404


def test_staff_cannot_browse_audit_logs(client, doctor):
    assert client.get("/api/admin/audit-logs", headers=auth_headers(doctor)).status_code == 403
