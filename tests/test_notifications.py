"""Tests for patient, personal and admin notification routes."""

import pytest

from conftest import auth_headers
from healthchain.models.audit_log import AuditAction, AuditLog
from healthchain.models.notification import Notification, NotificationStatus
from healthchain.services.notifications import create_notification


@pytest.fixture
def notification(db, patient, patient_user):
    notification = create_notification(
        db,
        title="Lab results ready",
        message="Your HbA1c result is available",
        notification_type="lab_result",
        patient_id=patient.id,
        user_id=patient_user.id,
    )
    db.commit()
    return notification


def _audit_count(db, action):
    return (
        db.query(AuditLog)
        .filter(AuditLog.resource_type == "notifications", AuditLog.action == action)
        .count()
    )


# ============================================================================
# Patient and personal notifications
# ============================================================================


def test_patient_sees_unread_count(client, patient_user, patient, notification):
    response = client.get(f"/api/patients/{patient.id}/notifications", headers=auth_headers(patient_user))

    assert response.status_code == 200
    assert response.json()["meta"]["unreadCount"] == 1
    assert response.json()["data"][0]["title"] == "Lab results ready"


def test_second_mark_read_is_400(client, patient_user, patient, notification):
    url = f"/api/patients/{patient.id}/notifications/{notification.id}/read"

    first = client.put(url, headers=auth_headers(patient_user))
    assert first.status_code == 200
    assert first.json()["data"]["status"] == "read"

    second = client.put(url, headers=auth_headers(patient_user))
    assert second.status_code == 400
    assert second.json()["error"]["message"] == "Notification is already read"


def test_own_notification_read_is_400_when_already_read(client, patient_user, notification):
    url = f"/api/notifications/{notification.id}/read"

    assert client.put(url, headers=auth_headers(patient_user)).status_code == 200
    assert client.put(url, headers=auth_headers(patient_user)).status_code == 400


def test_other_users_notification_is_404(client, doctor, notification):
    response = client.put(f"/api/notifications/{notification.id}/read", headers=auth_headers(doctor))

    assert response.status_code == 404


def test_patient_cannot_read_another_patients_notifications(client, patient_user, other_patient):
    response = client.get(
        f"/api/patients/{other_patient.id}/notifications", headers=auth_headers(patient_user)
    )

    assert response.status_code == 403


# ============================================================================
# Admin
# ============================================================================


def test_broadcast_without_title_is_400(client, admin):
    response = client.post(
        "/api/admin/notifications/system", json={"message": "Maintenance"}, headers=auth_headers(admin)
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "MISSING_REQUIRED_FIELDS"


def test_broadcast_to_unknown_users_is_400(client, admin):
    response = client.post(
        "/api/admin/notifications/system",
        json={
            "title": "Maintenance",
            "message": "Downtime at 22:00",
            "userIds": ["00000000-0000-0000-0000-000000000000"],
        },
        headers=auth_headers(admin),
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "NO_TARGET_USERS"


def test_broadcast_reaches_every_active_user(client, db, admin, doctor, nurse):
    response = client.post(
        "/api/admin/notifications/system",
        json={"title": "Maintenance", "message": "Downtime at 22:00"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 201
    assert response.json()["data"]["sent"] == 3
    assert _audit_count(db, AuditAction.CREATE) == 1


def test_unknown_template_is_404(client, admin):
    response = client.post(
        "/api/admin/notifications/templates/send",
        json={"templateId": "does-not-exist"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "TEMPLATE_NOT_FOUND"


def test_bulk_mark_read_is_audited(client, db, admin, notification):
    response = client.put(
        "/api/admin/notifications/mark-read",
        json={"notificationIds": [str(notification.id)]},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    assert response.json()["data"]["updated"] == 1
    assert _audit_count(db, AuditAction.UPDATE) == 1


def test_archive_and_delete_are_audited(client, db, admin, notification):
    archived = client.put(
        f"/api/admin/notifications/{notification.id}/archive", headers=auth_headers(admin)
    )
    assert archived.status_code == 200
    assert archived.json()["data"]["status"] == NotificationStatus.ARCHIVED.value

    deleted = client.delete(f"/api/admin/notifications/{notification.id}", headers=auth_headers(admin))
    assert deleted.status_code == 200

    assert db.query(Notification).count() == 0
    assert _audit_count(db, AuditAction.UPDATE) == 1
    assert _audit_count(db, AuditAction.DELETE) == 1


def test_admin_routes_reject_staff(client, doctor, notification):
    response = client.delete(f"/api/admin/notifications/{notification.id}", headers=auth_headers(doctor))

    assert response.status_code == 403
