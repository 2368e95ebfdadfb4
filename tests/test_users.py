"""Tests for admin user management."""

from conftest import TEST_PASSWORD, auth_headers
from healthchain.models.audit_log import AuditAction, AuditLog
from healthchain.models.user import User


def _new_user(**overrides):
    body = {
        "email": "new.nurse@hospital.example.com",
        "username": "newnurse",
        "password": TEST_PASSWORD,
        "first_name": "New",
        "last_name": "Nurse",
        "role": "nurse",
    }
    body.update(overrides)
    return body


def test_create_user_is_audited(client, db, admin):
    response = client.post("/api/admin/users", json=_new_user(), headers=auth_headers(admin))

    assert response.status_code == 201
    assert response.json()["data"]["role"] == "nurse"
    log = db.query(AuditLog).filter(AuditLog.resource_type == "users").one()
    assert log.action == AuditAction.CREATE
    assert log.new_values == {"role": "nurse"}


def test_duplicate_email_is_409(client, admin, doctor):
    response = client.post(
        "/api/admin/users", json=_new_user(email=doctor.email.upper()), headers=auth_headers(admin)
    )

    assert response.status_code == 409
    assert response.json()["error"]["message"] == "Email already exists"


def test_duplicate_username_is_409(client, admin, doctor):
    response = client.post(
        "/api/admin/users", json=_new_user(username=doctor.username), headers=auth_headers(admin)
    )

    assert response.status_code == 409
    assert response.json()["error"]["message"] == "Username already exists"


def test_weak_password_is_400(client, db, admin):
    response = client.post("/api/admin/users", json=_new_user(password="alllowercase1"), headers=auth_headers(admin))

    assert response.status_code == 400
    assert db.query(User).filter(User.username == "newnurse").count() == 0


def test_update_to_taken_email_is_409(client, admin, doctor, nurse):
    response = client.put(
        f"/api/admin/users/{nurse.id}", json={"email": doctor.email}, headers=auth_headers(admin)
    )

    assert response.status_code == 409


def test_self_delete_is_400(client, admin):
    response = client.delete(f"/api/admin/users/{admin.id}", headers=auth_headers(admin))

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "You cannot delete your own account"


def test_self_deactivation_is_400(client, admin):
    response = client.put(f"/api/admin/users/{admin.id}", json={"is_active": False}, headers=auth_headers(admin))

    assert response.status_code == 400


def test_delete_deactivates(client, db, admin, nurse):
    response = client.delete(f"/api/admin/users/{nurse.id}", headers=auth_headers(admin))

    assert response.status_code == 200
    db.refresh(nurse)
    assert nurse.is_active is False
    assert client.post(
        "/api/auth/login", json={"email": nurse.email, "password": TEST_PASSWORD}
    ).status_code == 403


def test_list_filters_by_role(client, admin, doctor, nurse):
    response = client.get("/api/admin/users", params={"role": "doctor"}, headers=auth_headers(admin))

    assert response.json()["meta"]["pagination"]["total"] == 1
    assert response.json()["data"][0]["username"] == "doctor"


def test_unknown_user_is_404(client, admin):
    response = client.get(
        "/api/admin/users/00000000-0000-0000-0000-000000000000", headers=auth_headers(admin)
    )

    assert response.status_code == 404


def test_staff_cannot_manage_users(client, doctor):
    assert client.get("/api/admin/users", headers=auth_headers(doctor)).status_code == 403
