"""Tests for login, profile and password changes."""

import pytest
from fastapi import HTTPException

from conftest import TEST_PASSWORD, auth_headers, make_user
from healthchain.api.auth import validate_password_strength
from healthchain.models.audit_log import AuditLog
from healthchain.models.user import UserRole


def test_login_returns_tokens_and_permissions(client, doctor):
    response = client.post("/api/auth/login", json={"email": doctor.email, "password": TEST_PASSWORD})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["token_type"] == "bearer"
    assert data["access_token"]
    assert data["user"]["email"] == doctor.email
    assert "patient.read" in data["permissions"]


def test_login_accepts_username(client, nurse):
    response = client.post("/api/auth/login", json={"email": nurse.username, "password": TEST_PASSWORD})

    assert response.status_code == 200


def test_wrong_password_is_401_and_audited(client, db, doctor):
    response = client.post("/api/auth/login", json={"email": doctor.email, "password": "nope"})

    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid email or password"
    assert db.query(AuditLog).filter(AuditLog.success.is_(False)).count() == 1


def test_deactivated_account_is_403(client, db):
    user = make_user(db, UserRole.STAFF, "gone", is_active=False)

    response = client.post("/api/auth/login", json={"email": user.email, "password": TEST_PASSWORD})

    assert response.status_code == 403


def test_me_requires_token(client):
    assert client.get("/api/auth/me").status_code == 401


def test_me_returns_profile(client, pharmacist):
    response = client.get("/api/auth/me", headers=auth_headers(pharmacist))

    assert response.status_code == 200
    assert response.json()["data"]["user"]["role"] == "pharmacist"


def test_change_password_enforces_strength(client, doctor):
    response = client.post(
        "/api/auth/change-password",
        json={"current_password": TEST_PASSWORD, "new_password": "alllowercase1"},
        headers=auth_headers(doctor),
    )

    assert response.status_code == 400
    assert "uppercase" in response.json()["error"]["message"]


def test_change_password_then_login(client, doctor):
    response = client.post(
        "/api/auth/change-password",
        json={"current_password": TEST_PASSWORD, "new_password": "N3w!Password"},
        headers=auth_headers(doctor),
    )
    assert response.status_code == 200

    login = client.post("/api/auth/login", json={"email": doctor.email, "password": "N3w!Password"})
    assert login.status_code == 200


@pytest.mark.parametrize("password", ["Sh0rt!", "nouppercase1!", "NOLOWERCASE1!", "NoDigits!!", "NoSpecial123"])
def test_weak_passwords_rejected(password):
    with pytest.raises(HTTPException) as exc:
        validate_password_strength(password)
    assert exc.value.status_code == 400


def test_strong_password_accepted():
    validate_password_strength("Str0ng!Pass")
