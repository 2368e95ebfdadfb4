"""Tests for role permission overrides."""

import pytest

from conftest import auth_headers
from healthchain.models.user import UserRole, get_default_permissions
from healthchain.services.permissions import get_effective_permissions, validate_permissions


URL = "/api/admin/role-permissions"


def test_matrix_lists_every_role(client, admin):
    response = client.get(URL, headers=auth_headers(admin))

    body = response.json()
    assert set(body["data"]) == {role.value for role in UserRole}
    assert body["data"]["admin"]["isCustom"] is False
    assert "system.settings" in body["meta"]["availablePermissions"]


def test_override_changes_effective_permissions(client, admin, pharmacist):
    response = client.put(
        f"{URL}/pharmacist",
        json={"permissions": ["prescription.read", "lab.read"]},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    assert response.json()["data"]["isCustom"] is True
    me = client.get("/api/auth/me", headers=auth_headers(pharmacist)).json()["data"]
    assert me["permissions"] == ["lab.read", "prescription.read"]


def test_unknown_permission_is_400(client, admin):
    response = client.put(f"{URL}/nurse", json={"permissions": ["rocket.launch"]}, headers=auth_headers(admin))

    assert response.status_code == 400
    assert "rocket.launch" in response.json()["error"]["message"]


def test_unknown_role_is_400(client, admin):
    response = client.get(f"{URL}/janitor", headers=auth_headers(admin))

    assert response.status_code == 400


def test_reset_role_restores_defaults(client, db, admin):
    client.put(f"{URL}/nurse", json={"permissions": ["lab.read"]}, headers=auth_headers(admin))

    response = client.post(f"{URL}/nurse/reset", headers=auth_headers(admin))

    assert response.json()["data"]["isCustom"] is False
    assert get_effective_permissions(db, UserRole.NURSE) == set(get_default_permissions(UserRole.NURSE))


def test_validate_permissions_deduplicates():
    assert validate_permissions(["lab.read", "lab.read"]) == ["lab.read"]

    with pytest.raises(ValueError):
        validate_permissions(["lab.read", "lab.explode"])


# =============================================================================
# Enforcement
# =============================================================================


def test_revoked_patient_read_blocks_patient_routes(client, admin, nurse, patient):
    assert client.get(f"/api/patients/{patient.id}", headers=auth_headers(nurse)).status_code == 200

    client.put(f"{URL}/nurse", json={"permissions": ["lab.read"]}, headers=auth_headers(admin))

    assert client.get(f"/api/patients/{patient.id}", headers=auth_headers(nurse)).status_code == 403
    assert client.get("/api/patients", headers=auth_headers(nurse)).status_code == 403


def test_revoked_patient_create_blocks_registration(client, admin, nurse):
    body = {"first_name": "Anong", "last_name": "Wongsa"}
    client.put(f"{URL}/nurse", json={"permissions": ["patient.read"]}, headers=auth_headers(admin))

    response = client.post("/api/patients", json=body, headers=auth_headers(nurse))

    assert response.status_code == 403


def test_admin_without_system_settings_is_403(client, admin):
    assert client.get("/api/admin/settings", headers=auth_headers(admin)).status_code == 200

    client.put(f"{URL}/admin", json={"permissions": ["system.audit"]}, headers=auth_headers(admin))

    assert client.get("/api/admin/settings", headers=auth_headers(admin)).status_code == 403
    assert client.get("/api/admin/audit-logs", headers=auth_headers(admin)).status_code == 200
    # Overrides stay manageable so the admin can restore access
    assert client.post(f"{URL}/admin/reset", headers=auth_headers(admin)).status_code == 200
    assert client.get("/api/admin/settings", headers=auth_headers(admin)).status_code == 200
