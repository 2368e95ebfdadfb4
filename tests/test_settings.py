"""Tests for the admin system settings endpoints."""

import pytest

from conftest import auth_headers
from healthchain.models.system import SettingType, SystemSetting, SystemSettingHistory
from healthchain.services.settings_store import (
    decode_setting,
    encode_setting,
    missing_critical_setting,
)


CRITICAL = {"systemName": "Ward 7 EMR", "timezone": "Asia/Bangkok", "language": "en", "sessionTimeout": 12}

URL = "/api/admin/settings"


def test_get_returns_defaults_with_categories(client, admin):
    response = client.get(URL, headers=auth_headers(admin))

    body = response.json()
    assert response.status_code == 200
    assert body["data"]["systemName"] == "HealthChain EMR System"
    assert body["meta"]["lastUpdated"] is None
    assert body["meta"]["categories"]["general"] == 6


def test_non_admin_is_forbidden(client, doctor):
    assert client.get(URL, headers=auth_headers(doctor)).status_code == 403


def test_update_persists_and_writes_history(client, db, admin):
    response = client.put(
        URL,
        json={"settings": {**CRITICAL, "maxLoginAttempts": 3, "smtpPassword": "s3cret"}},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["systemName"] == "Ward 7 EMR"
    assert data["maxLoginAttempts"] == 3
    assert data["smtpPassword"] == "********"
    assert db.query(SystemSettingHistory).count() == 6


def test_saving_the_masked_form_keeps_the_stored_secret(client, db, admin):
    client.put(URL, json={"settings": {**CRITICAL, "smtpPassword": "real-secret"}}, headers=auth_headers(admin))
    shown = client.get(URL, headers=auth_headers(admin)).json()["data"]
    assert shown["smtpPassword"] == "********"

    response = client.put(URL, json={"settings": shown}, headers=auth_headers(admin))

    assert response.status_code == 200
    assert "smtpPassword" not in response.json()["meta"]["updated"]
    stored = db.query(SystemSetting).filter(SystemSetting.setting_key == "smtpPassword").one()
    assert stored.setting_value == "real-secret"
    history = db.query(SystemSettingHistory).filter(SystemSettingHistory.setting_key == "smtpPassword").count()
    assert history == 1


def test_missing_critical_setting_is_rejected(client, admin):
    values = {k: v for k, v in CRITICAL.items() if k != "timezone"}

    response = client.put(URL, json={"settings": values}, headers=auth_headers(admin))

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "MISSING_CRITICAL_SETTING"
    assert error["details"] == {"setting": "timezone"}


@pytest.mark.parametrize("payload", [{}, {"settings": "nope"}, [1, 2]])
def test_non_object_settings_are_rejected(client, admin, payload):
    response = client.put(URL, json=payload, headers=auth_headers(admin))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_SETTINGS"


def test_reset_unknown_category(client, admin):
    response = client.post(f"{URL}/reset", json={"category": "colours"}, headers=auth_headers(admin))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_CATEGORY"


def test_reset_category_restores_defaults(client, admin):
    client.put(URL, json={"settings": CRITICAL}, headers=auth_headers(admin))

    response = client.post(f"{URL}/reset", json={"category": "general"}, headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json()["data"]["systemName"] == "HealthChain EMR System"
    history = client.get(f"{URL}/history", params={"settingKey": "systemName"}, headers=auth_headers(admin))
    assert [h["change_type"] for h in history.json()["data"]] == ["reset", "create"]


def test_missing_critical_setting_treats_empty_as_missing():
    assert missing_critical_setting({**CRITICAL, "language": ""}) == "language"
    assert missing_critical_setting(CRITICAL) is None


def test_setting_values_keep_their_type():
    for value in (True, 42, 1.5, "text", ["a", "b"], {"k": 1}):
        raw, setting_type = encode_setting(value)
        assert decode_setting(raw, setting_type) == value

    assert encode_setting(False) == ("false", SettingType.BOOLEAN)
