"""Tests for health probes and the admin monitoring endpoints."""

import pytest

from conftest import auth_headers
from healthchain.services.monitoring import HealthMetrics, calculate_health_score, health_status


def _metrics(**overrides) -> HealthMetrics:
    values = dict(db_response_ms=5, total_response_ms=20, active_users=1, today_visits=1, pending_appointments=0)
    values.update(overrides)
    return HealthMetrics(**values)


def test_score_is_capped_at_100():
    assert calculate_health_score(_metrics()) == 100


def test_slow_responses_are_penalised():
    # 100 - 20 - 30, plus three activity bonuses
    score = calculate_health_score(_metrics(db_response_ms=1500, total_response_ms=6000))

    assert score == 65
    assert health_status(score) == "warning"


def test_idle_system_loses_activity_bonuses():
    score = calculate_health_score(
        _metrics(db_response_ms=600, total_response_ms=2500, active_users=0, today_visits=0, pending_appointments=80)
    )

    assert score == 75


@pytest.mark.parametrize("score,expected", [(100, "healthy"), (80, "healthy"), (79, "warning"), (60, "warning"), (59, "critical")])
def test_health_status_thresholds(score, expected):
    assert health_status(score) == expected


def test_liveness_probe(client):
    response = client.get("/health/live")

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "alive"


def test_health_probe_reports_database(client):
    body = client.get("/health").json()

    assert body["data"]["status"] == "healthy"
    assert body["data"]["database"] == "connected"


def test_admin_system_health(client, admin, patient):
    response = client.get("/api/admin/monitoring/health", headers=auth_headers(admin))

    data = response.json()["data"]
    assert response.status_code == 200
    assert data["statistics"]["patients"]["total"] == 1
    assert data["system_health"]["status"] in ("healthy", "warning", "critical")


def test_admin_stats_period_is_bounded(client, admin):
    assert client.get("/api/admin/monitoring/stats", params={"period": 7}, headers=auth_headers(admin)).status_code == 200
    assert client.get("/api/admin/monitoring/stats", params={"period": 0}, headers=auth_headers(admin)).status_code == 400


def test_monitoring_is_admin_only(client, nurse):
    assert client.get("/api/admin/monitoring/health", headers=auth_headers(nurse)).status_code == 403
