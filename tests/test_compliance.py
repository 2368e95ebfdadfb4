"""Tests for compliance scoring and the compliance report endpoints."""

from datetime import datetime, timedelta, timezone

from conftest import auth_headers
from healthchain.models.consent import ConsentAuditTrail
from healthchain.services.compliance import compliance_score, compliance_stats, compliance_trends, summarize_alerts


NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


def _alert(db, action, when):
    db.add(ConsentAuditTrail(action=action, created_at=when))
    db.commit()


def test_score_floors_at_zero():
    assert compliance_score(0) == 100
    assert compliance_score(3) == 85
    assert compliance_score(25) == 0


def test_summary_buckets_by_priority():
    summary = summarize_alerts(["data_breach", "unauthorized_access", "consent_violation", "request_created"])

    assert summary["totalAlerts"] == 3
    assert summary["highPriorityAlerts"] == 2
    assert summary["mediumPriorityAlerts"] == 1
    assert summary["lowPriorityAlerts"] == 0
    assert summary["pendingAlerts"] == 3
    assert summary["complianceScore"] == 85


def test_stats_compare_with_previous_window(db):
    _alert(db, "data_breach", NOW - timedelta(days=2))
    _alert(db, "policy_violation", NOW - timedelta(days=3))
    _alert(db, "consent_violation", NOW - timedelta(days=40))
    _alert(db, "compliance_audit", NOW - timedelta(days=5))

    stats = compliance_stats(db, now=NOW)

    assert stats["totalAlerts"] == 2
    assert stats["trends"] == {"scoreChange": -5, "alertChange": 1}
    assert stats["lastAuditDate"].startswith("2026-06-10")


def test_trends_include_empty_months_newest_first(db):
    _alert(db, "data_breach", datetime(2026, 5, 3, tzinfo=timezone.utc))

    trends = compliance_trends(db, days=90, now=NOW)

    assert [t["period"] for t in trends] == ["2026-06", "2026-05", "2026-04", "2026-03"]
    assert trends[1]["totalAlerts"] == 1
    assert trends[0]["complianceScore"] == 100


def test_report_lifecycle(client, admin):
    created = client.post(
        "/api/admin/compliance/reports",
        json={"title": "Q2 consent review", "type": "consent", "date": "2026-06-30"},
        headers=auth_headers(admin),
    )
    assert created.status_code == 201
    report_id = created.json()["data"]["id"]

    empty = client.put(f"/api/admin/compliance/reports/{report_id}", json={}, headers=auth_headers(admin))
    assert empty.status_code == 400

    listed = client.get("/api/admin/compliance/reports", headers=auth_headers(admin))
    assert listed.json()["meta"]["pagination"]["total"] == 1


def test_unknown_report_is_404(client, admin):
    response = client.put(
        "/api/admin/compliance/reports/00000000-0000-0000-0000-000000000000",
        json={"status": "completed"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "COMPLIANCE_REPORT_NOT_FOUND"
