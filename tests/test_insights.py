"""Tests for the rule-based AI insight engine."""

from conftest import auth_headers
from healthchain.models.ai_insight import InsightType, RiskLevel
from healthchain.models.lab import AbnormalFlag
from healthchain.services.insights import (
    assess_appointment_patterns,
    assess_health_risk,
    assess_lab_trends,
    assess_medication_adherence,
    assess_treatment_effectiveness,
)


# =============================================================================
# Rules
# =============================================================================


def test_health_risk_levels():
    assert assess_health_risk([AbnormalFlag.NORMAL], 24.0).risk_level == RiskLevel.LOW
    assert assess_health_risk([AbnormalFlag.HIGH], 24.0).risk_level == RiskLevel.MEDIUM

    obese = assess_health_risk([AbnormalFlag.LOW], 31.5)
    assert obese.risk_level == RiskLevel.HIGH
    assert obese.confidence_score == 0.8
    assert len(obese.recommendations) == 5


def test_medication_adherence_thresholds():
    assert assess_medication_adherence(10, 6).risk_level == RiskLevel.HIGH
    assert assess_medication_adherence(10, 8).risk_level == RiskLevel.MEDIUM
    assert assess_medication_adherence(10, 9).risk_level == RiskLevel.LOW
    assert assess_medication_adherence(0, 0).risk_level == RiskLevel.LOW


def test_treatment_effectiveness_thresholds():
    assert assess_treatment_effectiveness(10, 5).risk_level == RiskLevel.HIGH
    assert assess_treatment_effectiveness(10, 7).risk_level == RiskLevel.MEDIUM
    assert assess_treatment_effectiveness(10, 8).risk_level == RiskLevel.LOW


def test_lab_trends_flag_large_changes():
    rising = assess_lab_trends([150, 150, 150, 100, 100, 100])
    assert rising.risk_level == RiskLevel.MEDIUM
    assert rising.description == "Lab results increased by 50.0%"

    steady = assess_lab_trends([105, 100, 95, 100, 100, 100])
    assert steady.risk_level == RiskLevel.LOW

    assert assess_lab_trends([1, 2]).risk_level == RiskLevel.LOW


def test_appointment_patterns_thresholds():
    assert assess_appointment_patterns(10, 4).risk_level == RiskLevel.HIGH
    assert assess_appointment_patterns(10, 2).risk_level == RiskLevel.MEDIUM
    assert assess_appointment_patterns(10, 1).risk_level == RiskLevel.LOW
    assert assess_appointment_patterns(0, 0).risk_level == RiskLevel.LOW


def test_assessment_exposes_title_and_sources():
    assessment = assess_medication_adherence(4, 4)

    assert assessment.insight_type == InsightType.MEDICATION_ADHERENCE
    assert assessment.title
    assert assessment.data_source


# =============================================================================
# API
# =============================================================================


def test_calculate_then_skip_recent(client, doctor, patient):
    url = f"/api/patients/{patient.id}/ai-insights"

    first = client.post(f"{url}/calculate", json={}, headers=auth_headers(doctor))
    assert first.status_code == 201
    assert len(first.json()["data"]["insights"]) == 3

    again = client.post(f"{url}/calculate", json={}, headers=auth_headers(doctor))
    assert again.json()["data"]["insights"] == []

    forced = client.post(
        f"{url}/calculate",
        json={"insightTypes": ["lab_trends"], "forceRecalculate": True},
        headers=auth_headers(doctor),
    )
    assert len(forced.json()["data"]["insights"]) == 1


def test_list_includes_risk_summary(client, doctor, patient):
    url = f"/api/patients/{patient.id}/ai-insights"
    client.post(f"{url}/calculate", json={}, headers=auth_headers(doctor))

    response = client.get(url, headers=auth_headers(doctor))

    summary = response.json()["meta"]["risk_summary"]
    assert summary["total"] == 3
    assert summary["highest_risk"] == "low"


def test_pharmacist_cannot_calculate(client, pharmacist, patient):
    response = client.post(
        f"/api/patients/{patient.id}/ai-insights/calculate", json={}, headers=auth_headers(pharmacist)
    )

    assert response.status_code == 403
