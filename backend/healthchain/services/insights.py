"""
AI insight scoring service.

Rule-based assessments over a patient's recent records. Each rule is a
pure function of a few numbers so it can be tested without a database;
``InsightService`` gathers those numbers and stores the resulting
``AIInsight`` rows.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.ai_insight import AIInsight, DEFAULT_INSIGHT_TYPES, InsightType, RiskLevel
from ..models.appointment import Appointment, AppointmentStatus
from ..models.lab import AbnormalFlag, LabOrder, LabResult
from ..models.prescription import Prescription, PrescriptionStatus
from ..models.visit import Visit, VisitStatus, VitalSigns


logger = logging.getLogger(__name__)


# =============================================================================
# Scoring Constants
# =============================================================================

HEALTH_RISK_LAB_WINDOW_DAYS = 90
HEALTH_RISK_LAB_SAMPLE = 10
OBESITY_BMI = 30

ADHERENCE_WINDOW_DAYS = 90
ADHERENCE_HIGH_RISK_BELOW = 0.7
ADHERENCE_MEDIUM_RISK_BELOW = 0.9

EFFECTIVENESS_WINDOW_DAYS = 180
EFFECTIVENESS_HIGH_RISK_BELOW = 0.6
EFFECTIVENESS_MEDIUM_RISK_BELOW = 0.8

LAB_TRENDS_WINDOW_DAYS = 180
LAB_TRENDS_MIN_RESULTS = 3
LAB_TRENDS_GROUP_SIZE = 3
LAB_TRENDS_CHANGE_PERCENT = 20

APPOINTMENT_WINDOW_DAYS = 365
CANCELLATION_HIGH_RISK_ABOVE = 0.3
CANCELLATION_MEDIUM_RISK_ABOVE = 0.1

INSIGHT_TITLES = {
    InsightType.HEALTH_RISK: "Health risk assessment",
    InsightType.MEDICATION_ADHERENCE: "Medication adherence assessment",
    InsightType.TREATMENT_EFFECTIVENESS: "Treatment effectiveness assessment",
    InsightType.LAB_TRENDS: "Lab result trend analysis",
    InsightType.APPOINTMENT_PATTERNS: "Appointment pattern analysis",
}

INSIGHT_DATA_SOURCES = {
    InsightType.HEALTH_RISK: ["lab_results", "vital_signs"],
    InsightType.MEDICATION_ADHERENCE: ["prescriptions", "appointments"],
    InsightType.TREATMENT_EFFECTIVENESS: ["visits", "diagnoses"],
    InsightType.LAB_TRENDS: ["lab_results"],
    InsightType.APPOINTMENT_PATTERNS: ["appointments"],
}


# =============================================================================
# Assessment Dataclass
# =============================================================================

@dataclass
class Assessment:
    """Outcome of one insight rule."""
    insight_type: InsightType
    risk_level: RiskLevel
    confidence_score: float
    description: str
    recommendations: list[str] = field(default_factory=list)

    @property
    def title(self) -> str:
        return INSIGHT_TITLES[self.insight_type]

    @property
    def data_source(self) -> list[str]:
        return list(INSIGHT_DATA_SOURCES[self.insight_type])


# =============================================================================
# Rules
# =============================================================================

def assess_health_risk(
    abnormal_flags: Iterable[AbnormalFlag],
    latest_bmi: Optional[float],
) -> Assessment:
    """
    Abnormal (high/low) lab results raise the risk to medium; a latest BMI
    over 30 raises it to high.
    """
    assessment = Assessment(
        InsightType.HEALTH_RISK,
        RiskLevel.LOW,
        0.5,
        "Overall health indicators are within normal ranges",
    )

    if any(flag in (AbnormalFlag.HIGH, AbnormalFlag.LOW) for flag in abnormal_flags):
        assessment.risk_level = RiskLevel.MEDIUM
        assessment.confidence_score = 0.7
        assessment.description = "Abnormal lab results found; follow up closely"
        assessment.recommendations += [
            "Monitor lab results regularly",
            "Consult a physician to plan treatment",
        ]

    if latest_bmi and latest_bmi > OBESITY_BMI:
        assessment.risk_level = RiskLevel.HIGH
        assessment.confidence_score = 0.8
        assessment.description = "Elevated risk of obesity and related conditions"
        assessment.recommendations += [
            "Manage body weight",
            "Exercise regularly",
            "Consult a nutritionist",
        ]

    return assessment


def assess_medication_adherence(total_prescriptions: int, dispensed_prescriptions: int) -> Assessment:
    rate = dispensed_prescriptions / total_prescriptions if total_prescriptions else 1.0

    if rate < ADHERENCE_HIGH_RISK_BELOW:
        return Assessment(
            InsightType.MEDICATION_ADHERENCE,
            RiskLevel.HIGH,
            0.8,
            f"Low medication adherence ({rate:.0%} of prescriptions dispensed)",
            ["Set medication reminders", "Discuss difficulties taking medication with the physician"],
        )
    if rate < ADHERENCE_MEDIUM_RISK_BELOW:
        return Assessment(
            InsightType.MEDICATION_ADHERENCE,
            RiskLevel.MEDIUM,
            0.7,
            f"Moderate medication adherence ({rate:.0%} of prescriptions dispensed)",
            ["Follow up on medication intake regularly"],
        )
    return Assessment(
        InsightType.MEDICATION_ADHERENCE,
        RiskLevel.LOW,
        0.6,
        "Medication adherence is good",
    )


def assess_treatment_effectiveness(total_visits: int, completed_visits: int) -> Assessment:
    rate = completed_visits / total_visits if total_visits else 1.0

    if rate < EFFECTIVENESS_HIGH_RISK_BELOW:
        return Assessment(
            InsightType.TREATMENT_EFFECTIVENESS,
            RiskLevel.HIGH,
            0.8,
            "Treatment effectiveness is low; review the treatment plan",
            ["Review the treatment plan", "Consult a specialist", "Adjust the treatment approach"],
        )
    if rate < EFFECTIVENESS_MEDIUM_RISK_BELOW:
        return Assessment(
            InsightType.TREATMENT_EFFECTIVENESS,
            RiskLevel.MEDIUM,
            0.7,
            "Treatment effectiveness is moderate",
            ["Monitor treatment outcomes closely"],
        )
    return Assessment(
        InsightType.TREATMENT_EFFECTIVENESS,
        RiskLevel.LOW,
        0.6,
        "Treatment effectiveness is good",
    )


def assess_lab_trends(values_newest_first: Sequence[float]) -> Assessment:
    """
    Compare the average of the latest three numeric results with the three
    before them; a change of more than 20% is flagged.
    """
    assessment = Assessment(
        InsightType.LAB_TRENDS,
        RiskLevel.LOW,
        0.5,
        "Lab result trends are within normal ranges",
    )
    if len(values_newest_first) < LAB_TRENDS_MIN_RESULTS:
        return assessment

    recent = values_newest_first[:LAB_TRENDS_GROUP_SIZE]
    older = values_newest_first[LAB_TRENDS_GROUP_SIZE:LAB_TRENDS_GROUP_SIZE * 2]
    if not older:
        return assessment

    recent_avg = sum(recent) / len(recent)
    older_avg = sum(older) / len(older)
    if older_avg == 0:
        return assessment

    change_percent = (recent_avg - older_avg) / older_avg * 100
    if abs(change_percent) > LAB_TRENDS_CHANGE_PERCENT:
        direction = "increased" if change_percent > 0 else "decreased"
        assessment.risk_level = RiskLevel.MEDIUM
        assessment.confidence_score = 0.7
        assessment.description = f"Lab results {direction} by {abs(change_percent):.1f}%"
        assessment.recommendations = [
            "Monitor lab results closely",
            "Discuss the change with the physician",
        ]
    return assessment


def assess_appointment_patterns(total_appointments: int, cancelled_appointments: int) -> Assessment:
    rate = cancelled_appointments / total_appointments if total_appointments else 0.0

    if rate > CANCELLATION_HIGH_RISK_ABOVE:
        return Assessment(
            InsightType.APPOINTMENT_PATTERNS,
            RiskLevel.HIGH,
            0.8,
            "High appointment cancellation rate",
            [
                "Adjust appointment times to suit the patient",
                "Send reminders in advance",
                "Discuss scheduling convenience with the patient",
            ],
        )
    if rate > CANCELLATION_MEDIUM_RISK_ABOVE:
        return Assessment(
            InsightType.APPOINTMENT_PATTERNS,
            RiskLevel.MEDIUM,
            0.7,
            "Moderate appointment cancellation rate",
            ["Monitor appointment patterns"],
        )
    return Assessment(
        InsightType.APPOINTMENT_PATTERNS,
        RiskLevel.LOW,
        0.6,
        "Appointment patterns are normal",
    )


# =============================================================================
# Service
# =============================================================================

class InsightService:
    """
    Gathers patient data and stores insight rows.

    Example usage:
        service = InsightService(db)
        created = service.calculate(patient.id, generated_by=user.id)
    """

    def __init__(self, db: Session, now: Optional[datetime] = None):
        self.db = db
        self.now = now or datetime.now(timezone.utc)

    def _since(self, days: int) -> datetime:
        return self.now - timedelta(days=days)

    # -- gatherers ------------------------------------------------------------

    def _health_risk(self, patient_id: UUID) -> Assessment:
        flags = [
            row.abnormal_flag
            for row in (
                self.db.query(LabResult.abnormal_flag)
                .join(LabOrder, LabResult.lab_order_id == LabOrder.id)
                .filter(
                    LabOrder.patient_id == patient_id,
                    LabResult.result_date > self._since(HEALTH_RISK_LAB_WINDOW_DAYS),
                )
                .order_by(LabResult.result_date.desc())
                .limit(HEALTH_RISK_LAB_SAMPLE)
                .all()
            )
        ]
        latest_vitals = (
            self.db.query(VitalSigns)
            .filter(VitalSigns.patient_id == patient_id)
            .order_by(VitalSigns.measured_at.desc())
            .first()
        )
        latest_bmi = latest_vitals.bmi if latest_vitals is not None else None
        return assess_health_risk(flags, latest_bmi)

    def _medication_adherence(self, patient_id: UUID) -> Assessment:
        base = self.db.query(func.count(Prescription.id)).filter(
            Prescription.patient_id == patient_id,
            Prescription.prescription_date > self._since(ADHERENCE_WINDOW_DAYS),
        )
        total = base.scalar() or 0
        dispensed = base.filter(Prescription.status == PrescriptionStatus.DISPENSED).scalar() or 0
        return assess_medication_adherence(total, dispensed)

    def _treatment_effectiveness(self, patient_id: UUID) -> Assessment:
        base = self.db.query(func.count(Visit.id)).filter(
            Visit.patient_id == patient_id,
            Visit.visit_date > self._since(EFFECTIVENESS_WINDOW_DAYS),
        )
        total = base.scalar() or 0
        completed = base.filter(Visit.status == VisitStatus.COMPLETED).scalar() or 0
        return assess_treatment_effectiveness(total, completed)

    def _lab_trends(self, patient_id: UUID) -> Assessment:
        values = [
            row.result_numeric
            for row in (
                self.db.query(LabResult.result_numeric)
                .join(LabOrder, LabResult.lab_order_id == LabOrder.id)
                .filter(
                    LabOrder.patient_id == patient_id,
                    LabResult.result_numeric.isnot(None),
                    LabResult.result_date > self._since(LAB_TRENDS_WINDOW_DAYS),
                )
                .order_by(LabResult.result_date.desc())
                .all()
            )
        ]
        return assess_lab_trends(values)

    def _appointment_patterns(self, patient_id: UUID) -> Assessment:
        base = self.db.query(func.count(Appointment.id)).filter(
            Appointment.patient_id == patient_id,
            Appointment.appointment_date > self._since(APPOINTMENT_WINDOW_DAYS).date(),
        )
        total = base.scalar() or 0
        cancelled = base.filter(Appointment.status == AppointmentStatus.CANCELLED).scalar() or 0
        return assess_appointment_patterns(total, cancelled)

    # -- public ---------------------------------------------------------------

    def assess(self, patient_id: UUID, insight_type: InsightType) -> Assessment:
        gatherers = {
            InsightType.HEALTH_RISK: self._health_risk,
            InsightType.MEDICATION_ADHERENCE: self._medication_adherence,
            InsightType.TREATMENT_EFFECTIVENESS: self._treatment_effectiveness,
            InsightType.LAB_TRENDS: self._lab_trends,
            InsightType.APPOINTMENT_PATTERNS: self._appointment_patterns,
        }
        return gatherers[insight_type](patient_id)

    def has_recent_insight(self, patient_id: UUID, insight_type: InsightType) -> bool:
        since = self.now - timedelta(hours=settings.insight_recalculate_hours)
        return (
            self.db.query(AIInsight.id)
            .filter(
                AIInsight.patient_id == patient_id,
                AIInsight.insight_type == insight_type,
                AIInsight.is_active.is_(True),
                AIInsight.generated_at > since,
            )
            .first()
            is not None
        )

    def calculate(
        self,
        patient_id: UUID,
        insight_types: Optional[Sequence[InsightType]] = None,
        force_recalculate: bool = False,
        generated_by: Optional[UUID] = None,
    ) -> list[AIInsight]:
        """
        Generate and store insights. A type with an active insight generated
        recently is skipped unless ``force_recalculate`` is set.

        The caller owns the transaction.
        """
        created: list[AIInsight] = []
        for insight_type in insight_types or DEFAULT_INSIGHT_TYPES:
            if not force_recalculate and self.has_recent_insight(patient_id, insight_type):
                logger.debug(f"Skipping {insight_type.value} for patient {patient_id}: recent insight exists")
                continue

            assessment = self.assess(patient_id, insight_type)
            insight = AIInsight(
                patient_id=patient_id,
                insight_type=insight_type,
                title=assessment.title,
                description=assessment.description,
                confidence_score=assessment.confidence_score,
                data_source=assessment.data_source,
                recommendations=assessment.recommendations,
                risk_level=assessment.risk_level,
                generated_at=self.now,
                generated_by=generated_by,
            )
            self.db.add(insight)
            created.append(insight)

        self.db.flush()
        logger.info(f"Generated {len(created)} insights for patient {patient_id}")
        return created
