"""
AI insight model.
"""

import enum

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from .mixins import JSONType, TimestampMixin, enum_type, utcnow, uuid_pk


class InsightType(str, enum.Enum):
    HEALTH_RISK = "health_risk"
    MEDICATION_ADHERENCE = "medication_adherence"
    TREATMENT_EFFECTIVENESS = "treatment_effectiveness"
    LAB_TRENDS = "lab_trends"
    APPOINTMENT_PATTERNS = "appointment_patterns"


DEFAULT_INSIGHT_TYPES = (
    InsightType.HEALTH_RISK,
    InsightType.MEDICATION_ADHERENCE,
    InsightType.TREATMENT_EFFECTIVENESS,
)


class RiskLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Sort order used when listing insights (most severe first)
RISK_RANK = {
    RiskLevel.CRITICAL: 4,
    RiskLevel.HIGH: 3,
    RiskLevel.MEDIUM: 2,
    RiskLevel.LOW: 1,
}


class AIInsight(TimestampMixin, Base):
    __tablename__ = "ai_insights"

    id = uuid_pk()
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    insight_type = Column(enum_type(InsightType, "insight_type"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    confidence_score = Column(Float, nullable=False)
    data_source = Column(JSONType, nullable=False)
    recommendations = Column(JSONType, nullable=False)
    risk_level = Column(enum_type(RiskLevel, "risk_level"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    generated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    generated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    generator = relationship("User", lazy="joined")
