"""
Visit and vital sign models.
"""

import enum

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from .mixins import TimestampMixin, enum_type, utcnow, uuid_pk


class VisitStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses from which a visit may be completed
COMPLETABLE_STATUSES = (VisitStatus.IN_PROGRESS, VisitStatus.CHECKED_IN)


class VisitType(str, enum.Enum):
    WALK_IN = "walk_in"
    APPOINTMENT = "appointment"
    EMERGENCY = "emergency"
    FOLLOW_UP = "follow_up"
    REFERRAL = "referral"


class Visit(TimestampMixin, Base):
    __tablename__ = "visits"

    id = uuid_pk()
    visit_number = Column(String(20), unique=True, nullable=False, index=True)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    visit_date = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    visit_type = Column(enum_type(VisitType, "visit_type"), nullable=False, default=VisitType.WALK_IN)
    status = Column(enum_type(VisitStatus, "visit_status"), nullable=False, default=VisitStatus.CHECKED_IN, index=True)

    chief_complaint = Column(Text, nullable=True)
    present_illness = Column(Text, nullable=True)
    physical_examination = Column(Text, nullable=True)
    diagnosis = Column(Text, nullable=True)
    treatment_plan = Column(Text, nullable=True)
    doctor_notes = Column(Text, nullable=True)

    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    patient = relationship("Patient", lazy="joined")
    doctor = relationship("User", foreign_keys=[doctor_id], lazy="joined")
    vital_signs = relationship(
        "VitalSigns", back_populates="visit", cascade="all, delete-orphan",
        order_by="VitalSigns.measured_at.desc()",
    )

    def __repr__(self) -> str:
        return f"<Visit(id={self.id}, number={self.visit_number}, status={self.status.value})>"


class VitalSigns(Base):
    __tablename__ = "vital_signs"

    id = uuid_pk()
    visit_id = Column(Uuid, ForeignKey("visits.id", ondelete="CASCADE"), nullable=True, index=True)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)

    weight = Column(Float, nullable=True)  # kg
    height = Column(Float, nullable=True)  # cm
    bmi = Column(Float, nullable=True)
    systolic_bp = Column(Integer, nullable=True)
    diastolic_bp = Column(Integer, nullable=True)
    heart_rate = Column(Integer, nullable=True)
    temperature = Column(Float, nullable=True)  # celsius
    respiratory_rate = Column(Integer, nullable=True)
    oxygen_saturation = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)

    measured_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    recorded_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    visit = relationship("Visit", back_populates="vital_signs")

    def compute_bmi(self) -> None:
        """Fill ``bmi`` from weight and height when both are known."""
        if self.weight and self.height:
            meters = self.height / 100
            self.bmi = round(self.weight / (meters * meters), 1)
