"""
Prescription and prescription item models.

Prescription items double as the patient's medication list.
"""

import enum

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from .mixins import TimestampMixin, enum_type, utcnow, uuid_pk


class PrescriptionStatus(str, enum.Enum):
    PENDING = "pending"
    DISPENSED = "dispensed"
    CANCELLED = "cancelled"


class MedicationStatus(str, enum.Enum):
    PRESCRIBED = "prescribed"
    DISPENSED = "dispensed"
    DISCONTINUED = "discontinued"


class Prescription(TimestampMixin, Base):
    __tablename__ = "prescriptions"

    id = uuid_pk()
    prescription_number = Column(String(20), unique=True, nullable=False, index=True)
    visit_id = Column(Uuid, ForeignKey("visits.id", ondelete="SET NULL"), nullable=True, index=True)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    prescribed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    prescription_date = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    status = Column(enum_type(PrescriptionStatus, "prescription_status"), nullable=False, default=PrescriptionStatus.PENDING, index=True)
    general_instructions = Column(Text, nullable=True)
    dispensed_at = Column(DateTime(timezone=True), nullable=True)
    dispensed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    items = relationship("PrescriptionItem", back_populates="prescription", cascade="all, delete-orphan")
    prescriber = relationship("User", foreign_keys=[prescribed_by], lazy="joined")


class PrescriptionItem(TimestampMixin, Base):
    __tablename__ = "prescription_items"

    id = uuid_pk()
    prescription_id = Column(Uuid, ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False, index=True)
    medication_name = Column(String(200), nullable=False, index=True)
    strength = Column(String(50), nullable=True)
    dosage_form = Column(String(50), nullable=True)
    quantity_prescribed = Column(Float, nullable=True)
    unit = Column(String(30), nullable=True)
    dosage_instructions = Column(Text, nullable=True)
    duration_days = Column(Integer, nullable=True)
    item_status = Column(enum_type(MedicationStatus, "medication_status"), nullable=False, default=MedicationStatus.PRESCRIBED, index=True)
    notes = Column(Text, nullable=True)

    prescription = relationship("Prescription", back_populates="items")
