"""
Lab order and lab result models.
"""

import enum

from sqlalchemy import Column, DateTime, Float, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from .mixins import TimestampMixin, enum_type, utcnow, uuid_pk


class LabOrderStatus(str, enum.Enum):
    ORDERED = "ordered"
    COLLECTED = "collected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


LOCKED_LAB_STATUSES = (LabOrderStatus.COMPLETED, LabOrderStatus.CANCELLED)


class LabPriority(str, enum.Enum):
    ROUTINE = "routine"
    URGENT = "urgent"
    STAT = "stat"


class AbnormalFlag(str, enum.Enum):
    NORMAL = "normal"
    HIGH = "high"
    LOW = "low"
    CRITICAL = "critical"


class LabOrder(TimestampMixin, Base):
    __tablename__ = "lab_orders"

    id = uuid_pk()
    order_number = Column(String(20), unique=True, nullable=False, index=True)
    visit_id = Column(Uuid, ForeignKey("visits.id", ondelete="CASCADE"), nullable=False, index=True)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    ordered_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    test_name = Column(String(200), nullable=False)
    test_code = Column(String(50), nullable=True)
    test_category = Column(String(100), nullable=False)
    specimen_type = Column(String(100), nullable=False)
    clinical_indication = Column(Text, nullable=True)
    special_instructions = Column(Text, nullable=True)
    priority = Column(enum_type(LabPriority, "lab_priority"), nullable=False, default=LabPriority.ROUTINE)
    status = Column(enum_type(LabOrderStatus, "lab_order_status"), nullable=False, default=LabOrderStatus.ORDERED, index=True)

    order_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    collected_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    results = relationship(
        "LabResult", back_populates="lab_order", cascade="all, delete-orphan",
        order_by="LabResult.result_date.desc()",
    )


class LabResult(Base):
    __tablename__ = "lab_results"

    id = uuid_pk()
    lab_order_id = Column(Uuid, ForeignKey("lab_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    result_value = Column(String(200), nullable=False)
    result_numeric = Column(Float, nullable=True)
    unit = Column(String(50), nullable=True)
    reference_range = Column(String(100), nullable=True)
    abnormal_flag = Column(enum_type(AbnormalFlag, "lab_abnormal_flag"), nullable=False, default=AbnormalFlag.NORMAL)
    interpretation = Column(Text, nullable=True)
    result_date = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    reported_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    lab_order = relationship("LabOrder", back_populates="results")
