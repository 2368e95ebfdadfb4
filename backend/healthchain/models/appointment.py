"""
Appointment and appointment history models.
"""

import enum

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, Time, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from .mixins import TimestampMixin, enum_type, utcnow, uuid_pk


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that occupy a physician's time slot
BLOCKING_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)

# Statuses after which an appointment can no longer change
FINAL_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)


class AppointmentPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Appointment(TimestampMixin, Base):
    __tablename__ = "appointments"

    id = uuid_pk()
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=30)
    appointment_type = Column(String(50), nullable=False, index=True)
    priority = Column(enum_type(AppointmentPriority, "appointment_priority"), nullable=False, default=AppointmentPriority.NORMAL)
    status = Column(enum_type(AppointmentStatus, "appointment_status"), nullable=False, default=AppointmentStatus.SCHEDULED, index=True)

    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    location = Column(String(200), nullable=True)

    can_reschedule = Column(Boolean, nullable=False, default=True)
    can_cancel = Column(Boolean, nullable=False, default=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    reminder_sent_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    patient = relationship("Patient", lazy="joined")
    doctor = relationship("User", foreign_keys=[doctor_id], lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, date={self.appointment_date}, "
            f"time={self.appointment_time}, status={self.status.value})>"
        )


class AppointmentHistory(Base):
    """One row per status change of an appointment."""

    __tablename__ = "appointment_history"

    id = uuid_pk()
    appointment_id = Column(Uuid, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    old_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=True)
    reason = Column(Text, nullable=True)
    changed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
