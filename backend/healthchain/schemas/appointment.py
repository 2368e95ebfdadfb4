"""
Pydantic schemas for appointments.
"""

from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.appointment import AppointmentPriority, AppointmentStatus
from .patient import PatientSummary
from .user import UserSummary


class AppointmentCreate(BaseModel):
    doctor_id: UUID
    appointment_date: date
    appointment_time: time
    duration_minutes: int = Field(30, ge=5, le=480)
    appointment_type: str = Field(..., min_length=1, max_length=50)
    priority: AppointmentPriority = AppointmentPriority.NORMAL
    reason: Optional[str] = None
    notes: Optional[str] = None
    location: Optional[str] = Field(None, max_length=200)
    can_reschedule: bool = True
    can_cancel: bool = True


class AppointmentUpdate(BaseModel):
    doctor_id: Optional[UUID] = None
    appointment_date: Optional[date] = None
    appointment_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(None, ge=5, le=480)
    appointment_type: Optional[str] = Field(None, min_length=1, max_length=50)
    priority: Optional[AppointmentPriority] = None
    status: Optional[AppointmentStatus] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    location: Optional[str] = Field(None, max_length=200)
    can_reschedule: Optional[bool] = None
    can_cancel: Optional[bool] = None


class AppointmentCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class AppointmentResponse(BaseModel):
    id: UUID
    patient_id: UUID
    patient: Optional[PatientSummary] = None
    doctor_id: Optional[UUID] = None
    doctor: Optional[UserSummary] = None
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    appointment_type: str
    priority: AppointmentPriority
    status: AppointmentStatus
    reason: Optional[str] = None
    notes: Optional[str] = None
    location: Optional[str] = None
    can_reschedule: bool
    can_cancel: bool
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AppointmentHistoryResponse(BaseModel):
    id: UUID
    appointment_id: UUID
    action: str
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    reason: Optional[str] = None
    changed_by: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True
