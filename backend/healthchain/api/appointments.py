"""
Appointment endpoints.

A physician cannot hold two open (scheduled or confirmed) appointments at
the same date and time; such a booking is answered with 409.
"""

import logging
from datetime import date, time
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import CARE_TEAM_ROLES, require_role
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope, paginate
from ..core.transactions import transaction
from ..models.appointment import (
    BLOCKING_STATUSES,
    FINAL_STATUSES,
    Appointment,
    AppointmentHistory,
    AppointmentStatus,
)
from ..models.mixins import utcnow
from ..models.patient import Patient
from ..models.user import User, UserRole
from ..schemas.appointment import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentHistoryResponse,
    AppointmentResponse,
    AppointmentUpdate,
)
from ..schemas.common import page_params
from ..services.audit import AuditService, changed_fields
from ..services.cache import get_cache
from .deps import ensure_patient_access, get_accessible_patient, not_found, parse_uuid


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Appointments"])

BOOKING_ROLES = ("doctor", "nurse", "staff")
CONFLICT_MESSAGE = "Appointment time conflict with existing appointment"


def _get_doctor_or_404(db: Session, doctor_id: UUID) -> User:
    doctor = (
        db.query(User)
        .filter(User.id == doctor_id, User.role == UserRole.DOCTOR, User.is_active.is_(True))
        .first()
    )
    if not doctor:
        raise not_found("Physician not found")
    return doctor


def _check_conflict(
    db: Session,
    doctor_id: UUID,
    appointment_date: date,
    appointment_time: time,
    exclude_id: Optional[UUID] = None,
) -> None:
    query = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == appointment_date,
        Appointment.appointment_time == appointment_time,
        Appointment.status.in_(BLOCKING_STATUSES),
    )
    if exclude_id:
        query = query.filter(Appointment.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=CONFLICT_MESSAGE)


def _history(
    db: Session,
    appointment: Appointment,
    action: str,
    old_status: Optional[AppointmentStatus],
    reason: Optional[str],
    user: User,
) -> None:
    db.add(AppointmentHistory(
        appointment_id=appointment.id,
        action=action,
        old_status=old_status.value if old_status else None,
        new_status=appointment.status.value,
        reason=reason,
        changed_by=user.id,
    ))


def _get_appointment_or_404(db: Session, appointment_id: UUID, user: User) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if not appointment:
        raise not_found("Appointment not found")
    ensure_patient_access(user, appointment.patient)
    return appointment


def _filtered(
    query,
    status_filter: Optional[AppointmentStatus],
    start_date: Optional[date],
    end_date: Optional[date],
    appointment_type: Optional[str],
):
    if status_filter:
        query = query.filter(Appointment.status == status_filter)
    if start_date:
        query = query.filter(Appointment.appointment_date >= start_date)
    if end_date:
        query = query.filter(Appointment.appointment_date <= end_date)
    if appointment_type:
        query = query.filter(Appointment.appointment_type == appointment_type)
    return query


# =============================================================================
# List (all patients)
# =============================================================================


@router.get("/appointments", dependencies=[Depends(require_role(*CARE_TEAM_ROLES))])
async def list_appointments(
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(20)),
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    appointment_type: Optional[str] = Query(None, alias="type"),
    patient_ref: Optional[str] = Query(None, alias="patientId"),
    doctor_id: Optional[UUID] = Query(None, alias="doctorId"),
):
    query = _filtered(db.query(Appointment), status_filter, start_date, end_date, appointment_type)
    if patient_ref:
        patient_uuid = parse_uuid(patient_ref)
        if patient_uuid:
            query = query.filter(Appointment.patient_id == patient_uuid)
        else:
            query = query.join(Patient, Appointment.patient_id == Patient.id).filter(
                Patient.hospital_number == patient_ref.strip().upper()
            )
    if doctor_id:
        query = query.filter(Appointment.doctor_id == doctor_id)

    page = paginate(
        query.order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc()),
        *pagination,
    )
    return envelope(
        data=[AppointmentResponse.model_validate(a) for a in page.items],
        meta={"pagination": page.meta()},
    )


# =============================================================================
# Patient-scoped
# =============================================================================


@router.post("/patients/{patient_id}/appointments", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    body: AppointmentCreate,
    request: Request,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*BOOKING_ROLES)),
    db: Session = Depends(get_db),
):
    """
    Book an appointment.

    404 when the patient or physician does not exist, 409 when the physician
    already has an open appointment at that date and time.
    """
    _get_doctor_or_404(db, body.doctor_id)
    _check_conflict(db, body.doctor_id, body.appointment_date, body.appointment_time)

    try:
        with transaction(db):
            appointment = Appointment(
                patient_id=patient.id,
                status=AppointmentStatus.SCHEDULED,
                created_by=user.id,
                **body.model_dump(),
            )
            db.add(appointment)
            db.flush()
            _history(db, appointment, "created", None, body.reason, user)
            AuditService(db, user=user, request=request, autocommit=False).log_create(
                "appointments", appointment.id, new_values={"status": appointment.status.value}
            )
    except SQLAlchemyError as e:
        logger.error(f"Failed to create appointment for patient {patient.id}: {e}")
        raise APIError(500, "Failed to create appointment", code="APPOINTMENT_CREATE_FAILED")

    get_cache().invalidate_dashboard()
    logger.info(f"Appointment {appointment.id} booked with doctor {body.doctor_id}")
    return envelope(data=AppointmentResponse.model_validate(appointment), status_code=201)


@router.get("/patients/{patient_id}/appointments")
async def list_patient_appointments(
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(10)),
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    appointment_type: Optional[str] = Query(None, alias="type"),
):
    query = _filtered(
        db.query(Appointment).filter(Appointment.patient_id == patient.id),
        status_filter, start_date, end_date, appointment_type,
    )
    page = paginate(
        query.order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc()),
        *pagination,
    )
    return envelope(
        data=[AppointmentResponse.model_validate(a) for a in page.items],
        meta={"pagination": page.meta()},
    )


# =============================================================================
# Appointment-scoped
# =============================================================================


@router.get("/appointments/{appointment_id}")
async def get_appointment(
    appointment_id: UUID,
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
):
    return envelope(data=AppointmentResponse.model_validate(_get_appointment_or_404(db, appointment_id, user)))


@router.put("/appointments/{appointment_id}")
async def update_appointment(
    appointment_id: UUID,
    body: AppointmentUpdate,
    request: Request,
    user: User = Depends(require_role(*BOOKING_ROLES)),
    db: Session = Depends(get_db),
):
    """
    Reschedule or edit an open appointment.

    The slot is checked again (ignoring this appointment) when it moves or
    when a no-show goes back to an open status.
    """
    appointment = _get_appointment_or_404(db, appointment_id, user)
    if appointment.status in FINAL_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot update a {appointment.status.value} appointment",
        )

    values = body.model_dump(exclude_unset=True)
    if not values:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid fields to update")

    rescheduling = any(f in values for f in ("doctor_id", "appointment_date", "appointment_time"))
    if rescheduling and not appointment.can_reschedule:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Appointment cannot be rescheduled")

    doctor_id = values.get("doctor_id") or appointment.doctor_id
    if "doctor_id" in values:
        _get_doctor_or_404(db, doctor_id)
    new_status = values.get("status", appointment.status)
    reopening = appointment.status not in BLOCKING_STATUSES and new_status in BLOCKING_STATUSES
    if (rescheduling or reopening) and doctor_id and new_status in BLOCKING_STATUSES:
        _check_conflict(
            db,
            doctor_id,
            values.get("appointment_date", appointment.appointment_date),
            values.get("appointment_time", appointment.appointment_time),
            exclude_id=appointment.id,
        )

    old_status = appointment.status
    with transaction(db):
        for field, value in values.items():
            setattr(appointment, field, value)
        if appointment.status == AppointmentStatus.CANCELLED and not appointment.cancelled_at:
            appointment.cancelled_at = utcnow()
        if appointment.status != old_status or rescheduling:
            _history(db, appointment, "rescheduled" if rescheduling else "status_changed",
                     old_status, values.get("reason"), user)
        AuditService(db, user=user, request=request, autocommit=False).log_update(
            "appointments", appointment.id,
            old_values={"status": old_status.value},
            new_values=changed_fields(values),
        )

    get_cache().invalidate_dashboard()
    return envelope(data=AppointmentResponse.model_validate(appointment))


@router.put("/appointments/{appointment_id}/cancel")
async def cancel_appointment(
    appointment_id: UUID,
    request: Request,
    body: Optional[AppointmentCancel] = None,
    user: User = Depends(require_role(*BOOKING_ROLES, "patient")),
    db: Session = Depends(get_db),
):
    appointment = _get_appointment_or_404(db, appointment_id, user)
    if not appointment.can_cancel:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Appointment cannot be cancelled")
    if appointment.status == AppointmentStatus.CANCELLED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Appointment is already cancelled")
    if appointment.status == AppointmentStatus.COMPLETED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot cancel a completed appointment")

    reason = body.reason if body else None
    old_status = appointment.status
    with transaction(db):
        appointment.status = AppointmentStatus.CANCELLED
        appointment.cancellation_reason = reason
        appointment.cancelled_at = utcnow()
        _history(db, appointment, "cancelled", old_status, reason, user)
        AuditService(db, user=user, request=request, autocommit=False).log_update(
            "appointments", appointment.id,
            old_values={"status": old_status.value},
            new_values={"status": AppointmentStatus.CANCELLED.value},
        )

    get_cache().invalidate_dashboard()
    logger.info(f"Appointment {appointment.id} cancelled by {user.id}")
    return envelope(data=AppointmentResponse.model_validate(appointment))


@router.get("/appointments/{appointment_id}/history")
async def get_appointment_history(
    appointment_id: UUID,
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
):
    appointment = _get_appointment_or_404(db, appointment_id, user)
    rows = (
        db.query(AppointmentHistory)
        .filter(AppointmentHistory.appointment_id == appointment.id)
        .order_by(AppointmentHistory.created_at)
        .all()
    )
    return envelope(data=[AppointmentHistoryResponse.model_validate(r) for r in rows])
