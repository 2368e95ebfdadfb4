"""
Patient medication endpoints.

Medications are the items of the patient's prescriptions.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from ..core.auth import CARE_TEAM_ROLES, require_role
from ..core.database import get_db
from ..core.responses import envelope, paginate
from ..core.transactions import transaction
from ..models.patient import Patient
from ..models.prescription import MedicationStatus, Prescription, PrescriptionItem
from ..models.user import User
from ..schemas.clinical import MedicationCreate, MedicationResponse, MedicationUpdate
from ..schemas.common import page_params
from ..services.audit import AuditService, changed_fields
from .deps import get_accessible_patient, not_found


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/patients/{patient_id}/medications", tags=["Medications"])

PRESCRIBING_ROLES = ("doctor", "pharmacist")


def _to_response(item: PrescriptionItem) -> MedicationResponse:
    response = MedicationResponse.model_validate(item)
    response.prescription_number = item.prescription.prescription_number
    response.prescription_date = item.prescription.prescription_date
    response.prescription_status = item.prescription.status
    return response


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


@router.get("")
async def list_medications(
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(20)),
    status_filter: Optional[MedicationStatus] = Query(None, alias="status"),
    medication_type: Optional[str] = Query(None, alias="medicationType", max_length=50),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
):
    query = (
        db.query(PrescriptionItem)
        .join(Prescription, PrescriptionItem.prescription_id == Prescription.id)
        .filter(Prescription.patient_id == patient.id)
    )
    if status_filter:
        query = query.filter(PrescriptionItem.item_status == status_filter)
    if medication_type:
        query = query.filter(PrescriptionItem.dosage_form == medication_type)
    if start_date:
        query = query.filter(Prescription.prescription_date >= _day_start(start_date))
    if end_date:
        query = query.filter(Prescription.prescription_date < _day_start(end_date) + timedelta(days=1))

    page = paginate(
        query.order_by(Prescription.prescription_date.desc(), PrescriptionItem.medication_name),
        *pagination,
    )
    return envelope(
        data=[_to_response(item) for item in page.items],
        meta={"pagination": page.meta()},
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_medication(
    body: MedicationCreate,
    request: Request,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*PRESCRIBING_ROLES)),
    db: Session = Depends(get_db),
):
    """Add a medication to one of this patient's prescriptions."""
    prescription = (
        db.query(Prescription)
        .filter(Prescription.id == body.prescription_id, Prescription.patient_id == patient.id)
        .first()
    )
    if not prescription:
        raise not_found("Prescription not found")

    with transaction(db):
        item = PrescriptionItem(prescription_id=prescription.id, **body.model_dump(exclude={"prescription_id"}))
        db.add(item)
        db.flush()
        AuditService(db, user=user, request=request, autocommit=False).log_create(
            "prescription_items", item.id, new_values={"prescription_id": str(prescription.id)}
        )

    db.refresh(item)
    return envelope(data=_to_response(item), status_code=201)


@router.put("/{medication_id}")
async def update_medication(
    medication_id: UUID,
    body: MedicationUpdate,
    request: Request,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*PRESCRIBING_ROLES)),
    db: Session = Depends(get_db),
):
    item = (
        db.query(PrescriptionItem)
        .join(Prescription, PrescriptionItem.prescription_id == Prescription.id)
        .filter(PrescriptionItem.id == medication_id, Prescription.patient_id == patient.id)
        .first()
    )
    if not item:
        raise not_found("Medication not found")

    values = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    if not values:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid fields to update")

    with transaction(db):
        for field, value in values.items():
            setattr(item, field, value)
        AuditService(db, user=user, request=request, autocommit=False).log_update(
            "prescription_items", item.id, new_values=changed_fields(values)
        )

    return envelope(data=_to_response(item))
