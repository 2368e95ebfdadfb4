"""
Prescription endpoints.
"""

import logging
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
from ..models.mixins import utcnow
from ..models.patient import Patient
from ..models.prescription import MedicationStatus, Prescription, PrescriptionStatus
from ..models.user import User
from ..schemas.clinical import PrescriptionCreate, PrescriptionResponse, PrescriptionStatusUpdate
from ..schemas.common import page_params
from ..services.audit import AuditService
from .deps import ensure_patient_access, get_accessible_patient, not_found
from .visits import build_prescription, get_visit_or_404


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Prescriptions"])

DISPENSING_ROLES = ("doctor", "pharmacist")


def _get_prescription_or_404(db: Session, prescription_id: UUID, user: User) -> Prescription:
    prescription = db.query(Prescription).filter(Prescription.id == prescription_id).first()
    if not prescription:
        raise not_found("Prescription not found")
    patient = db.query(Patient).filter(Patient.id == prescription.patient_id).first()
    ensure_patient_access(user, patient)
    return prescription


def _check_transition(current: PrescriptionStatus, new: PrescriptionStatus) -> None:
    if current == new:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Prescription is already {current.value}",
        )
    if current == PrescriptionStatus.CANCELLED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot change a cancelled prescription")
    if current == PrescriptionStatus.DISPENSED and new == PrescriptionStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot revert a dispensed prescription")


@router.post("/visits/{visit_id}/prescriptions", status_code=status.HTTP_201_CREATED)
async def create_prescription(
    visit_id: UUID,
    body: PrescriptionCreate,
    request: Request,
    user: User = Depends(require_role("doctor")),
    db: Session = Depends(get_db),
):
    visit = get_visit_or_404(db, visit_id, user)

    try:
        with transaction(db):
            prescription = build_prescription(db, body, visit, user.id)
            AuditService(db, user=user, request=request, autocommit=False).log_create(
                "prescriptions", prescription.id, new_values={"items": len(body.items)}
            )
    except SQLAlchemyError as e:
        logger.error(f"Failed to create prescription for visit {visit.id}: {e}")
        raise APIError(500, "Failed to create prescription", code="PRESCRIPTION_CREATE_FAILED")

    logger.info(f"Prescription {prescription.prescription_number} created for visit {visit.id}")
    return envelope(data=PrescriptionResponse.model_validate(prescription), status_code=201)


@router.get("/patients/{patient_id}/prescriptions")
async def list_patient_prescriptions(
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(10)),
    status_filter: Optional[PrescriptionStatus] = Query(None, alias="status"),
):
    query = db.query(Prescription).filter(Prescription.patient_id == patient.id)
    if status_filter:
        query = query.filter(Prescription.status == status_filter)

    page = paginate(query.order_by(Prescription.prescription_date.desc()), *pagination)
    return envelope(
        data=[PrescriptionResponse.model_validate(p) for p in page.items],
        meta={"pagination": page.meta()},
    )


@router.get("/prescriptions/{prescription_id}")
async def get_prescription(
    prescription_id: UUID,
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
):
    return envelope(data=PrescriptionResponse.model_validate(_get_prescription_or_404(db, prescription_id, user)))


@router.put("/prescriptions/{prescription_id}/status")
async def update_prescription_status(
    prescription_id: UUID,
    body: PrescriptionStatusUpdate,
    request: Request,
    user: User = Depends(require_role(*DISPENSING_ROLES)),
    db: Session = Depends(get_db),
):
    """
    Move a prescription to ``dispensed`` or ``cancelled``.

    Dispensing stamps the dispenser and marks every prescribed item as
    dispensed.
    """
    prescription = _get_prescription_or_404(db, prescription_id, user)
    old_status = prescription.status
    _check_transition(old_status, body.status)

    with transaction(db):
        prescription.status = body.status
        if body.status == PrescriptionStatus.DISPENSED:
            prescription.dispensed_at = utcnow()
            prescription.dispensed_by = user.id
            for item in prescription.items:
                if item.item_status == MedicationStatus.PRESCRIBED:
                    item.item_status = MedicationStatus.DISPENSED
        AuditService(db, user=user, request=request, autocommit=False).log_update(
            "prescriptions", prescription.id,
            old_values={"status": old_status.value},
            new_values={"status": body.status.value},
        )

    logger.info(f"Prescription {prescription.prescription_number} {old_status.value} -> {body.status.value}")
    return envelope(data=PrescriptionResponse.model_validate(prescription))
