"""
Visit endpoints: atomic creation with clinical children, completion,
vital signs.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import CARE_TEAM_ROLES, CLINICAL_ROLES, require_role
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope, paginate
from ..core.transactions import transaction
from ..models.lab import LabOrder
from ..models.mixins import utcnow
from ..models.patient import Patient
from ..models.prescription import Prescription, PrescriptionItem
from ..models.user import User, UserRole
from ..models.visit import COMPLETABLE_STATUSES, Visit, VisitStatus, VitalSigns
from ..schemas.clinical import (
    LabOrderCreate,
    LabOrderResponse,
    PrescriptionCreate,
    PrescriptionResponse,
    VisitCompleteRequest,
    VisitCreate,
    VisitDetailResponse,
    VisitResponse,
    VisitUpdate,
    VitalSignsCreate,
    VitalSignsResponse,
)
from ..schemas.common import page_params
from ..services.audit import AuditService, changed_fields
from ..services.cache import get_cache
from ..services.record_numbers import (
    generate_lab_order_number,
    generate_prescription_number,
    generate_visit_number,
)
from .deps import ensure_patient_access, get_accessible_patient, not_found


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Visits"])


# =============================================================================
# Builders shared with the lab order and prescription routers
# =============================================================================

def build_vital_signs(body: VitalSignsCreate, patient_id: UUID, visit_id: Optional[UUID],
                      recorded_by: UUID) -> VitalSigns:
    values = body.model_dump(exclude_unset=True)
    if values.get("measured_at") is None:
        values.pop("measured_at", None)
    vitals = VitalSigns(patient_id=patient_id, visit_id=visit_id, recorded_by=recorded_by, **values)
    vitals.compute_bmi()
    return vitals


def build_lab_order(db: Session, body: LabOrderCreate, visit: Visit, ordered_by: UUID) -> LabOrder:
    order = LabOrder(
        order_number=generate_lab_order_number(db),
        visit_id=visit.id,
        patient_id=visit.patient_id,
        ordered_by=ordered_by,
        **body.model_dump(),
    )
    db.add(order)
    db.flush()
    return order


def build_prescription(db: Session, body: PrescriptionCreate, visit: Visit, prescribed_by: UUID) -> Prescription:
    prescription = Prescription(
        prescription_number=generate_prescription_number(db),
        visit_id=visit.id,
        patient_id=visit.patient_id,
        prescribed_by=prescribed_by,
        general_instructions=body.general_instructions,
    )
    prescription.items = [PrescriptionItem(**item.model_dump()) for item in body.items]
    db.add(prescription)
    db.flush()
    return prescription


def get_visit_or_404(db: Session, visit_id: UUID, user: User) -> Visit:
    visit = db.query(Visit).filter(Visit.id == visit_id).first()
    if not visit:
        raise not_found("Visit not found")
    ensure_patient_access(user, visit.patient)
    return visit


def _visit_detail(db: Session, visit: Visit) -> VisitDetailResponse:
    detail = VisitDetailResponse.model_validate(visit)
    detail.lab_orders = [
        LabOrderResponse.model_validate(o)
        for o in db.query(LabOrder).filter(LabOrder.visit_id == visit.id).order_by(LabOrder.order_date).all()
    ]
    detail.prescriptions = [
        PrescriptionResponse.model_validate(p)
        for p in db.query(Prescription).filter(Prescription.visit_id == visit.id).order_by(Prescription.prescription_date).all()
    ]
    return detail


# =============================================================================
# Patient-scoped
# =============================================================================


@router.post("/patients/{patient_id}/visits", status_code=status.HTTP_201_CREATED)
async def create_visit(
    body: VisitCreate,
    request: Request,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CLINICAL_ROLES, "staff")),
    db: Session = Depends(get_db),
):
    """
    Create a visit with optional vital signs, lab orders and prescriptions.

    Everything is written in one transaction; a failure in any child rolls
    the visit back.
    """
    doctor_id = body.doctor_id or (user.id if user.role == UserRole.DOCTOR else None)
    if body.doctor_id:
        doctor = db.query(User).filter(User.id == body.doctor_id, User.role == UserRole.DOCTOR).first()
        if not doctor:
            raise not_found("Physician not found")

    visit_values = body.model_dump(exclude={"vital_signs", "lab_orders", "prescriptions", "doctor_id"})
    if visit_values.get("visit_date") is None:
        visit_values.pop("visit_date")

    try:
        with transaction(db):
            visit = Visit(
                visit_number=generate_visit_number(db),
                patient_id=patient.id,
                doctor_id=doctor_id,
                created_by=user.id,
                **visit_values,
            )
            db.add(visit)
            db.flush()

            if body.vital_signs:
                db.add(build_vital_signs(body.vital_signs, patient.id, visit.id, user.id))
            lab_orders = [build_lab_order(db, order, visit, user.id) for order in body.lab_orders]
            prescriptions = [build_prescription(db, rx, visit, user.id) for rx in body.prescriptions]

            AuditService(db, user=user, request=request, autocommit=False).log_create(
                "visits",
                visit.id,
                new_values={
                    "vital_signs": body.vital_signs is not None,
                    "lab_orders": len(lab_orders),
                    "prescriptions": len(prescriptions),
                },
            )
    except SQLAlchemyError as e:
        logger.error(f"Failed to create visit for patient {patient.id}: {e}")
        raise APIError(500, "Failed to create visit", code="VISIT_CREATE_FAILED")

    db.refresh(visit)
    get_cache().invalidate_dashboard()
    logger.info(f"Visit {visit.visit_number} created for patient {patient.id}")
    return envelope(data=_visit_detail(db, visit), status_code=201)


@router.get("/patients/{patient_id}/visits")
async def list_patient_visits(
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(10)),
    status_filter: Optional[VisitStatus] = Query(None, alias="status"),
):
    query = db.query(Visit).filter(Visit.patient_id == patient.id)
    if status_filter:
        query = query.filter(Visit.status == status_filter)

    page = paginate(query.order_by(Visit.visit_date.desc()), *pagination)
    return envelope(
        data=[VisitResponse.model_validate(v) for v in page.items],
        meta={"pagination": page.meta()},
    )


@router.get("/patients/{patient_id}/vital-signs")
async def list_patient_vital_signs(
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(20)),
):
    query = db.query(VitalSigns).filter(VitalSigns.patient_id == patient.id)
    page = paginate(query.order_by(VitalSigns.measured_at.desc()), *pagination)
    return envelope(
        data=[VitalSignsResponse.model_validate(v) for v in page.items],
        meta={"pagination": page.meta()},
    )


# =============================================================================
# Visit-scoped
# =============================================================================


@router.get("/visits/{visit_id}")
async def get_visit(
    visit_id: UUID,
    request: Request,
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
):
    visit = get_visit_or_404(db, visit_id, user)
    AuditService(db, user=user, request=request).log_read("visits", visit.id)
    return envelope(data=_visit_detail(db, visit))


@router.put("/visits/{visit_id}")
async def update_visit(
    visit_id: UUID,
    body: VisitUpdate,
    request: Request,
    user: User = Depends(require_role(*CLINICAL_ROLES)),
    db: Session = Depends(get_db),
):
    visit = get_visit_or_404(db, visit_id, user)
    if visit.status in (VisitStatus.COMPLETED, VisitStatus.CANCELLED):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot update a {visit.status.value} visit",
        )

    values = body.model_dump(exclude_unset=True)
    if not values:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid fields to update")

    with transaction(db):
        for field, value in values.items():
            setattr(visit, field, value)
        AuditService(db, user=user, request=request, autocommit=False).log_update(
            "visits", visit.id, new_values=changed_fields(values)
        )

    return envelope(data=VisitResponse.model_validate(visit))


@router.put("/visits/{visit_id}/complete")
async def complete_visit(
    visit_id: UUID,
    request: Request,
    body: Optional[VisitCompleteRequest] = None,
    user: User = Depends(require_role(*CLINICAL_ROLES)),
    db: Session = Depends(get_db),
):
    """Complete a visit that is checked in or in progress."""
    visit = (
        db.query(Visit)
        .filter(Visit.id == visit_id, Visit.status.in_(COMPLETABLE_STATUSES))
        .first()
    )
    if not visit:
        raise not_found("Visit not found or cannot be completed")

    values = body.model_dump(exclude_unset=True) if body else {}
    old_status = visit.status.value
    with transaction(db):
        for field, value in values.items():
            setattr(visit, field, value)
        visit.status = VisitStatus.COMPLETED
        visit.completed_at = utcnow()
        AuditService(db, user=user, request=request, autocommit=False).log_update(
            "visits", visit.id,
            old_values={"status": old_status},
            new_values={"status": VisitStatus.COMPLETED.value},
        )

    get_cache().invalidate_dashboard()
    return envelope(data=VisitResponse.model_validate(visit))


@router.post("/visits/{visit_id}/vital-signs", status_code=status.HTTP_201_CREATED)
async def record_vital_signs(
    visit_id: UUID,
    body: VitalSignsCreate,
    request: Request,
    user: User = Depends(require_role(*CLINICAL_ROLES)),
    db: Session = Depends(get_db),
):
    visit = get_visit_or_404(db, visit_id, user)
    with transaction(db):
        vitals = build_vital_signs(body, visit.patient_id, visit.id, user.id)
        db.add(vitals)
        db.flush()
        AuditService(db, user=user, request=request, autocommit=False).log_create(
            "vital_signs", vitals.id, new_values=changed_fields(body.model_dump(exclude_unset=True))
        )

    return envelope(data=VitalSignsResponse.model_validate(vitals), status_code=201)
