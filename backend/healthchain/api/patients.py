"""
Patient registration and lookup endpoints.

Static routes (/search) are defined BEFORE the dynamic /{patient_id} route
so "search" is never matched as a patient reference.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import CARE_TEAM_ROLES, require_permission, require_role
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope, paginate
from ..core.security import encrypt_field, hash_identifier
from ..core.transactions import transaction
from ..models.patient import Gender, Patient
from ..models.user import User
from ..schemas.common import page_params
from ..schemas.patient import PatientCreate, PatientResponse, PatientSummary, PatientUpdate
from ..services.audit import AuditService, changed_fields
from ..services.record_numbers import generate_hospital_number
from .deps import find_patient, get_accessible_patient, not_found


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/patients", tags=["Patients"])

REGISTRATION_ROLES = ("doctor", "nurse", "staff")
SEARCH_LIMIT = 20


def _search_filter(term: str):
    like = f"%{term.strip()}%"
    return or_(
        Patient.first_name.ilike(like),
        Patient.last_name.ilike(like),
        Patient.hospital_number.ilike(like),
        Patient.phone.ilike(like),
    )


# =============================================================================
# Create
# =============================================================================


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission("patient.create"))],
)
async def create_patient(
    body: PatientCreate,
    request: Request,
    user: User = Depends(require_role(*REGISTRATION_ROLES)),
    db: Session = Depends(get_db),
):
    """
    Register a patient and assign the next Hospital Number.

    The national ID is stored encrypted; a keyed hash detects duplicates
    (409).
    """
    values = body.model_dump(exclude={"national_id"})
    national_id_hash = None
    if body.national_id:
        national_id_hash = hash_identifier(body.national_id)
        if db.query(Patient).filter(Patient.national_id_hash == national_id_hash).first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A patient with this national ID already exists",
            )

    try:
        with transaction(db):
            patient = Patient(
                hospital_number=generate_hospital_number(db),
                national_id_encrypted=encrypt_field(body.national_id) if body.national_id else None,
                national_id_hash=national_id_hash,
                created_by=user.id,
                is_active=True,
                **values,
            )
            db.add(patient)
            db.flush()
            AuditService(db, user=user, request=request, autocommit=False).log_create(
                "patients", patient.id, new_values=changed_fields(body.model_dump(exclude_unset=True))
            )
    except SQLAlchemyError as e:
        logger.error(f"Failed to create patient: {e}")
        raise APIError(500, "Failed to create patient", code="PATIENT_CREATE_FAILED")

    logger.info(f"Patient {patient.id} registered as {patient.hospital_number}")
    return envelope(data=PatientResponse.from_model(patient), status_code=201)


# =============================================================================
# List / Search
# =============================================================================


@router.get(
    "",
    dependencies=[Depends(require_role(*CARE_TEAM_ROLES)), Depends(require_permission("patient.read"))],
)
async def list_patients(
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(20)),
    search: Optional[str] = Query(None, max_length=100),
    gender: Optional[Gender] = None,
    blood_type: Optional[str] = Query(None, max_length=5),
    include_inactive: bool = False,
):
    query = db.query(Patient)
    if not include_inactive:
        query = query.filter(Patient.is_active.is_(True))
    if search:
        query = query.filter(_search_filter(search))
    if gender:
        query = query.filter(Patient.gender == gender)
    if blood_type:
        query = query.filter(Patient.blood_type == blood_type)

    page = paginate(query.order_by(Patient.created_at.desc()), *pagination)
    return envelope(
        data=[PatientResponse.from_model(p) for p in page.items],
        meta={"pagination": page.meta()},
    )


@router.get(
    "/search",
    dependencies=[Depends(require_role(*CARE_TEAM_ROLES)), Depends(require_permission("patient.read"))],
)
async def search_patients(
    q: str = Query(..., min_length=1, max_length=100),
    db: Session = Depends(get_db),
):
    """Quick lookup by name, Hospital Number or phone."""
    patients = (
        db.query(Patient)
        .filter(Patient.is_active.is_(True), _search_filter(q))
        .order_by(Patient.last_name, Patient.first_name)
        .limit(SEARCH_LIMIT)
        .all()
    )
    return envelope(
        data=[PatientSummary.model_validate(p) for p in patients],
        meta={"count": len(patients)},
    )


# =============================================================================
# Get / Update / Delete
# =============================================================================


@router.get("/{patient_id}", dependencies=[Depends(require_permission("patient.read"))])
async def get_patient(
    request: Request,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
):
    """Fetch a patient by UUID or Hospital Number. Every chart read is audited."""
    AuditService(db, user=user, request=request).log_read("patients", patient.id)
    return envelope(data=PatientResponse.from_model(patient))


@router.put("/{patient_id}", dependencies=[Depends(require_permission("patient.update"))])
async def update_patient(
    body: PatientUpdate,
    request: Request,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*REGISTRATION_ROLES)),
    db: Session = Depends(get_db),
):
    values = body.model_dump(exclude_unset=True)
    if not values:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid fields to update")

    with transaction(db):
        for field, value in values.items():
            setattr(patient, field, value)
        AuditService(db, user=user, request=request, autocommit=False).log_update(
            "patients", patient.id, new_values=changed_fields(values)
        )

    return envelope(data=PatientResponse.from_model(patient))


@router.delete("/{patient_id}", dependencies=[Depends(require_permission("patient.delete"))])
async def delete_patient(
    patient_id: str,
    request: Request,
    user: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Soft delete; the record stays for the audit trail."""
    patient = find_patient(db, patient_id)
    if not patient:
        raise not_found("Patient not found")

    with transaction(db):
        patient.is_active = False
        AuditService(db, user=user, request=request, autocommit=False).log_delete("patients", patient.id)

    logger.info(f"Patient {patient.id} deactivated by {user.id}")
    return envelope(data={"message": "Patient deleted successfully", "id": str(patient.id)})
