"""
Shared lookups for patient-scoped routes.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..core.auth import get_current_user
from ..core.database import get_db
from ..models.external_requester import RequesterStatus
from ..models.patient import Patient
from ..models.user import User, UserRole
from ..services.external_requesters import get_requester_for_user, open_request_count


logger = logging.getLogger(__name__)


def not_found(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)


def parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


def find_patient(db: Session, patient_ref: str, include_inactive: bool = False) -> Optional[Patient]:
    """Look a patient up by UUID or by Hospital Number."""
    query = db.query(Patient)
    if not include_inactive:
        query = query.filter(Patient.is_active.is_(True))

    patient_id = parse_uuid(patient_ref)
    if patient_id is not None:
        return query.filter(Patient.id == patient_id).first()
    return query.filter(Patient.hospital_number == patient_ref.strip().upper()).first()


def ensure_patient_access(user: User, patient: Patient) -> None:
    """Patients may only reach their own record."""
    if user.role == UserRole.PATIENT and patient.user_id != user.id:
        logger.warning(f"User {user.id} denied access to patient {patient.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this patient record",
        )


def get_accessible_patient(
    patient_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Patient:
    """
    Dependency for ``/api/patients/{patient_id}/...`` routes.

    Resolves the path parameter (UUID or HN) to an active patient and
    applies the patient self-access rule.
    """
    patient = find_patient(db, patient_id)
    if not patient:
        raise not_found("Patient not found")
    ensure_patient_access(user, patient)
    return patient


def ensure_requester_may_request(db: Session, user: User, request_type: str) -> None:
    """
    Gate consent request creation for external organisations.

    403 unless the organisation is active, 400 when the request type is
    outside its allow-list or it already has its maximum of open requests.
    Staff requesters are not restricted.
    """
    if user.role != UserRole.EXTERNAL_REQUESTER:
        return

    requester = get_requester_for_user(db, user.id)
    if requester is None or requester.status != RequesterStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organisation is not approved to request data access",
        )
    if not requester.allows_request_type(request_type):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Request type '{request_type}' is not allowed for this organisation",
        )
    if open_request_count(db, user.id) >= requester.max_concurrent_requests:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Maximum of {requester.max_concurrent_requests} pending requests reached",
        )
