"""
Consent request endpoints for patients and requesters.

Patient side (/api/patients/{patient_id}/consent-requests): list the
requests made against the patient and respond to them.

Requester side (/api/consent-requests): create and edit requests, and list
the requester's own requests and contracts.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.auth import require_role
from ..core.database import get_db
from ..core.responses import envelope, paginate
from ..core.transactions import transaction
from ..models.consent import ConsentContract, ConsentRequest, ConsentRequestStatus
from ..models.patient import Patient
from ..models.user import User
from ..schemas.common import page_params
from ..schemas.consent import (
    ConsentContractResponse,
    ConsentRequestCreate,
    ConsentRequestResponse,
    ConsentRequestUpdate,
    ConsentRespond,
    RequesterConsentRequestCreate,
)
from ..services.audit import AuditService
from ..services.consent import ConsentService
from .deps import ensure_requester_may_request, find_patient, get_accessible_patient, not_found


logger = logging.getLogger(__name__)
router = APIRouter(tags=["Consent"])

# Roles that may ask a patient for data access
REQUESTER_ROLES = ("doctor", "nurse", "pharmacist", "lab_technician", "staff", "external_requester")


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


# =============================================================================
# Patient side
# =============================================================================


@router.get("/api/patients/{patient_id}/consent-requests")
async def list_patient_consent_requests(
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role("patient", "doctor", "nurse")),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(10)),
    status_filter: Optional[ConsentRequestStatus] = Query(None, alias="status"),
    request_type: Optional[str] = Query(None, alias="requestType", max_length=50),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
):
    """
    List consent requests made against this patient.

    ``meta.status_summary`` counts every request of the patient by status,
    ignoring the filters.
    """
    query = db.query(ConsentRequest).filter(ConsentRequest.patient_id == patient.id)
    if status_filter:
        query = query.filter(ConsentRequest.status == status_filter)
    if request_type:
        query = query.filter(ConsentRequest.request_type == request_type)
    if start_date:
        query = query.filter(ConsentRequest.created_at >= _day_start(start_date))
    if end_date:
        query = query.filter(ConsentRequest.created_at < _day_start(end_date) + timedelta(days=1))

    page = paginate(query.order_by(ConsentRequest.created_at.desc()), *pagination)

    summary_rows = (
        db.query(ConsentRequest.status, func.count(ConsentRequest.id))
        .filter(ConsentRequest.patient_id == patient.id)
        .group_by(ConsentRequest.status)
        .all()
    )
    status_summary = {s.value: 0 for s in ConsentRequestStatus}
    status_summary.update({s.value: count for s, count in summary_rows})

    return envelope(
        data=[ConsentRequestResponse.from_model(r) for r in page.items],
        meta={"pagination": page.meta(), "status_summary": status_summary},
    )


@router.post("/api/patients/{patient_id}/consent-requests", status_code=status.HTTP_201_CREATED)
async def create_consent_request_for_patient(
    body: ConsentRequestCreate,
    request: Request,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*REQUESTER_ROLES)),
    db: Session = Depends(get_db),
):
    ensure_requester_may_request(db, user, body.request_type)

    with transaction(db):
        consent_request = ConsentService(db, actor=user).create_request(
            patient, body.request_type, body.purpose, body.data_types, body.expires_in_days
        )
        AuditService(db, user=user, request=request, autocommit=False).log_create(
            "consent_requests", consent_request.id, new_values={"request_type": body.request_type}
        )

    return envelope(data=ConsentRequestResponse.from_model(consent_request), status_code=201)


@router.put("/api/patients/{patient_id}/consent-requests/{request_id}/respond")
async def respond_to_consent_request(
    request_id: UUID,
    body: ConsentRespond,
    request: Request,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role("patient")),
    db: Session = Depends(get_db),
):
    """
    Approve or reject a pending request.

    400 when already responded to, expired, or the response is neither
    ``approved`` nor ``rejected``. Approval returns the new contract.
    """
    consent_request = (
        db.query(ConsentRequest)
        .filter(ConsentRequest.id == request_id, ConsentRequest.patient_id == patient.id)
        .first()
    )
    if not consent_request:
        raise not_found("Consent request not found")

    with transaction(db):
        contract = ConsentService(db, actor=user).respond(consent_request, body.response, body.reason)
        AuditService(db, user=user, request=request, autocommit=False).log_update(
            "consent_requests", consent_request.id,
            old_values={"status": ConsentRequestStatus.PENDING.value},
            new_values={"status": consent_request.status.value},
        )

    return envelope(data={
        "request": ConsentRequestResponse.from_model(consent_request),
        "contract": ConsentContractResponse.from_model(contract) if contract else None,
        "message": f"Consent request {consent_request.status.value} successfully",
    })


# =============================================================================
# Requester side
# =============================================================================


@router.post("/api/consent-requests", status_code=status.HTTP_201_CREATED)
async def create_consent_request(
    body: RequesterConsentRequestCreate,
    request: Request,
    user: User = Depends(require_role(*REQUESTER_ROLES)),
    db: Session = Depends(get_db),
):
    patient = find_patient(db, str(body.patient_id))
    if not patient:
        raise not_found("Patient not found")

    ensure_requester_may_request(db, user, body.request_type)

    with transaction(db):
        consent_request = ConsentService(db, actor=user).create_request(
            patient, body.request_type, body.purpose, body.data_types, body.expires_in_days
        )
        AuditService(db, user=user, request=request, autocommit=False).log_create(
            "consent_requests", consent_request.id, new_values={"request_type": body.request_type}
        )

    return envelope(data=ConsentRequestResponse.from_model(consent_request), status_code=201)


@router.get("/api/consent-requests")
async def list_my_consent_requests(
    user: User = Depends(require_role(*REQUESTER_ROLES)),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(10)),
    status_filter: Optional[ConsentRequestStatus] = Query(None, alias="status"),
):
    query = db.query(ConsentRequest).filter(ConsentRequest.requester_id == user.id)
    if status_filter:
        query = query.filter(ConsentRequest.status == status_filter)

    page = paginate(query.order_by(ConsentRequest.created_at.desc()), *pagination)
    return envelope(
        data=[ConsentRequestResponse.from_model(r) for r in page.items],
        meta={"pagination": page.meta()},
    )


@router.get("/api/consent-requests/contracts")
async def list_my_contracts(
    user: User = Depends(require_role(*REQUESTER_ROLES)),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(10)),
):
    query = db.query(ConsentContract).filter(ConsentContract.requester_id == user.id)
    page = paginate(query.order_by(ConsentContract.created_at.desc()), *pagination)
    return envelope(
        data=[ConsentContractResponse.from_model(c) for c in page.items],
        meta={"pagination": page.meta()},
    )


def _get_own_request_or_404(db: Session, request_id: UUID, user: User) -> ConsentRequest:
    consent_request = (
        db.query(ConsentRequest)
        .filter(ConsentRequest.id == request_id, ConsentRequest.requester_id == user.id)
        .first()
    )
    if not consent_request:
        raise not_found("Consent request not found")
    return consent_request


@router.get("/api/consent-requests/{request_id}")
async def get_my_consent_request(
    request_id: UUID,
    user: User = Depends(require_role(*REQUESTER_ROLES)),
    db: Session = Depends(get_db),
):
    return envelope(data=ConsentRequestResponse.from_model(_get_own_request_or_404(db, request_id, user)))


@router.put("/api/consent-requests/{request_id}")
async def update_consent_request(
    request_id: UUID,
    body: ConsentRequestUpdate,
    request: Request,
    user: User = Depends(require_role(*REQUESTER_ROLES)),
    db: Session = Depends(get_db),
):
    """Only pending requests can be edited; a new expiry restarts from now."""
    consent_request = _get_own_request_or_404(db, request_id, user)

    with transaction(db):
        ConsentService(db, actor=user).update_request(
            consent_request,
            purpose=body.purpose,
            data_types=body.data_types,
            expires_in_days=body.expires_in_days,
        )
        AuditService(db, user=user, request=request, autocommit=False).log_update(
            "consent_requests", consent_request.id,
            new_values={"fields": sorted(body.model_dump(exclude_unset=True))},
        )

    return envelope(data=ConsentRequestResponse.from_model(consent_request))
