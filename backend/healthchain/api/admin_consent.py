"""
Admin consent management: requests, contracts and the consent dashboard.

Static paths (/stats, /dashboard/...) are declared before the /{id} routes.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.auth import require_role
from ..core.config import settings
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope, paginate
from ..core.transactions import transaction
from ..models.consent import (
    ConsentContract,
    ConsentContractStatus,
    ConsentRequest,
    ConsentRequestStatus,
)
from ..models.mixins import utcnow
from ..models.patient import Patient
from ..models.user import User
from ..schemas.common import page_params
from ..schemas.consent import (
    ConsentContractResponse,
    ConsentContractStatusUpdate,
    ConsentDecision,
    ConsentRequestResponse,
    ConsentRequestStatusUpdate,
)
from ..services.audit import AuditService
from ..services.cache import CacheService, cached
from ..services.consent import (
    ConsentService,
    compliance_alerts,
    contract_stats,
    dashboard_stats,
    request_stats,
)


logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/admin/consent",
    tags=["Admin Consent"],
    dependencies=[Depends(require_role("admin"))],
)

DASHBOARD_LIST_LIMIT = 10


@cached(key_func=lambda db: f"{CacheService.PREFIX_DASHBOARD}:consent-stats", ttl=settings.cache_ttl_dashboard)
def _cached_dashboard_stats(db: Session) -> dict:
    return dashboard_stats(db)


def _search(query, search: Optional[str], purpose_column):
    if not search:
        return query
    term = f"%{search.strip()}%"
    return query.outerjoin(Patient, Patient.id == purpose_column.class_.patient_id).filter(or_(
        purpose_column.ilike(term),
        Patient.first_name.ilike(term),
        Patient.last_name.ilike(term),
        Patient.hospital_number.ilike(term),
    ))


def _get_request_or_404(db: Session, request_id: UUID) -> ConsentRequest:
    consent_request = db.query(ConsentRequest).filter(ConsentRequest.id == request_id).first()
    if not consent_request:
        raise APIError(status.HTTP_404_NOT_FOUND, "Consent request not found", code="CONSENT_REQUEST_NOT_FOUND")
    return consent_request


def _get_contract_or_404(db: Session, contract_id: UUID) -> ConsentContract:
    contract = db.query(ConsentContract).filter(ConsentContract.id == contract_id).first()
    if not contract:
        raise APIError(status.HTTP_404_NOT_FOUND, "Consent contract not found", code="CONSENT_CONTRACT_NOT_FOUND")
    return contract


def _active_contracts(db: Session, limit: int) -> list[ConsentContractResponse]:
    rows = (
        db.query(ConsentContract)
        .filter(ConsentContract.status == ConsentContractStatus.ACTIVE, ConsentContract.valid_until > utcnow())
        .order_by(ConsentContract.valid_until)
        .limit(limit)
        .all()
    )
    return [ConsentContractResponse.from_model(c) for c in rows]


def _recent_requests(db: Session, limit: int) -> list[ConsentRequestResponse]:
    rows = db.query(ConsentRequest).order_by(ConsentRequest.created_at.desc()).limit(limit).all()
    return [ConsentRequestResponse.from_model(r) for r in rows]


# =============================================================================
# Dashboard
# =============================================================================


@router.get("/dashboard/stats")
async def get_dashboard_stats(db: Session = Depends(get_db)):
    return envelope(data=_cached_dashboard_stats(db))


@router.get("/dashboard/recent")
async def get_recent_requests(
    limit: int = Query(DASHBOARD_LIST_LIMIT, ge=1, le=50),
    db: Session = Depends(get_db),
):
    return envelope(data=_recent_requests(db, limit))


@router.get("/dashboard/active-contracts")
async def get_active_contracts(
    limit: int = Query(DASHBOARD_LIST_LIMIT, ge=1, le=50),
    db: Session = Depends(get_db),
):
    return envelope(data=_active_contracts(db, limit))


@router.get("/dashboard/alerts")
async def get_compliance_alerts(
    limit: int = Query(DASHBOARD_LIST_LIMIT, ge=1, le=50),
    db: Session = Depends(get_db),
):
    return envelope(data=compliance_alerts(db, limit))


@router.get("/dashboard/overview")
async def get_dashboard_overview(db: Session = Depends(get_db)):
    return envelope(data={
        "stats": _cached_dashboard_stats(db),
        "recentRequests": _recent_requests(db, DASHBOARD_LIST_LIMIT),
        "activeContracts": _active_contracts(db, DASHBOARD_LIST_LIMIT),
        "alerts": compliance_alerts(db, DASHBOARD_LIST_LIMIT),
    })


# =============================================================================
# Requests
# =============================================================================


@router.get("/requests")
async def list_requests(
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(20)),
    status_filter: Optional[ConsentRequestStatus] = Query(None, alias="status"),
    request_type: Optional[str] = Query(None, alias="requestType", max_length=50),
    search: Optional[str] = Query(None, max_length=100),
):
    query = db.query(ConsentRequest)
    if status_filter:
        query = query.filter(ConsentRequest.status == status_filter)
    if request_type:
        query = query.filter(ConsentRequest.request_type == request_type)
    query = _search(query, search, ConsentRequest.purpose)

    page = paginate(query.order_by(ConsentRequest.created_at.desc()), *pagination)
    return envelope(
        data=[ConsentRequestResponse.from_model(r) for r in page.items],
        meta={"pagination": page.meta()},
    )


@router.get("/requests/stats")
async def get_request_stats(db: Session = Depends(get_db)):
    return envelope(data=request_stats(db))


@router.get("/requests/{request_id}")
async def get_request(request_id: UUID, db: Session = Depends(get_db)):
    return envelope(data=ConsentRequestResponse.from_model(_get_request_or_404(db, request_id)))


def _decide(db: Session, request: Request, admin: User, request_id: UUID, response: str,
            reason: Optional[str]) -> dict:
    consent_request = _get_request_or_404(db, request_id)
    with transaction(db):
        contract = ConsentService(db, actor=admin).respond(consent_request, response, reason)
        AuditService(db, user=admin, request=request, autocommit=False).log_update(
            "consent_requests", consent_request.id,
            old_values={"status": ConsentRequestStatus.PENDING.value},
            new_values={"status": consent_request.status.value},
        )
    logger.info(f"Admin {admin.id} {consent_request.status.value} consent request {consent_request.id}")
    return envelope(data={
        "request": ConsentRequestResponse.from_model(consent_request),
        "contract": ConsentContractResponse.from_model(contract) if contract else None,
    })


@router.put("/requests/{request_id}/approve")
async def approve_request(
    request_id: UUID,
    request: Request,
    body: Optional[ConsentDecision] = None,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    return _decide(db, request, admin, request_id, "approved", body.reason if body else None)


@router.put("/requests/{request_id}/reject")
async def reject_request(
    request_id: UUID,
    request: Request,
    body: Optional[ConsentDecision] = None,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    return _decide(db, request, admin, request_id, "rejected", body.reason if body else None)


@router.put("/requests/{request_id}/status")
async def update_request_status(
    request_id: UUID,
    body: ConsentRequestStatusUpdate,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Administrative override; approving here creates the contract as well."""
    consent_request = _get_request_or_404(db, request_id)
    old_status = consent_request.status
    with transaction(db):
        ConsentService(db, actor=admin).set_request_status(consent_request, body.status, body.reason)
        AuditService(db, user=admin, request=request, autocommit=False).log_update(
            "consent_requests", consent_request.id,
            old_values={"status": old_status.value},
            new_values={"status": body.status.value},
        )
    return envelope(data=ConsentRequestResponse.from_model(consent_request))


# =============================================================================
# Contracts
# =============================================================================


@router.get("/contracts")
async def list_contracts(
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(20)),
    status_filter: Optional[ConsentContractStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100),
):
    query = db.query(ConsentContract)
    if status_filter:
        query = query.filter(ConsentContract.status == status_filter)
    if search:
        term = f"%{search.strip()}%"
        query = query.outerjoin(Patient, Patient.id == ConsentContract.patient_id).filter(or_(
            ConsentContract.contract_number.ilike(term),
            ConsentContract.purpose.ilike(term),
            Patient.first_name.ilike(term),
            Patient.last_name.ilike(term),
        ))

    page = paginate(query.order_by(ConsentContract.created_at.desc()), *pagination)
    return envelope(
        data=[ConsentContractResponse.from_model(c) for c in page.items],
        meta={"pagination": page.meta()},
    )


@router.get("/contracts/stats")
async def get_contract_stats(db: Session = Depends(get_db)):
    return envelope(data=contract_stats(db))


@router.get("/contracts/{contract_id}")
async def get_contract(contract_id: UUID, db: Session = Depends(get_db)):
    return envelope(data=ConsentContractResponse.from_model(_get_contract_or_404(db, contract_id)))


@router.put("/contracts/{contract_id}/status")
async def update_contract_status(
    contract_id: UUID,
    body: ConsentContractStatusUpdate,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    contract = _get_contract_or_404(db, contract_id)
    old_status = contract.status
    with transaction(db):
        ConsentService(db, actor=admin).set_contract_status(contract, body.status, body.reason)
        AuditService(db, user=admin, request=request, autocommit=False).log_update(
            "consent_contracts", contract.id,
            old_values={"status": old_status.value},
            new_values={"status": body.status.value},
        )
    logger.info(f"Contract {contract.contract_number} {old_status.value} -> {body.status.value}")
    return envelope(data=ConsentContractResponse.from_model(contract))
