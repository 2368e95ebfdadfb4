"""
Admin review of external requester organisations.

Static paths (/stats) are declared before the /{id} routes.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.auth import require_role
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope, paginate
from ..core.transactions import transaction
from ..models.consent import ConsentRequest
from ..models.external_requester import ExternalRequester, OrganizationType, RequesterStatus
from ..models.user import User
from ..schemas.common import page_params
from ..schemas.consent import ConsentRequestResponse
from ..schemas.external_requester import (
    ExternalRequesterDecision,
    ExternalRequesterResponse,
    ExternalRequesterStatusUpdate,
)
from ..services.audit import AuditService
from ..services.external_requesters import (
    approve_requester,
    reject_requester,
    request_counts,
    requester_stats,
    set_requester_status,
)


logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/admin/external-requesters",
    tags=["Admin External Requesters"],
    dependencies=[Depends(require_role("admin"))],
)

RECENT_REQUEST_LIMIT = 10


def _get_requester_or_404(db: Session, requester_id: UUID) -> ExternalRequester:
    requester = db.query(ExternalRequester).filter(ExternalRequester.id == requester_id).first()
    if not requester:
        raise APIError(
            status.HTTP_404_NOT_FOUND,
            "External requester not found",
            code="EXTERNAL_REQUESTER_NOT_FOUND",
        )
    return requester


def _audit_status(db: Session, request: Request, admin: User, requester: ExternalRequester,
                  old_status: RequesterStatus, **extra) -> None:
    AuditService(db, user=admin, request=request, autocommit=False).log_update(
        "external_requesters", requester.id,
        old_values={"status": old_status.value},
        new_values={"status": requester.status.value, **extra},
    )


@router.get("")
async def list_requesters(
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(20)),
    search: Optional[str] = Query(None, max_length=100),
    organization_type: Optional[OrganizationType] = Query(None, alias="organizationType"),
    status_filter: Optional[RequesterStatus] = Query(None, alias="status"),
):
    """List organisations, newest first, each with its consent request counts."""
    try:
        query = db.query(ExternalRequester)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(
                ExternalRequester.organization_name.ilike(term),
                ExternalRequester.registration_number.ilike(term),
                ExternalRequester.primary_contact_name.ilike(term),
                ExternalRequester.primary_contact_email.ilike(term),
            ))
        if organization_type:
            query = query.filter(ExternalRequester.organization_type == organization_type)
        if status_filter:
            query = query.filter(ExternalRequester.status == status_filter)

        page = paginate(query.order_by(ExternalRequester.created_at.desc()), *pagination)
        counts = request_counts(db, [r.user_id for r in page.items])
    except SQLAlchemyError as e:
        logger.error(f"Failed to list external requesters: {e}")
        raise APIError(500, "Failed to fetch external requesters", code="EXTERNAL_REQUESTERS_ERROR")

    return envelope(
        data=[
            {**ExternalRequesterResponse.from_model(r).model_dump(), "requestCounts": counts[r.user_id]}
            for r in page.items
        ],
        meta={"pagination": page.meta()},
    )


@router.get("/stats")
async def get_stats(db: Session = Depends(get_db)):
    return envelope(data=requester_stats(db))


@router.get("/{requester_id}")
async def get_requester(requester_id: UUID, db: Session = Depends(get_db)):
    requester = _get_requester_or_404(db, requester_id)
    recent = (
        db.query(ConsentRequest)
        .filter(ConsentRequest.requester_id == requester.user_id)
        .order_by(ConsentRequest.created_at.desc())
        .limit(RECENT_REQUEST_LIMIT)
        .all()
    )
    return envelope(data={
        "requester": ExternalRequesterResponse.from_model(requester),
        "requestCounts": request_counts(db, [requester.user_id])[requester.user_id],
        "recentRequests": [ConsentRequestResponse.from_model(r) for r in recent],
    })


@router.put("/{requester_id}/status")
async def update_requester_status(
    requester_id: UUID,
    body: ExternalRequesterStatusUpdate,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Suspend, revoke or reinstate an organisation. 400 on a disallowed transition."""
    requester = _get_requester_or_404(db, requester_id)
    old_status = requester.status
    with transaction(db):
        set_requester_status(db, requester, body.status, admin, body.reason)
        _audit_status(db, request, admin, requester, old_status, reason=body.reason)
    return envelope(data=ExternalRequesterResponse.from_model(requester))


@router.put("/{requester_id}/approve")
async def approve(
    requester_id: UUID,
    request: Request,
    body: Optional[ExternalRequesterDecision] = None,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Approve a pending registration and activate its login account."""
    requester = _get_requester_or_404(db, requester_id)
    body = body or ExternalRequesterDecision()
    old_status = requester.status
    with transaction(db):
        approve_requester(
            db, requester, admin,
            reason=body.reason,
            allowed_request_types=body.allowed_request_types,
            data_access_level=body.data_access_level,
            max_concurrent_requests=body.max_concurrent_requests,
        )
        _audit_status(
            db, request, admin, requester, old_status,
            data_access_level=requester.data_access_level.value,
            allowed_request_types=list(requester.allowed_request_types or []),
        )
    logger.info(f"Admin {admin.id} approved external requester {requester.registration_number}")
    return envelope(data=ExternalRequesterResponse.from_model(requester))


@router.put("/{requester_id}/reject")
async def reject(
    requester_id: UUID,
    request: Request,
    body: Optional[ExternalRequesterDecision] = None,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    requester = _get_requester_or_404(db, requester_id)
    old_status = requester.status
    with transaction(db):
        reject_requester(db, requester, admin, body.reason if body else None)
        _audit_status(db, request, admin, requester, old_status)
    logger.info(f"Admin {admin.id} rejected external requester {requester.registration_number}")
    return envelope(data=ExternalRequesterResponse.from_model(requester))
