"""
External requester self-service: registration, registration status and
the organisation's own profile.

Registration and the status lookup are public. The login account created
at registration stays inactive until an administrator approves the
organisation, so the profile routes only open up after approval.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..core.auth import require_role
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope
from ..core.transactions import transaction
from ..models.consent import ConsentRequest
from ..models.external_requester import ExternalRequester, RequesterStatus
from ..models.user import User
from ..schemas.consent import ConsentRequestResponse
from ..schemas.external_requester import (
    ExternalRequesterProfileUpdate,
    ExternalRequesterRegister,
    ExternalRequesterResponse,
)
from ..services.audit import AuditService
from ..services.external_requesters import (
    account_conflict,
    get_requester_for_user,
    open_request_count,
    register_requester,
    registration_status,
    request_counts,
)
from .auth import validate_password_strength


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/external-requesters", tags=["External Requesters"])

RECENT_REQUEST_LIMIT = 5


def _own_profile_or_404(db: Session, user: User) -> ExternalRequester:
    requester = get_requester_for_user(db, user.id)
    if not requester:
        raise APIError(
            status.HTTP_404_NOT_FOUND,
            "External requester profile not found",
            code="EXTERNAL_REQUESTER_NOT_FOUND",
        )
    return requester


# =============================================================================
# Registration
# =============================================================================


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: ExternalRequesterRegister,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Register an organisation and its login account.

    409 when the login email or username is taken. The account cannot sign
    in until an administrator approves the registration.
    """
    validate_password_strength(body.password)

    conflict = account_conflict(db, body.login_email, body.username)
    if conflict:
        raise APIError(status.HTTP_409_CONFLICT, conflict, code="ACCOUNT_EXISTS")

    with transaction(db):
        requester = register_requester(db, **body.model_dump())
        AuditService(db, user=requester.user, request=request, autocommit=False).log_create(
            "external_requesters", requester.id,
            new_values={
                "registration_number": requester.registration_number,
                "organization_type": requester.organization_type.value,
            },
        )

    return envelope(data=registration_status(requester), status_code=201)


@router.get("/register/status")
async def get_registration_status(
    registration_number: str = Query(..., alias="registrationNumber", max_length=20),
    email: str = Query(..., max_length=255),
    db: Session = Depends(get_db),
):
    """Look a registration up by number; the login email must match."""
    requester = (
        db.query(ExternalRequester)
        .filter(ExternalRequester.registration_number == registration_number.strip().upper())
        .first()
    )
    if not requester or requester.user.email.lower() != email.strip().lower():
        raise APIError(status.HTTP_404_NOT_FOUND, "Registration not found", code="REGISTRATION_NOT_FOUND")
    return envelope(data=registration_status(requester))


# =============================================================================
# Profile
# =============================================================================


@router.get("/profile")
async def get_profile(
    user: User = Depends(require_role("external_requester")),
    db: Session = Depends(get_db),
):
    requester = _own_profile_or_404(db, user)
    return envelope(data={
        "profile": ExternalRequesterResponse.from_model(requester),
        "requestCounts": request_counts(db, [user.id])[user.id],
    })


@router.put("/profile")
async def update_profile(
    body: ExternalRequesterProfileUpdate,
    request: Request,
    user: User = Depends(require_role("external_requester")),
    db: Session = Depends(get_db),
):
    """Organisations edit their contact details; access scope stays with admins."""
    requester = _own_profile_or_404(db, user)
    changes = body.model_dump(exclude_unset=True)

    with transaction(db):
        for field, value in changes.items():
            setattr(requester, field, value)
        AuditService(db, user=user, request=request, autocommit=False).log_update(
            "external_requesters", requester.id, new_values={"fields": sorted(changes)}
        )

    return envelope(data=ExternalRequesterResponse.from_model(requester))


@router.get("/dashboard")
async def get_dashboard(
    user: User = Depends(require_role("external_requester")),
    db: Session = Depends(get_db),
):
    requester = _own_profile_or_404(db, user)
    recent = (
        db.query(ConsentRequest)
        .filter(ConsentRequest.requester_id == user.id)
        .order_by(ConsentRequest.created_at.desc())
        .limit(RECENT_REQUEST_LIMIT)
        .all()
    )
    open_requests = open_request_count(db, user.id)
    return envelope(data={
        "organizationName": requester.organization_name,
        "status": requester.status.value,
        "canRequest": requester.status == RequesterStatus.ACTIVE
        and open_requests < requester.max_concurrent_requests,
        "openRequests": open_requests,
        "maxConcurrentRequests": requester.max_concurrent_requests,
        "requestCounts": request_counts(db, [user.id])[user.id],
        "recentRequests": [ConsentRequestResponse.from_model(r) for r in recent],
    })
