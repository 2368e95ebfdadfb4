"""
External requester registration and review.

An organisation registers with a login account that stays inactive until an
administrator approves it. Review moves the organisation through

    pending -> active | rejected
    active -> suspended | revoked
    suspended -> active | revoked

and keeps the account's ``is_active`` flag in step: only active
organisations can sign in. Rejected and revoked are final.

The service only adds to the session; routers wrap calls in
``transaction(db)``.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.security import hash_password
from ..models.consent import ConsentRequest, ConsentRequestStatus
from ..models.external_requester import (
    DataAccessLevel,
    ExternalRequester,
    OrganizationType,
    RequesterStatus,
)
from ..models.mixins import as_utc
from ..models.notification import NotificationPriority
from ..models.user import User, UserRole
from .notifications import create_notification
from .record_numbers import generate_registration_number


logger = logging.getLogger(__name__)

REVIEW_TRANSITIONS: dict[RequesterStatus, frozenset] = {
    RequesterStatus.PENDING: frozenset({RequesterStatus.ACTIVE, RequesterStatus.REJECTED}),
    RequesterStatus.ACTIVE: frozenset({RequesterStatus.SUSPENDED, RequesterStatus.REVOKED}),
    RequesterStatus.SUSPENDED: frozenset({RequesterStatus.ACTIVE, RequesterStatus.REVOKED}),
    RequesterStatus.REJECTED: frozenset(),
    RequesterStatus.REVOKED: frozenset(),
}

# Registration status as reported to the organisation itself
PUBLIC_STATUS = {
    RequesterStatus.PENDING: "pending_admin_approval",
    RequesterStatus.ACTIVE: "approved",
    RequesterStatus.SUSPENDED: "suspended",
    RequesterStatus.REJECTED: "rejected",
    RequesterStatus.REVOKED: "revoked",
}

STATUS_NOTIFICATIONS = {
    RequesterStatus.ACTIVE: ("Organisation approved", "Your organisation can now submit data access requests"),
    RequesterStatus.REJECTED: ("Registration rejected", "Your organisation registration was rejected"),
    RequesterStatus.SUSPENDED: ("Access suspended", "Your organisation's access has been suspended"),
    RequesterStatus.REVOKED: ("Access revoked", "Your organisation's access has been revoked"),
}

REGISTRATION_TREND_MONTHS = 12


class RequesterStateError(ValueError):
    """Review transition not allowed from the organisation's status (HTTP 400)."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def account_conflict(db: Session, email: str, username: Optional[str]) -> Optional[str]:
    """Message naming the taken login field, or None when both are free."""
    if db.query(User.id).filter(User.email == email).first():
        return "Email already exists"
    if username and db.query(User.id).filter(User.username == username).first():
        return "Username already exists"
    return None


def _username_for(email: str) -> str:
    return f"{email.split('@')[0]}_{secrets.token_hex(3)}"


def get_requester_for_user(db: Session, user_id: UUID) -> Optional[ExternalRequester]:
    return db.query(ExternalRequester).filter(ExternalRequester.user_id == user_id).first()


# =============================================================================
# Registration
# =============================================================================


def register_requester(
    db: Session,
    *,
    organization_name: str,
    organization_type: OrganizationType,
    primary_contact_first_name: str,
    primary_contact_last_name: str,
    primary_contact_email: str,
    login_email: str,
    password: str,
    username: Optional[str] = None,
    primary_contact_phone: Optional[str] = None,
    allowed_request_types: Iterable[str] = (),
    data_access_level: DataAccessLevel = DataAccessLevel.BASIC,
    compliance_certifications: Iterable[str] = (),
    **details: Any,
) -> ExternalRequester:
    """
    Create the inactive login account and the pending organisation record.

    ``details`` carries the optional registration fields (registration
    number, licence, tax id, address, data protection certification).
    """
    user = User(
        email=login_email,
        username=username or _username_for(login_email),
        password_hash=hash_password(password),
        first_name=primary_contact_first_name,
        last_name=primary_contact_last_name,
        role=UserRole.EXTERNAL_REQUESTER,
        phone=primary_contact_phone,
        is_active=False,
    )
    db.add(user)
    db.flush()

    requester = ExternalRequester(
        user_id=user.id,
        registration_number=generate_registration_number(db),
        organization_name=organization_name,
        organization_type=organization_type,
        primary_contact_name=f"{primary_contact_first_name} {primary_contact_last_name}",
        primary_contact_email=primary_contact_email,
        primary_contact_phone=primary_contact_phone,
        allowed_request_types=list(allowed_request_types),
        data_access_level=data_access_level,
        compliance_certifications=list(compliance_certifications),
        status=RequesterStatus.PENDING,
        **details,
    )
    db.add(requester)
    db.flush()
    requester.user = user

    logger.info(f"External requester {requester.registration_number} registered ({organization_name})")
    return requester


def registration_status(requester: ExternalRequester) -> dict[str, Any]:
    return {
        "registrationNumber": requester.registration_number,
        "organizationName": requester.organization_name,
        "status": PUBLIC_STATUS[requester.status],
        "adminApproved": requester.is_verified,
        "reason": requester.status_reason,
        "createdAt": as_utc(requester.created_at).isoformat(),
        "updatedAt": as_utc(requester.updated_at).isoformat(),
    }


# =============================================================================
# Review
# =============================================================================


def set_requester_status(
    db: Session,
    requester: ExternalRequester,
    status: RequesterStatus,
    actor: User,
    reason: Optional[str] = None,
) -> ExternalRequester:
    """
    Move an organisation to ``status`` and sync its login account.

    Raises:
        RequesterStateError: the transition is not allowed
    """
    old_status = requester.status
    if status not in REVIEW_TRANSITIONS[old_status]:
        raise RequesterStateError(
            f"Cannot change external requester status from {old_status.value} to {status.value}"
        )

    requester.status = status
    requester.status_reason = reason
    requester.user.is_active = status == RequesterStatus.ACTIVE
    if status == RequesterStatus.ACTIVE and not requester.is_verified:
        requester.is_verified = True
        requester.verification_date = _now()
        requester.verified_by = actor.id

    title, message = STATUS_NOTIFICATIONS[status]
    create_notification(
        db,
        title=title,
        message=f"{message}: {reason}" if reason else message,
        notification_type=f"external_requester_{status.value}",
        user_id=requester.user_id,
        priority=NotificationPriority.HIGH,
        data={"external_requester_id": str(requester.id)},
        created_by=actor.id,
    )
    logger.info(
        f"External requester {requester.registration_number} {old_status.value} -> {status.value} by {actor.id}"
    )
    return requester


def approve_requester(
    db: Session,
    requester: ExternalRequester,
    actor: User,
    reason: Optional[str] = None,
    allowed_request_types: Optional[list[str]] = None,
    data_access_level: Optional[DataAccessLevel] = None,
    max_concurrent_requests: Optional[int] = None,
) -> ExternalRequester:
    """Approve a pending organisation, optionally fixing its access scope first."""
    if requester.status != RequesterStatus.PENDING:
        raise RequesterStateError(f"External requester is already {requester.status.value}")
    if allowed_request_types is not None:
        requester.allowed_request_types = list(allowed_request_types)
    if data_access_level is not None:
        requester.data_access_level = data_access_level
    if max_concurrent_requests is not None:
        requester.max_concurrent_requests = max_concurrent_requests
    return set_requester_status(db, requester, RequesterStatus.ACTIVE, actor, reason)


def reject_requester(
    db: Session,
    requester: ExternalRequester,
    actor: User,
    reason: Optional[str] = None,
) -> ExternalRequester:
    if requester.status != RequesterStatus.PENDING:
        raise RequesterStateError(f"External requester is already {requester.status.value}")
    return set_requester_status(db, requester, RequesterStatus.REJECTED, actor, reason)


# =============================================================================
# Request counts and statistics
# =============================================================================


def request_counts(db: Session, user_ids: Iterable[UUID]) -> dict[UUID, dict[str, int]]:
    """Consent request counts by status for each requester account."""
    user_ids = list(user_ids)
    counts = {
        user_id: {"total": 0, **{s.value: 0 for s in ConsentRequestStatus}}
        for user_id in user_ids
    }
    if not user_ids:
        return counts

    rows = (
        db.query(ConsentRequest.requester_id, ConsentRequest.status, func.count(ConsentRequest.id))
        .filter(ConsentRequest.requester_id.in_(user_ids))
        .group_by(ConsentRequest.requester_id, ConsentRequest.status)
        .all()
    )
    for requester_id, status, count in rows:
        counts[requester_id][status.value] = count
        counts[requester_id]["total"] += count
    return counts


def open_request_count(db: Session, user_id: UUID) -> int:
    return (
        db.query(func.count(ConsentRequest.id))
        .filter(
            ConsentRequest.requester_id == user_id,
            ConsentRequest.status == ConsentRequestStatus.PENDING,
        )
        .scalar()
        or 0
    )


def requester_stats(db: Session) -> dict[str, Any]:
    by_status = dict(
        (status.value, count)
        for status, count in db.query(ExternalRequester.status, func.count()).group_by(ExternalRequester.status)
    )
    by_type = [
        {"organizationType": org_type.value, "count": count}
        for org_type, count in (
            db.query(ExternalRequester.organization_type, func.count())
            .group_by(ExternalRequester.organization_type)
            .order_by(func.count().desc())
        )
    ]
    by_access_level = [
        {"dataAccessLevel": level.value, "count": count}
        for level, count in (
            db.query(ExternalRequester.data_access_level, func.count())
            .filter(ExternalRequester.status == RequesterStatus.ACTIVE)
            .group_by(ExternalRequester.data_access_level)
        )
    ]
    verified = (
        db.query(func.count(ExternalRequester.id)).filter(ExternalRequester.is_verified.is_(True)).scalar() or 0
    )
    recent = (
        db.query(func.count(ExternalRequester.id))
        .filter(ExternalRequester.created_at >= _now() - timedelta(days=30 * REGISTRATION_TREND_MONTHS))
        .scalar()
        or 0
    )

    requester_user_ids = select(ExternalRequester.user_id)
    request_rows = (
        db.query(ConsentRequest.status, func.count(ConsentRequest.id))
        .filter(ConsentRequest.requester_id.in_(requester_user_ids))
        .group_by(ConsentRequest.status)
        .all()
    )
    requests = {s.value: 0 for s in ConsentRequestStatus}
    requests.update({status.value: count for status, count in request_rows})

    return {
        "overall": {
            "total": sum(by_status.values()),
            "verified": verified,
            "registeredLastYear": recent,
            **{status.value: by_status.get(status.value, 0) for status in RequesterStatus},
        },
        "byOrganizationType": by_type,
        "byAccessLevel": by_access_level,
        "requests": {"total": sum(requests.values()), **requests},
    }
