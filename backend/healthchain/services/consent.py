"""
Consent lifecycle service.

A requester asks a patient for access to some data types. The patient
approves or rejects the request exactly once, before it expires. Approval
creates an active consent contract. Every transition writes a
``consent_audit_trail`` row and notifies the other party.

The service only adds to the session; routers wrap calls in
``transaction(db)``.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.audit_log import AuditAction, AuditLog
from ..models.consent import (
    ALERT_ACTIONS,
    ConsentAuditTrail,
    ConsentContract,
    ConsentContractStatus,
    ConsentRequest,
    ConsentRequestStatus,
)
from ..models.mixins import as_utc
from ..models.notification import NotificationPriority
from ..models.patient import Patient
from ..models.user import User
from .cache import get_cache
from .notifications import create_notification
from .record_numbers import generate_contract_number


logger = logging.getLogger(__name__)

CONTRACT_VALIDITY_DAYS = 365
EXPIRING_SOON_DAYS = 30
CONSENT_ACTION_URL = "/consent-requests"

RESPONSE_STATUSES = {
    "approved": ConsentRequestStatus.APPROVED,
    "rejected": ConsentRequestStatus.REJECTED,
}

# Dashboard alert severity by audit trail action
ALERT_SEVERITY = {
    "violation": "high",
    "warning": "medium",
}
SEVERITY_RANK = {"high": 1, "medium": 2, "low": 3}


class ConsentStateError(ValueError):
    """Transition not allowed from the request's current state (HTTP 400)."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def alert_severity(action: str) -> str:
    return ALERT_SEVERITY.get(action, "low")


def requester_summary(user: Optional[User]) -> Optional[dict[str, Any]]:
    if user is None:
        return None
    return {"name": user.full_name, "role": user.role.value, "email": user.email}


class ConsentService:
    """
    Example usage:
        service = ConsentService(db, actor=current_user)
        with transaction(db):
            request = service.create_request(patient, "research", "Diabetes study", ["lab_results"])
    """

    def __init__(self, db: Session, actor: Optional[User] = None):
        self.db = db
        self.actor = actor

    @property
    def _actor_id(self) -> Optional[UUID]:
        return self.actor.id if self.actor else None

    def _trail(
        self,
        action: str,
        request: Optional[ConsentRequest] = None,
        contract: Optional[ConsentContract] = None,
        old_status: Optional[str] = None,
        new_status: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> ConsentAuditTrail:
        entry = ConsentAuditTrail(
            consent_request_id=request.id if request else None,
            contract_id=contract.id if contract else None,
            action=action,
            old_status=old_status,
            new_status=new_status,
            change_reason=reason,
            performed_by=self._actor_id,
        )
        self.db.add(entry)
        return entry

    # ==========================================================================
    # Requests
    # ==========================================================================

    def create_request(
        self,
        patient: Patient,
        request_type: str,
        purpose: str,
        data_types: list[str],
        expires_in_days: Optional[int] = None,
        requester: Optional[User] = None,
    ) -> ConsentRequest:
        if not request_type or not purpose or not data_types:
            raise ValueError("Missing required fields: request_type, purpose, data_types")

        requester = requester or self.actor
        days = expires_in_days or settings.consent_default_expiry_days

        request = ConsentRequest(
            patient_id=patient.id,
            requester_id=requester.id,
            request_type=request_type,
            purpose=purpose,
            data_types=list(data_types),
            status=ConsentRequestStatus.PENDING,
            expires_at=_now() + timedelta(days=days),
        )
        self.db.add(request)
        self.db.flush()

        self._trail("request_created", request=request, new_status=ConsentRequestStatus.PENDING.value)
        create_notification(
            self.db,
            title="New data access request",
            message=f"A request to access your data was submitted: {purpose}",
            notification_type="consent_request",
            patient_id=patient.id,
            user_id=patient.user_id,
            priority=NotificationPriority.HIGH,
            action_required=True,
            action_url=CONSENT_ACTION_URL,
            data={"consent_request_id": str(request.id)},
            created_by=requester.id,
        )
        get_cache().invalidate_dashboard()
        logger.info(f"Consent request {request.id} created for patient {patient.id}")
        return request

    def update_request(
        self,
        request: ConsentRequest,
        purpose: Optional[str] = None,
        data_types: Optional[list[str]] = None,
        expires_in_days: Optional[int] = None,
    ) -> ConsentRequest:
        if request.status != ConsentRequestStatus.PENDING:
            raise ConsentStateError("Only pending consent requests can be updated")

        if purpose is not None:
            request.purpose = purpose
        if data_types is not None:
            if not data_types:
                raise ValueError("data_types must not be empty")
            request.data_types = list(data_types)
        if expires_in_days is not None:
            request.expires_at = _now() + timedelta(days=expires_in_days)

        self._trail("request_updated", request=request)
        return request

    def respond(
        self,
        request: ConsentRequest,
        response: str,
        reason: Optional[str] = None,
    ) -> Optional[ConsentContract]:
        """
        Approve or reject a pending request.

        Returns the new contract on approval, None on rejection.

        Raises:
            ConsentStateError: already responded, or expired
            ValueError: response is neither ``approved`` nor ``rejected``
        """
        if request.status == ConsentRequestStatus.EXPIRED:
            raise ConsentStateError("Consent request has expired")
        if request.status != ConsentRequestStatus.PENDING:
            raise ConsentStateError("Consent request has already been responded to")
        if request.is_expired:
            raise ConsentStateError("Consent request has expired")
        new_status = RESPONSE_STATUSES.get(response)
        if new_status is None:
            raise ValueError("Response must be 'approved' or 'rejected'")

        now = _now()
        request.status = new_status
        request.responded_at = now
        request.response_reason = reason

        contract = None
        if new_status == ConsentRequestStatus.APPROVED:
            contract = ConsentContract(
                contract_number=generate_contract_number(self.db, now),
                consent_request_id=request.id,
                patient_id=request.patient_id,
                requester_id=request.requester_id,
                contract_type=request.request_type,
                purpose=request.purpose,
                allowed_data_types=list(request.data_types or []),
                status=ConsentContractStatus.ACTIVE,
                valid_from=now,
                valid_until=now + timedelta(days=CONTRACT_VALIDITY_DAYS),
            )
            self.db.add(contract)
            self.db.flush()
            create_notification(
                self.db,
                title="Data access request approved",
                message="Your data access request has been approved",
                notification_type="consent_approved",
                patient_id=request.patient_id,
                user_id=request.requester_id,
                action_required=True,
                action_url=CONSENT_ACTION_URL,
                data={"consent_request_id": str(request.id), "contract_id": str(contract.id)},
                created_by=self._actor_id,
            )
        else:
            create_notification(
                self.db,
                title="Data access request rejected",
                message=f"Your data access request was rejected: {reason or 'No reason given'}",
                notification_type="consent_rejected",
                patient_id=request.patient_id,
                user_id=request.requester_id,
                data={"consent_request_id": str(request.id)},
                created_by=self._actor_id,
            )

        self._trail(
            f"request_{new_status.value}",
            request=request,
            contract=contract,
            old_status=ConsentRequestStatus.PENDING.value,
            new_status=new_status.value,
            reason=reason,
        )
        get_cache().invalidate_dashboard()
        logger.info(f"Consent request {request.id} {new_status.value}")
        return contract

    def set_request_status(
        self,
        request: ConsentRequest,
        status: ConsentRequestStatus,
        reason: Optional[str] = None,
    ) -> ConsentRequest:
        """
        Administrative override of a pending request's status.

        Approval and rejection go through ``respond`` so an approved request
        always has its contract. Responded and expired requests are final.
        """
        old_status = request.status
        if old_status != ConsentRequestStatus.PENDING:
            raise ConsentStateError(f"Consent request is already {old_status.value}")
        if status in RESPONSE_STATUSES.values():
            self.respond(request, status.value, reason)
            return request

        request.status = status
        if reason:
            request.response_reason = reason
        self._trail(
            "status_changed",
            request=request,
            old_status=old_status.value,
            new_status=status.value,
            reason=reason,
        )
        get_cache().invalidate_dashboard()
        return request

    # ==========================================================================
    # Contracts
    # ==========================================================================

    def set_contract_status(
        self,
        contract: ConsentContract,
        status: ConsentContractStatus,
        reason: Optional[str] = None,
    ) -> ConsentContract:
        old_status = contract.status
        contract.status = status
        self._trail(
            "contract_status_changed",
            contract=contract,
            old_status=old_status.value,
            new_status=status.value,
            reason=reason,
        )
        get_cache().invalidate_dashboard()
        return contract

    # ==========================================================================
    # Expiry
    # ==========================================================================

    def expire_stale_requests(self, now: Optional[datetime] = None) -> int:
        """Mark pending requests past ``expires_at`` as expired."""
        now = now or _now()
        stale = (
            self.db.query(ConsentRequest)
            .filter(
                ConsentRequest.status == ConsentRequestStatus.PENDING,
                ConsentRequest.expires_at < now,
            )
            .all()
        )
        for request in stale:
            request.status = ConsentRequestStatus.EXPIRED
            self._trail(
                "request_expired",
                request=request,
                old_status=ConsentRequestStatus.PENDING.value,
                new_status=ConsentRequestStatus.EXPIRED.value,
            )
        if stale:
            get_cache().invalidate_dashboard()
        return len(stale)

    def expire_contracts(self, now: Optional[datetime] = None) -> int:
        """Mark active contracts past ``valid_until`` as expired."""
        now = now or _now()
        ended = (
            self.db.query(ConsentContract)
            .filter(
                ConsentContract.status == ConsentContractStatus.ACTIVE,
                ConsentContract.valid_until < now,
            )
            .all()
        )
        for contract in ended:
            contract.status = ConsentContractStatus.EXPIRED
            self._trail(
                "contract_expired",
                contract=contract,
                old_status=ConsentContractStatus.ACTIVE.value,
                new_status=ConsentContractStatus.EXPIRED.value,
            )
        if ended:
            get_cache().invalidate_dashboard()
        return len(ended)


# =============================================================================
# Statistics
# =============================================================================

def _counts_by_status(db: Session, column) -> dict[str, int]:
    rows = db.query(column, func.count()).group_by(column).all()
    return {status.value: count for status, count in rows}


def request_stats(db: Session) -> dict[str, Any]:
    by_status = _counts_by_status(db, ConsentRequest.status)
    by_type = dict(
        db.query(ConsentRequest.request_type, func.count())
        .group_by(ConsentRequest.request_type)
        .all()
    )
    return {
        "total": sum(by_status.values()),
        "byStatus": {status.value: by_status.get(status.value, 0) for status in ConsentRequestStatus},
        "byType": by_type,
    }


def contract_stats(db: Session) -> dict[str, Any]:
    now = _now()
    by_status = _counts_by_status(db, ConsentContract.status)
    expiring_soon = (
        db.query(func.count(ConsentContract.id))
        .filter(
            ConsentContract.status == ConsentContractStatus.ACTIVE,
            ConsentContract.valid_until > now,
            ConsentContract.valid_until <= now + timedelta(days=EXPIRING_SOON_DAYS),
        )
        .scalar()
        or 0
    )
    return {
        "total": sum(by_status.values()),
        "byStatus": {status.value: by_status.get(status.value, 0) for status in ConsentContractStatus},
        "expiringSoon": expiring_soon,
    }


def dashboard_stats(db: Session) -> dict[str, int]:
    now = _now()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    by_status = _counts_by_status(db, ConsentRequest.status)

    active_contracts = (
        db.query(func.count(ConsentContract.id))
        .filter(
            ConsentContract.status == ConsentContractStatus.ACTIVE,
            ConsentContract.valid_until > now,
        )
        .scalar()
        or 0
    )
    expired_contracts = (
        db.query(func.count(ConsentContract.id))
        .filter(
            (ConsentContract.status == ConsentContractStatus.EXPIRED)
            | (ConsentContract.valid_until <= now)
        )
        .scalar()
        or 0
    )
    daily_access = (
        db.query(func.count(AuditLog.id))
        .filter(AuditLog.action == AuditAction.READ, AuditLog.created_at >= today_start)
        .scalar()
        or 0
    )
    violation_alerts = (
        db.query(func.count(ConsentAuditTrail.id))
        .filter(ConsentAuditTrail.action.in_(("violation",) + ALERT_ACTIONS))
        .scalar()
        or 0
    )

    return {
        "totalRequests": sum(by_status.values()),
        "pendingRequests": by_status.get(ConsentRequestStatus.PENDING.value, 0),
        "approvedRequests": by_status.get(ConsentRequestStatus.APPROVED.value, 0),
        "rejectedRequests": by_status.get(ConsentRequestStatus.REJECTED.value, 0),
        "expiredRequests": by_status.get(ConsentRequestStatus.EXPIRED.value, 0),
        "activeContracts": active_contracts,
        "expiredContracts": expired_contracts,
        "dailyAccess": daily_access,
        "violationAlerts": violation_alerts,
    }


def compliance_alerts(db: Session, limit: int = 10) -> list[dict[str, Any]]:
    """Recent audit trail entries, most severe first."""
    rows = (
        db.query(ConsentAuditTrail)
        .order_by(ConsentAuditTrail.created_at.desc())
        .limit(limit * 5)
        .all()
    )
    alerts = [
        {
            "id": str(row.id),
            "action": row.action,
            "severity": alert_severity(row.action),
            "contractId": str(row.contract_id) if row.contract_id else None,
            "requestId": str(row.consent_request_id) if row.consent_request_id else None,
            "reason": row.change_reason,
            "createdAt": as_utc(row.created_at).isoformat(),
        }
        for row in rows
    ]
    # Stable sort keeps newest first within a severity
    alerts.sort(key=lambda alert: SEVERITY_RANK[alert["severity"]])
    return alerts[:limit]
