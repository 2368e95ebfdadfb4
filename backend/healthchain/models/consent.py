"""
Consent request, consent contract and consent audit trail models.

A consent request asks a patient to share some of their data with a
requester. Approval produces a consent contract that gates that access until
it expires or is revoked. Every transition is written to the audit trail.
"""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from .mixins import JSONType, TimestampMixin, as_utc, enum_type, utcnow, uuid_pk


class ConsentRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class ConsentContractStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REVOKED = "revoked"
    EXPIRED = "expired"


# Audit trail actions that count as compliance alerts
ALERT_ACTIONS = ("consent_violation", "data_breach", "unauthorized_access", "policy_violation")


class ConsentRequest(TimestampMixin, Base):
    __tablename__ = "consent_requests"

    id = uuid_pk()
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    requester_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    request_type = Column(String(50), nullable=False, index=True)
    purpose = Column(Text, nullable=False)
    data_types = Column(JSONType, nullable=False)
    status = Column(enum_type(ConsentRequestStatus, "consent_request_status"), nullable=False, default=ConsentRequestStatus.PENDING, index=True)

    expires_at = Column(DateTime(timezone=True), nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    response_reason = Column(Text, nullable=True)

    requester = relationship("User", lazy="joined")
    patient = relationship("Patient", lazy="joined")

    @property
    def is_expired(self) -> bool:
        return utcnow() > as_utc(self.expires_at)

    def __repr__(self) -> str:
        return f"<ConsentRequest(id={self.id}, status={self.status.value})>"


class ConsentContract(TimestampMixin, Base):
    __tablename__ = "consent_contracts"

    id = uuid_pk()
    contract_number = Column(String(30), unique=True, nullable=False, index=True)
    consent_request_id = Column(Uuid, ForeignKey("consent_requests.id", ondelete="SET NULL"), nullable=True, index=True)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    requester_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    contract_type = Column(String(50), nullable=False)
    purpose = Column(Text, nullable=True)
    allowed_data_types = Column(JSONType, nullable=False)
    status = Column(enum_type(ConsentContractStatus, "consent_contract_status"), nullable=False, default=ConsentContractStatus.ACTIVE, index=True)

    valid_from = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    valid_until = Column(DateTime(timezone=True), nullable=False, index=True)

    requester = relationship("User", lazy="joined")
    patient = relationship("Patient", lazy="joined")


class ConsentAuditTrail(Base):
    """Append-only record of consent events and compliance alerts."""

    __tablename__ = "consent_audit_trail"

    id = uuid_pk()
    contract_id = Column(Uuid, ForeignKey("consent_contracts.id", ondelete="SET NULL"), nullable=True, index=True)
    consent_request_id = Column(Uuid, ForeignKey("consent_requests.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(50), nullable=False, index=True)
    old_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=True)
    change_reason = Column(Text, nullable=True)
    performed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
