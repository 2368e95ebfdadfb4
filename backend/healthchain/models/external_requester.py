"""
External requester organisation model.

Organisations outside the hospital (insurers, research institutes, other
providers) register themselves to ask patients for data access. Each
registration owns one ``external_requester`` user account, which stays
inactive until an administrator approves the organisation.
"""

import enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from .mixins import JSONType, TimestampMixin, enum_type, uuid_pk


class OrganizationType(str, enum.Enum):
    HOSPITAL = "hospital"
    CLINIC = "clinic"
    INSURANCE_COMPANY = "insurance_company"
    RESEARCH_INSTITUTION = "research_institution"
    GOVERNMENT_AGENCY = "government_agency"
    LEGAL_FIRM = "legal_firm"
    AUDIT_ORGANIZATION = "audit_organization"


class DataAccessLevel(str, enum.Enum):
    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"


class RequesterStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REJECTED = "rejected"
    REVOKED = "revoked"


class ExternalRequester(TimestampMixin, Base):
    __tablename__ = "external_requesters"

    id = uuid_pk()
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    registration_number = Column(String(20), unique=True, nullable=False, index=True)

    # Organisation
    organization_name = Column(String(255), nullable=False, index=True)
    organization_type = Column(enum_type(OrganizationType, "organization_type"), nullable=False, index=True)
    business_registration_number = Column(String(100), nullable=True)
    license_number = Column(String(100), nullable=True)
    tax_id = Column(String(50), nullable=True)
    address = Column(JSONType, nullable=True)

    # Primary contact
    primary_contact_name = Column(String(200), nullable=False)
    primary_contact_email = Column(String(255), nullable=False)
    primary_contact_phone = Column(String(30), nullable=True)

    # Access scope
    allowed_request_types = Column(JSONType, nullable=False, default=list)
    data_access_level = Column(enum_type(DataAccessLevel, "data_access_level"), nullable=False, default=DataAccessLevel.BASIC)
    max_concurrent_requests = Column(Integer, nullable=False, default=5)
    compliance_certifications = Column(JSONType, nullable=False, default=list)
    data_protection_certification = Column(String(255), nullable=True)

    # Review
    status = Column(enum_type(RequesterStatus, "requester_status"), nullable=False, default=RequesterStatus.PENDING, index=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    verification_date = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status_reason = Column(Text, nullable=True)

    user = relationship("User", foreign_keys=[user_id], lazy="joined")

    def allows_request_type(self, request_type: str) -> bool:
        """An empty allow-list places no restriction on request types."""
        return not self.allowed_request_types or request_type in self.allowed_request_types

    def __repr__(self) -> str:
        return f"<ExternalRequester(id={self.id}, org={self.organization_name}, status={self.status.value})>"
