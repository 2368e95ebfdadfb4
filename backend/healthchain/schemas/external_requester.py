"""
Pydantic schemas for external requester registration and review.
"""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from ..models.external_requester import (
    DataAccessLevel,
    ExternalRequester,
    OrganizationType,
    RequesterStatus,
)


class ExternalRequesterRegister(BaseModel):
    """Public self-registration of an organisation and its login account."""
    organization_name: str = Field(..., min_length=2, max_length=255)
    organization_type: OrganizationType
    business_registration_number: Optional[str] = Field(None, max_length=100)
    license_number: Optional[str] = Field(None, max_length=100)
    tax_id: Optional[str] = Field(None, max_length=50)
    address: Optional[dict[str, Any]] = None

    primary_contact_first_name: str = Field(..., min_length=1, max_length=100)
    primary_contact_last_name: str = Field(..., min_length=1, max_length=100)
    primary_contact_email: EmailStr
    primary_contact_phone: Optional[str] = Field(None, max_length=30)

    allowed_request_types: List[str] = Field(default_factory=list)
    data_access_level: DataAccessLevel = DataAccessLevel.BASIC
    compliance_certifications: List[str] = Field(default_factory=list)
    data_protection_certification: Optional[str] = Field(None, max_length=255)

    login_email: EmailStr
    username: Optional[str] = Field(None, min_length=3, max_length=100, pattern=r"^[A-Za-z0-9_.\-]+$")
    password: str = Field(..., min_length=8, max_length=128)


class ExternalRequesterProfileUpdate(BaseModel):
    """Fields an organisation may change itself; scope and review stay with admins."""
    organization_name: Optional[str] = Field(None, min_length=2, max_length=255)
    address: Optional[dict[str, Any]] = None
    primary_contact_name: Optional[str] = Field(None, min_length=1, max_length=200)
    primary_contact_email: Optional[EmailStr] = None
    primary_contact_phone: Optional[str] = Field(None, max_length=30)
    compliance_certifications: Optional[List[str]] = None
    data_protection_certification: Optional[str] = Field(None, max_length=255)


class ExternalRequesterStatusUpdate(BaseModel):
    status: RequesterStatus
    reason: Optional[str] = Field(None, max_length=2000)


class ExternalRequesterDecision(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)
    allowed_request_types: Optional[List[str]] = None
    data_access_level: Optional[DataAccessLevel] = None
    max_concurrent_requests: Optional[int] = Field(None, ge=1, le=100)


class ExternalRequesterResponse(BaseModel):
    id: UUID
    user_id: UUID
    registration_number: str
    organization_name: str
    organization_type: OrganizationType
    business_registration_number: Optional[str] = None
    license_number: Optional[str] = None
    tax_id: Optional[str] = None
    address: Optional[dict[str, Any]] = None
    primary_contact_name: str
    primary_contact_email: str
    primary_contact_phone: Optional[str] = None
    allowed_request_types: List[str]
    data_access_level: DataAccessLevel
    max_concurrent_requests: int
    compliance_certifications: List[str]
    data_protection_certification: Optional[str] = None
    status: RequesterStatus
    is_verified: bool
    verification_date: Optional[datetime] = None
    status_reason: Optional[str] = None
    login_email: Optional[str] = None
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, requester: ExternalRequester) -> "ExternalRequesterResponse":
        user = requester.user
        return cls(
            id=requester.id,
            user_id=requester.user_id,
            registration_number=requester.registration_number,
            organization_name=requester.organization_name,
            organization_type=requester.organization_type,
            business_registration_number=requester.business_registration_number,
            license_number=requester.license_number,
            tax_id=requester.tax_id,
            address=requester.address,
            primary_contact_name=requester.primary_contact_name,
            primary_contact_email=requester.primary_contact_email,
            primary_contact_phone=requester.primary_contact_phone,
            allowed_request_types=list(requester.allowed_request_types or []),
            data_access_level=requester.data_access_level,
            max_concurrent_requests=requester.max_concurrent_requests,
            compliance_certifications=list(requester.compliance_certifications or []),
            data_protection_certification=requester.data_protection_certification,
            status=requester.status,
            is_verified=requester.is_verified,
            verification_date=requester.verification_date,
            status_reason=requester.status_reason,
            login_email=user.email if user else None,
            last_login=user.last_login if user else None,
            created_at=requester.created_at,
            updated_at=requester.updated_at,
        )
