"""
Pydantic schemas for consent requests and consent contracts.
"""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.consent import (
    ConsentContract,
    ConsentContractStatus,
    ConsentRequest,
    ConsentRequestStatus,
)
from ..services.consent import requester_summary


class ConsentRequestCreate(BaseModel):
    request_type: str = Field(..., min_length=1, max_length=50)
    purpose: str = Field(..., min_length=1)
    data_types: List[str] = Field(..., min_length=1)
    expires_in_days: int = Field(30, ge=1, le=365)


class RequesterConsentRequestCreate(ConsentRequestCreate):
    """Requester-side creation names the patient in the body."""
    patient_id: UUID


class ConsentRequestUpdate(BaseModel):
    purpose: Optional[str] = Field(None, min_length=1)
    data_types: Optional[List[str]] = Field(None, min_length=1)
    expires_in_days: Optional[int] = Field(None, ge=1, le=365)


class ConsentRespond(BaseModel):
    # Checked by the service so state errors are reported first
    response: str
    reason: Optional[str] = Field(None, max_length=2000)


class ConsentDecision(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class ConsentRequestStatusUpdate(BaseModel):
    status: ConsentRequestStatus
    reason: Optional[str] = Field(None, max_length=2000)


class ConsentContractStatusUpdate(BaseModel):
    status: ConsentContractStatus
    reason: Optional[str] = Field(None, max_length=2000)


class ConsentRequestResponse(BaseModel):
    id: UUID
    patient_id: UUID
    requester_id: UUID
    request_type: str
    purpose: str
    data_types: List[str]
    status: ConsentRequestStatus
    expires_at: datetime
    responded_at: Optional[datetime] = None
    response_reason: Optional[str] = None
    is_expired: bool
    requester: Optional[dict[str, Any]] = None
    patient_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, request: ConsentRequest) -> "ConsentRequestResponse":
        return cls(
            id=request.id,
            patient_id=request.patient_id,
            requester_id=request.requester_id,
            request_type=request.request_type,
            purpose=request.purpose,
            data_types=request.data_types or [],
            status=request.status,
            expires_at=request.expires_at,
            responded_at=request.responded_at,
            response_reason=request.response_reason,
            is_expired=request.is_expired,
            requester=requester_summary(request.requester),
            patient_name=request.patient.full_name if request.patient else None,
            created_at=request.created_at,
            updated_at=request.updated_at,
        )


class ConsentContractResponse(BaseModel):
    id: UUID
    contract_number: str
    consent_request_id: Optional[UUID] = None
    patient_id: UUID
    requester_id: UUID
    contract_type: str
    purpose: Optional[str] = None
    allowed_data_types: List[str]
    status: ConsentContractStatus
    valid_from: datetime
    valid_until: datetime
    requester: Optional[dict[str, Any]] = None
    patient_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, contract: ConsentContract) -> "ConsentContractResponse":
        return cls(
            id=contract.id,
            contract_number=contract.contract_number,
            consent_request_id=contract.consent_request_id,
            patient_id=contract.patient_id,
            requester_id=contract.requester_id,
            contract_type=contract.contract_type,
            purpose=contract.purpose,
            allowed_data_types=contract.allowed_data_types or [],
            status=contract.status,
            valid_from=contract.valid_from,
            valid_until=contract.valid_until,
            requester=requester_summary(contract.requester),
            patient_name=contract.patient.full_name if contract.patient else None,
            created_at=contract.created_at,
            updated_at=contract.updated_at,
        )
