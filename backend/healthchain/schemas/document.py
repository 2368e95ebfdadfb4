"""
Pydantic schemas for medical documents.
"""

from datetime import date, datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.document import DocumentStatus


DOCUMENT_REQUIRED_FIELDS = ("document_type", "document_title", "content", "issued_by")


class DocumentCreate(BaseModel):
    """
    Required fields are checked in the handler so the error names every
    missing field at once.
    """
    document_type: Optional[str] = Field(None, max_length=50)
    document_title: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = None
    issued_by: Optional[str] = Field(None, max_length=200)
    visit_id: Optional[UUID] = None
    template: Optional[str] = Field(None, max_length=100)
    variables: Optional[dict[str, Any]] = None
    attachments: Optional[List[Any]] = None
    recipient_info: Optional[dict[str, Any]] = None
    status: DocumentStatus = DocumentStatus.DRAFT
    notes: Optional[str] = None
    issued_date: Optional[date] = None
    valid_until: Optional[date] = None


class DocumentUpdate(BaseModel):
    document_type: Optional[str] = Field(None, min_length=1, max_length=50)
    document_title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    issued_by: Optional[str] = Field(None, min_length=1, max_length=200)
    template: Optional[str] = Field(None, max_length=100)
    variables: Optional[dict[str, Any]] = None
    attachments: Optional[List[Any]] = None
    recipient_info: Optional[dict[str, Any]] = None
    status: Optional[DocumentStatus] = None
    notes: Optional[str] = None
    issued_date: Optional[date] = None
    valid_until: Optional[date] = None


class DocumentResponse(BaseModel):
    id: UUID
    patient_id: UUID
    visit_id: Optional[UUID] = None
    document_type: str
    document_title: str
    content: str
    template: Optional[str] = None
    variables: Optional[dict[str, Any]] = None
    attachments: Optional[List[Any]] = None
    recipient_info: Optional[dict[str, Any]] = None
    status: DocumentStatus
    notes: Optional[str] = None
    issued_by: str
    issued_date: Optional[date] = None
    valid_until: Optional[date] = None
    recorded_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
