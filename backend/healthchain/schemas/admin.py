"""
Pydantic schemas for administration: role permissions, compliance reports,
audit logs and settings history.
"""

import datetime as dt
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.audit_log import AuditAction
from ..models.system import ComplianceReportStatus


# =============================================================================
# Role Permissions
# =============================================================================


class RolePermissionsUpdate(BaseModel):
    permissions: List[str]


# =============================================================================
# Settings
# =============================================================================


class SettingsReset(BaseModel):
    category: Optional[str] = None


class SettingHistoryResponse(BaseModel):
    id: UUID
    setting_key: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    change_type: str
    changed_by: Optional[UUID] = None
    changed_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# Compliance Reports
# =============================================================================


class ComplianceReportCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    type: str = Field(..., min_length=1, max_length=50)
    status: ComplianceReportStatus = ComplianceReportStatus.DRAFT
    date: dt.date
    score: int = Field(0, ge=0, le=100)
    findings: int = Field(0, ge=0)
    recommendations: int = Field(0, ge=0)
    summary: Optional[str] = None


class ComplianceReportUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[str] = Field(None, min_length=1, max_length=50)
    status: Optional[ComplianceReportStatus] = None
    date: Optional[dt.date] = None
    score: Optional[int] = Field(None, ge=0, le=100)
    findings: Optional[int] = Field(None, ge=0)
    recommendations: Optional[int] = Field(None, ge=0)
    summary: Optional[str] = None


class ComplianceReportResponse(BaseModel):
    id: UUID
    title: str
    type: str
    status: ComplianceReportStatus
    date: dt.date
    score: int
    findings: int
    recommendations: int
    summary: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# Audit Logs
# =============================================================================


class AuditLogResponse(BaseModel):
    id: UUID
    resource_type: str
    resource_id: Optional[UUID] = None
    action: AuditAction
    user_id: Optional[UUID] = None
    user_email: Optional[str] = None
    user_role: Optional[str] = None
    endpoint: Optional[str] = None
    request_method: Optional[str] = None
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    success: bool
    error_message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
