"""
Pydantic schemas for notifications.
"""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.notification import NotificationPriority, NotificationStatus


class NotificationCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    notification_type: str = Field("general", min_length=1, max_length=50)
    priority: NotificationPriority = NotificationPriority.MEDIUM
    action_required: bool = False
    action_url: Optional[str] = Field(None, max_length=500)
    data: Optional[dict[str, Any]] = None
    expires_at: Optional[datetime] = None


class SystemNotificationCreate(BaseModel):
    """
    Admin broadcast. ``title`` and ``message`` are checked in the handler so
    a missing value reports ``MISSING_REQUIRED_FIELDS``.
    """
    title: Optional[str] = None
    message: Optional[str] = None
    type: str = "system"
    priority: NotificationPriority = NotificationPriority.MEDIUM
    userIds: Optional[List[UUID]] = None


class BulkMarkRead(BaseModel):
    notificationIds: List[UUID] = Field(..., min_length=1)


class NotificationResponse(BaseModel):
    id: UUID
    patient_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    notification_type: str
    title: str
    message: str
    data: Optional[dict[str, Any]] = None
    priority: NotificationPriority
    status: NotificationStatus
    action_required: bool
    action_url: Optional[str] = None
    read_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_by: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TemplateNotificationCreate(BaseModel):
    templateId: str = Field(..., min_length=1)
    variables: dict[str, Any] = {}
    userIds: Optional[List[UUID]] = None
