"""
Notification model.

A notification is addressed to a patient record, to a user account, or both.
"""

import enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, Uuid

from ..core.database import Base
from .mixins import JSONType, TimestampMixin, enum_type, uuid_pk


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationStatus(str, enum.Enum):
    UNREAD = "unread"
    READ = "read"
    ARCHIVED = "archived"


class Notification(TimestampMixin, Base):
    __tablename__ = "notifications"

    id = uuid_pk()
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)

    notification_type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSONType, nullable=True)
    priority = Column(enum_type(NotificationPriority, "notification_priority"), nullable=False, default=NotificationPriority.MEDIUM)
    status = Column(enum_type(NotificationStatus, "notification_status"), nullable=False, default=NotificationStatus.UNREAD, index=True)

    action_required = Column(Boolean, nullable=False, default=False)
    action_url = Column(String(500), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
