"""
System administration models: settings, settings history, role permission
overrides and compliance reports.
"""

import enum

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid

from ..core.database import Base
from .mixins import TimestampMixin, enum_type, utcnow, uuid_pk


# =============================================================================
# System Settings
# =============================================================================


class SettingType(str, enum.Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"
    JSON = "json"


class SystemSetting(Base):
    """One stored setting; values are kept as text and typed by ``setting_type``."""

    __tablename__ = "system_settings"

    setting_key = Column(String(100), primary_key=True)
    setting_value = Column(Text, nullable=True)
    setting_type = Column(enum_type(SettingType, "setting_type"), nullable=False, default=SettingType.STRING)
    updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class SystemSettingHistory(Base):
    __tablename__ = "system_settings_history"

    id = uuid_pk()
    setting_key = Column(String(100), nullable=False, index=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    change_type = Column(String(20), nullable=False, default="update")
    changed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)


# =============================================================================
# Role Permissions
# =============================================================================


class RolePermission(Base):
    """
    Stored permission grant for a role.

    When a role has any rows here they replace its built-in defaults.
    """

    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role", "permission", name="uq_role_permission"),)

    id = uuid_pk()
    role = Column(String(50), nullable=False, index=True)
    permission = Column(String(100), nullable=False)
    granted_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


# =============================================================================
# Compliance Reports
# =============================================================================


class ComplianceReportStatus(str, enum.Enum):
    DRAFT = "draft"
    IN_REVIEW = "in_review"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ComplianceReport(TimestampMixin, Base):
    __tablename__ = "compliance_reports"

    id = uuid_pk()
    title = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False, index=True)
    status = Column(enum_type(ComplianceReportStatus, "compliance_report_status"), nullable=False, default=ComplianceReportStatus.DRAFT, index=True)
    date = Column(Date, nullable=False)
    score = Column(Integer, nullable=False, default=0)
    findings = Column(Integer, nullable=False, default=0)
    recommendations = Column(Integer, nullable=False, default=0)
    summary = Column(Text, nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
