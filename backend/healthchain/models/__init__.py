"""
SQLAlchemy ORM models for the HealthChain EMR backend.

Importing this package registers every table on ``Base.metadata``.
"""

from .user import User, UserRole, ALL_PERMISSIONS, DEFAULT_ROLE_PERMISSIONS, get_default_permissions
from .patient import Patient, Gender
from .visit import Visit, VisitStatus, VisitType, VitalSigns
from .appointment import Appointment, AppointmentHistory, AppointmentStatus, AppointmentPriority
from .lab import LabOrder, LabResult, LabOrderStatus, LabPriority, AbnormalFlag
from .prescription import Prescription, PrescriptionItem, PrescriptionStatus, MedicationStatus
from .document import MedicalDocument, DocumentStatus
from .consent import (
    ConsentRequest,
    ConsentContract,
    ConsentAuditTrail,
    ConsentRequestStatus,
    ConsentContractStatus,
)
from .external_requester import ExternalRequester, OrganizationType, DataAccessLevel, RequesterStatus
from .notification import Notification, NotificationPriority, NotificationStatus
from .audit_log import AuditLog, AuditAction
from .system import (
    SystemSetting,
    SystemSettingHistory,
    SettingType,
    RolePermission,
    ComplianceReport,
    ComplianceReportStatus,
)
from .ai_insight import AIInsight, InsightType, RiskLevel

__all__ = [
    # Users and permissions
    "User",
    "UserRole",
    "ALL_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_default_permissions",
    # Clinical records
    "Patient",
    "Gender",
    "Visit",
    "VisitStatus",
    "VisitType",
    "VitalSigns",
    "Appointment",
    "AppointmentHistory",
    "AppointmentStatus",
    "AppointmentPriority",
    "LabOrder",
    "LabResult",
    "LabOrderStatus",
    "LabPriority",
    "AbnormalFlag",
    "Prescription",
    "PrescriptionItem",
    "PrescriptionStatus",
    "MedicationStatus",
    "MedicalDocument",
    "DocumentStatus",
    # Consent
    "ConsentRequest",
    "ConsentContract",
    "ConsentAuditTrail",
    "ConsentRequestStatus",
    "ConsentContractStatus",
    "ExternalRequester",
    "OrganizationType",
    "DataAccessLevel",
    "RequesterStatus",
    # Notifications
    "Notification",
    "NotificationPriority",
    "NotificationStatus",
    # Administration
    "AuditLog",
    "AuditAction",
    "SystemSetting",
    "SystemSettingHistory",
    "SettingType",
    "RolePermission",
    "ComplianceReport",
    "ComplianceReportStatus",
    "AIInsight",
    "InsightType",
    "RiskLevel",
]
