"""
User model, roles and the default role permission map.
"""

import enum

from sqlalchemy import Boolean, Column, DateTime, String

from ..core.database import Base
from .mixins import TimestampMixin, enum_type, uuid_pk


# =============================================================================
# Enums
# =============================================================================


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    NURSE = "nurse"
    PHARMACIST = "pharmacist"
    LAB_TECHNICIAN = "lab_technician"
    STAFF = "staff"
    PATIENT = "patient"
    EXTERNAL_REQUESTER = "external_requester"


# =============================================================================
# Permission Catalogue
# =============================================================================

PERMISSION_RESOURCES = ("user", "patient", "medical", "appointment", "prescription", "lab")
PERMISSION_ACTIONS = ("create", "read", "update", "delete")
SYSTEM_PERMISSIONS = ("system.settings", "system.backup", "system.audit", "system.reports")

ALL_PERMISSIONS: tuple[str, ...] = tuple(
    f"{resource}.{action}"
    for resource in PERMISSION_RESOURCES
    for action in PERMISSION_ACTIONS
) + SYSTEM_PERMISSIONS


def _crud(resource: str, *actions: str) -> set[str]:
    return {f"{resource}.{action}" for action in actions}


# Built-in defaults.  Rows in ``role_permissions`` override a role wholesale.
DEFAULT_ROLE_PERMISSIONS: dict[UserRole, set[str]] = {
    UserRole.ADMIN: set(ALL_PERMISSIONS),
    UserRole.DOCTOR: (
        _crud("patient", "create", "read", "update")
        | _crud("medical", "create", "read", "update")
        | _crud("appointment", "create", "read", "update")
        | _crud("prescription", "create", "read", "update")
        | _crud("lab", "create", "read", "update")
    ),
    UserRole.NURSE: (
        _crud("patient", "create", "read", "update")
        | _crud("medical", "read", "update")
        | _crud("appointment", "read", "update")
        | {"prescription.read", "lab.read"}
    ),
    UserRole.PHARMACIST: _crud("prescription", "read", "update") | {"patient.read"},
    UserRole.LAB_TECHNICIAN: _crud("lab", "create", "read", "update") | {"patient.read"},
    UserRole.STAFF: (
        _crud("patient", "create", "read", "update")
        | _crud("appointment", "create", "read", "update")
    ),
    UserRole.PATIENT: {"patient.read", "appointment.read", "prescription.read", "lab.read"},
    # Consent endpoints gate requesters by role and by their organisation record
    UserRole.EXTERNAL_REQUESTER: set(),
}


def get_default_permissions(role: UserRole) -> list[str]:
    return sorted(DEFAULT_ROLE_PERMISSIONS.get(role, set()))


# =============================================================================
# User Model
# =============================================================================


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id = uuid_pk()
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(enum_type(UserRole, "user_role"), nullable=False, default=UserRole.STAFF, index=True)
    phone = Column(String(30), nullable=True)
    department = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"
