"""
Audit log database model.

Tracks access to and changes of patient records. Every write made through
the API, and every read of a patient chart, is recorded here.
"""

import enum
from typing import Any, Optional

from sqlalchemy import Boolean, Column, DateTime, String, Text, Uuid

from ..core.database import Base
from .mixins import JSONType, enum_type, utcnow, uuid_pk


# =============================================================================
# Enum Definitions
# =============================================================================

class AuditAction(str, enum.Enum):
    """Types of auditable actions."""
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    EXPORT = "EXPORT"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"


# =============================================================================
# Audit Log Model
# =============================================================================

class AuditLog(Base):
    """
    One audited action. ``old_values`` / ``new_values`` hold field names and
    non-identifying values only; national IDs and clinical free text never
    go in here.
    """

    __tablename__ = "audit_logs"

    id = uuid_pk()

    # What was accessed
    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(Uuid, nullable=True, index=True)
    action = Column(enum_type(AuditAction, "audit_action"), nullable=False, index=True)

    # Who accessed it
    user_id = Column(Uuid, nullable=True, index=True)
    user_email = Column(String(255), nullable=True)
    user_role = Column(String(50), nullable=True)
    user_ip_hash = Column(String(64), nullable=True)

    # Context
    endpoint = Column(String(255), nullable=True)
    request_method = Column(String(10), nullable=True)
    user_agent = Column(Text, nullable=True)

    # What changed. Field names and non-identifying values only.
    old_values = Column(JSONType, nullable=True)
    new_values = Column(JSONType, nullable=True)

    # Result
    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, "
            f"resource={self.resource_type}, "
            f"action={self.action.value}, "
            f"resource_id={self.resource_id})>"
        )

    @classmethod
    def for_actor(cls, actor, request=None, ip_hash: Optional[str] = None, **fields: Any) -> "AuditLog":
        """Unsaved entry stamped with who did it and through which endpoint."""
        if actor is not None:
            fields.update(user_id=actor.id, user_email=actor.email, user_role=actor.role.value)
        if request is not None:
            fields.update(
                endpoint=str(request.url.path),
                request_method=request.method,
                user_agent=request.headers.get("user-agent"),
            )
        return cls(user_ip_hash=ip_hash, **fields)
