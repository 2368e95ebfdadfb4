"""
Audit logging service.

Records who accessed or changed which resource. Every write made through
the API and every read of a patient chart goes through this service.
Values recorded in ``old_values`` / ``new_values`` are field names and
non-identifying values only.
"""

import logging
from typing import Optional, Any
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from ..models.audit_log import AuditLog, AuditAction
from ..models.user import User
from ..core.security import hash_ip_address


logger = logging.getLogger(__name__)


def client_ip(request: Optional[Request]) -> Optional[str]:
    """Client IP, honouring the first hop of ``X-Forwarded-For``."""
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class AuditService:
    """
    Service for creating audit log entries.

    The acting user and the HTTP request are bound once; each ``log_*``
    call then only names the resource.

    Example usage:
        audit = AuditService(db, user=current_user, request=request)
        audit.log_create("patients", patient.id, new_values={"fields": [...]})

    Inside ``transaction(db)`` pass ``autocommit=False`` so the entry is
    committed together with the change it describes.
    """

    def __init__(
        self,
        db: Session,
        user: Optional[User] = None,
        request: Optional[Request] = None,
        autocommit: bool = True,
    ):
        self.db = db
        self.user = user
        self.request = request
        self.autocommit = autocommit

    def _create_log_entry(
        self,
        resource_type: str,
        resource_id: Optional[UUID],
        action: AuditAction,
        old_values: Optional[dict[str, Any]] = None,
        new_values: Optional[dict[str, Any]] = None,
        success: bool = True,
        error_message: Optional[str] = None,
        user: Optional[User] = None,
    ) -> AuditLog:
        """
        Create and persist an audit log entry.

        Args:
            resource_type: Table / resource being accessed
            resource_id: ID of the record, when there is one
            action: Type of action performed
            old_values: Previous values (field names, no identifiers)
            new_values: New values (field names, no identifiers)
            success: Whether action succeeded
            error_message: Error message if failed
            user: Overrides the bound user (login before a session exists)

        Returns:
            Created AuditLog instance
        """
        actor = user or self.user
        ip_address = client_ip(self.request)

        audit_log = AuditLog.for_actor(
            actor,
            self.request,
            ip_hash=hash_ip_address(ip_address) if ip_address else None,
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            old_values=old_values,
            new_values=new_values,
            success=success,
            error_message=error_message,
        )

        self.db.add(audit_log)
        if self.autocommit:
            self.db.commit()
            self.db.refresh(audit_log)
        else:
            self.db.flush()

        return audit_log

    def log_create(
        self,
        resource_type: str,
        resource_id: Optional[UUID],
        new_values: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        return self._create_log_entry(
            resource_type, resource_id, AuditAction.CREATE, new_values=new_values
        )

    def log_read(self, resource_type: str, resource_id: Optional[UUID]) -> AuditLog:
        return self._create_log_entry(resource_type, resource_id, AuditAction.READ)

    def log_update(
        self,
        resource_type: str,
        resource_id: Optional[UUID],
        old_values: Optional[dict[str, Any]] = None,
        new_values: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        """
        Log an UPDATE action.

        old_values / new_values should contain changed field names or
        status values, not clinical content.
        """
        return self._create_log_entry(
            resource_type,
            resource_id,
            AuditAction.UPDATE,
            old_values=old_values,
            new_values=new_values,
        )

    def log_delete(self, resource_type: str, resource_id: Optional[UUID]) -> AuditLog:
        return self._create_log_entry(resource_type, resource_id, AuditAction.DELETE)

    def log_login(self, user: User, success: bool = True, error_message: Optional[str] = None) -> AuditLog:
        return self._create_log_entry(
            "users",
            user.id,
            AuditAction.LOGIN,
            success=success,
            error_message=error_message,
            user=user,
        )

    def log_logout(self, user: User) -> AuditLog:
        return self._create_log_entry("users", user.id, AuditAction.LOGOUT, user=user)

    def log_error(
        self,
        resource_type: str,
        resource_id: Optional[UUID],
        action: AuditAction,
        error_message: str,
    ) -> AuditLog:
        """Log a failed action attempt. The message must not carry patient data."""
        return self._create_log_entry(
            resource_type,
            resource_id,
            action,
            success=False,
            error_message=error_message,
        )


def changed_fields(values: dict[str, Any]) -> dict[str, list[str]]:
    """Audit payload naming the fields that were written."""
    return {"fields": sorted(values.keys())}
