"""
In-app notifications.

Creates notification rows for patients and staff and holds the admin
notification templates.
"""

import logging
from typing import Any, Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..models.notification import Notification, NotificationPriority


logger = logging.getLogger(__name__)


# =============================================================================
# Templates
# =============================================================================

NOTIFICATION_TEMPLATES: list[Dict[str, Any]] = [
    {
        "id": "system_maintenance",
        "name": "System Maintenance",
        "type": "system",
        "title": "Scheduled System Maintenance",
        "message": (
            "The system will be under maintenance from {startTime} to {endTime}. "
            "Please save your work and log out before the maintenance period."
        ),
        "priority": "high",
        "variables": ["startTime", "endTime"],
    },
    {
        "id": "security_alert",
        "name": "Security Alert",
        "type": "system",
        "title": "Security Alert",
        "message": (
            "A security alert has been detected: {alertType}. "
            "Please review your account activity and contact support if needed."
        ),
        "priority": "high",
        "variables": ["alertType"],
    },
    {
        "id": "backup_complete",
        "name": "Backup Complete",
        "type": "system",
        "title": "Database Backup Completed",
        "message": (
            "The database backup has been completed successfully. "
            "Backup size: {backupSize}, Duration: {duration}."
        ),
        "priority": "low",
        "variables": ["backupSize", "duration"],
    },
    {
        "id": "user_registration",
        "name": "New User Registration",
        "type": "admin",
        "title": "New User Registration",
        "message": "A new user has registered: {userName} ({userEmail}) with role {userRole}.",
        "priority": "medium",
        "variables": ["userName", "userEmail", "userRole"],
    },
    {
        "id": "data_request",
        "name": "Data Request",
        "type": "admin",
        "title": "New Data Request",
        "message": (
            "A new data request has been submitted by {requesterName} for {dataType}. "
            "Please review and approve."
        ),
        "priority": "medium",
        "variables": ["requesterName", "dataType"],
    },
]


def render_template(template_id: str, variables: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fill a template's title and message.

    Missing variables are left as ``{name}`` placeholders.

    Raises:
        KeyError: unknown template id
    """
    template = next((t for t in NOTIFICATION_TEMPLATES if t["id"] == template_id), None)
    if template is None:
        raise KeyError(template_id)

    message = template["message"]
    for name in template["variables"]:
        if name in variables:
            message = message.replace(f"{{{name}}}", str(variables[name]))

    return {
        "title": template["title"],
        "message": message,
        "notification_type": template["type"],
        "priority": template["priority"],
    }


# =============================================================================
# Creation
# =============================================================================

def create_notification(
    db: Session,
    title: str,
    message: str,
    notification_type: str,
    patient_id: Optional[UUID] = None,
    user_id: Optional[UUID] = None,
    priority: NotificationPriority = NotificationPriority.MEDIUM,
    action_required: bool = False,
    action_url: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
    created_by: Optional[UUID] = None,
) -> Notification:
    """Add a notification to the session. The caller commits."""
    notification = Notification(
        patient_id=patient_id,
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        priority=priority,
        action_required=action_required,
        action_url=action_url,
        data=data,
        created_by=created_by,
    )
    db.add(notification)
    return notification


def broadcast_to_users(
    db: Session,
    user_ids: Iterable[UUID],
    title: str,
    message: str,
    notification_type: str = "system",
    priority: NotificationPriority = NotificationPriority.MEDIUM,
    created_by: Optional[UUID] = None,
) -> list[Notification]:
    notifications = [
        create_notification(
            db,
            title=title,
            message=message,
            notification_type=notification_type,
            user_id=user_id,
            priority=priority,
            created_by=created_by,
        )
        for user_id in user_ids
    ]
    logger.info(f"System notification '{notification_type}' queued for {len(notifications)} users")
    return notifications
