"""
Notification endpoints.

Three audiences:
- /api/patients/{patient_id}/notifications: a patient's notifications
- /api/notifications: the signed-in user's own notifications
- /api/admin/notifications: system broadcasts and moderation (admin)
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.auth import CARE_TEAM_ROLES, get_current_user, require_role
from ..core.database import get_db
from ..core.exceptions import APIError
from ..core.responses import envelope, paginate
from ..core.transactions import transaction
from ..models.mixins import utcnow
from ..models.notification import Notification, NotificationPriority, NotificationStatus
from ..models.patient import Patient
from ..models.user import User
from ..schemas.common import page_params
from ..schemas.notification import (
    BulkMarkRead,
    NotificationCreate,
    NotificationResponse,
    SystemNotificationCreate,
    TemplateNotificationCreate,
)
from ..services.audit import AuditService
from ..services.notifications import (
    NOTIFICATION_TEMPLATES,
    broadcast_to_users,
    create_notification,
    render_template,
)
from .deps import get_accessible_patient, not_found


logger = logging.getLogger(__name__)
router = APIRouter(tags=["Notifications"])


def _filtered(query, status_filter, notification_type, priority):
    if status_filter:
        query = query.filter(Notification.status == status_filter)
    if notification_type:
        query = query.filter(Notification.notification_type == notification_type)
    if priority:
        query = query.filter(Notification.priority == priority)
    return query


def _unread_count(db: Session, *criteria) -> int:
    return (
        db.query(func.count(Notification.id))
        .filter(Notification.status == NotificationStatus.UNREAD, *criteria)
        .scalar()
        or 0
    )


def _mark_read(notification: Notification) -> None:
    if notification.status != NotificationStatus.UNREAD:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Notification is already read")
    notification.status = NotificationStatus.READ
    notification.read_at = utcnow()


def _target_user_ids(db: Session, user_ids: Optional[list[UUID]]) -> list[UUID]:
    query = db.query(User.id).filter(User.is_active.is_(True))
    if user_ids:
        query = query.filter(User.id.in_(user_ids))
    return [row[0] for row in query.all()]


# =============================================================================
# Patient notifications
# =============================================================================


@router.get("/api/patients/{patient_id}/notifications")
async def list_patient_notifications(
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(20)),
    status_filter: Optional[NotificationStatus] = Query(None, alias="status"),
    notification_type: Optional[str] = Query(None, alias="type", max_length=50),
    priority: Optional[NotificationPriority] = None,
):
    query = _filtered(
        db.query(Notification).filter(Notification.patient_id == patient.id),
        status_filter, notification_type, priority,
    )
    page = paginate(query.order_by(Notification.created_at.desc()), *pagination)
    return envelope(
        data=[NotificationResponse.model_validate(n) for n in page.items],
        meta={
            "pagination": page.meta(),
            "unreadCount": _unread_count(db, Notification.patient_id == patient.id),
        },
    )


@router.post("/api/patients/{patient_id}/notifications", status_code=status.HTTP_201_CREATED)
async def create_patient_notification(
    body: NotificationCreate,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES)),
    db: Session = Depends(get_db),
):
    with transaction(db):
        notification = create_notification(
            db,
            title=body.title,
            message=body.message,
            notification_type=body.notification_type,
            patient_id=patient.id,
            user_id=patient.user_id,
            priority=body.priority,
            action_required=body.action_required,
            action_url=body.action_url,
            data=body.data,
            created_by=user.id,
        )
        notification.expires_at = body.expires_at
        db.flush()

    return envelope(data=NotificationResponse.model_validate(notification), status_code=201)


def _get_patient_notification(db: Session, patient: Patient, notification_id: UUID) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.patient_id == patient.id)
        .first()
    )
    if not notification:
        raise not_found("Notification not found")
    return notification


@router.put("/api/patients/{patient_id}/notifications/{notification_id}/read")
async def mark_patient_notification_read(
    notification_id: UUID,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
):
    notification = _get_patient_notification(db, patient, notification_id)
    with transaction(db):
        _mark_read(notification)
    return envelope(data=NotificationResponse.model_validate(notification))


@router.delete("/api/patients/{patient_id}/notifications/{notification_id}")
async def delete_patient_notification(
    notification_id: UUID,
    patient: Patient = Depends(get_accessible_patient),
    user: User = Depends(require_role(*CARE_TEAM_ROLES, "patient")),
    db: Session = Depends(get_db),
):
    notification = _get_patient_notification(db, patient, notification_id)
    with transaction(db):
        db.delete(notification)
    return envelope(data={"message": "Notification deleted successfully", "id": str(notification_id)})


# =============================================================================
# Current user's notifications
# =============================================================================


@router.get("/api/notifications")
async def list_my_notifications(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(20)),
    status_filter: Optional[NotificationStatus] = Query(None, alias="status"),
    notification_type: Optional[str] = Query(None, alias="type", max_length=50),
):
    query = _filtered(
        db.query(Notification).filter(Notification.user_id == user.id),
        status_filter, notification_type, None,
    )
    page = paginate(query.order_by(Notification.created_at.desc()), *pagination)
    return envelope(
        data=[NotificationResponse.model_validate(n) for n in page.items],
        meta={
            "pagination": page.meta(),
            "unreadCount": _unread_count(db, Notification.user_id == user.id),
        },
    )


@router.put("/api/notifications/{notification_id}/read")
async def mark_my_notification_read(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user.id)
        .first()
    )
    if not notification:
        raise not_found("Notification not found")
    with transaction(db):
        _mark_read(notification)
    return envelope(data=NotificationResponse.model_validate(notification))


# =============================================================================
# Admin
# =============================================================================


@router.get("/api/admin/notifications", dependencies=[Depends(require_role("admin"))])
async def admin_list_notifications(
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(20)),
    status_filter: Optional[NotificationStatus] = Query(None, alias="status"),
    notification_type: Optional[str] = Query(None, alias="type", max_length=50),
    priority: Optional[NotificationPriority] = None,
    user_id: Optional[UUID] = Query(None, alias="userId"),
):
    query = _filtered(db.query(Notification), status_filter, notification_type, priority)
    if user_id:
        query = query.filter(Notification.user_id == user_id)

    page = paginate(query.order_by(Notification.created_at.desc()), *pagination)
    return envelope(
        data=[NotificationResponse.model_validate(n) for n in page.items],
        meta={"pagination": page.meta(), "unreadCount": _unread_count(db)},
    )


@router.get("/api/admin/notifications/templates", dependencies=[Depends(require_role("admin"))])
async def admin_list_templates():
    return envelope(data=NOTIFICATION_TEMPLATES, meta={"count": len(NOTIFICATION_TEMPLATES)})


@router.post("/api/admin/notifications/system", status_code=status.HTTP_201_CREATED)
async def admin_send_system_notification(
    body: SystemNotificationCreate,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Broadcast to the given users, or to every active user when none are named."""
    if not body.title or not body.message:
        raise APIError(
            status.HTTP_400_BAD_REQUEST,
            "Title and message are required",
            code="MISSING_REQUIRED_FIELDS",
        )

    user_ids = _target_user_ids(db, body.userIds)
    if not user_ids:
        raise APIError(status.HTTP_400_BAD_REQUEST, "No target users found", code="NO_TARGET_USERS")

    with transaction(db):
        notifications = broadcast_to_users(
            db, user_ids, body.title, body.message,
            notification_type=body.type, priority=body.priority, created_by=admin.id,
        )
        AuditService(db, user=admin, request=request, autocommit=False).log_create(
            "notifications", None, new_values={"type": body.type, "recipients": len(notifications)}
        )

    return envelope(
        data={"sent": len(notifications), "message": f"Notification sent to {len(notifications)} users"},
        status_code=201,
    )


@router.post("/api/admin/notifications/templates/send", status_code=status.HTTP_201_CREATED)
async def admin_send_template_notification(
    body: TemplateNotificationCreate,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    try:
        rendered = render_template(body.templateId, body.variables)
    except KeyError:
        raise APIError(status.HTTP_404_NOT_FOUND, "Notification template not found", code="TEMPLATE_NOT_FOUND")

    user_ids = _target_user_ids(db, body.userIds)
    if not user_ids:
        raise APIError(status.HTTP_400_BAD_REQUEST, "No target users found", code="NO_TARGET_USERS")

    with transaction(db):
        notifications = broadcast_to_users(
            db, user_ids, rendered["title"], rendered["message"],
            notification_type=rendered["notification_type"],
            priority=NotificationPriority(rendered["priority"]),
            created_by=admin.id,
        )
        AuditService(db, user=admin, request=request, autocommit=False).log_create(
            "notifications", None, new_values={"template": body.templateId, "recipients": len(notifications)}
        )

    return envelope(data={"sent": len(notifications), "template": body.templateId}, status_code=201)


@router.put("/api/admin/notifications/mark-read")
async def admin_bulk_mark_read(
    body: BulkMarkRead,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    with transaction(db):
        updated = (
            db.query(Notification)
            .filter(
                Notification.id.in_(body.notificationIds),
                Notification.status == NotificationStatus.UNREAD,
            )
            .update(
                {Notification.status: NotificationStatus.READ, Notification.read_at: utcnow()},
                synchronize_session=False,
            )
        )
        AuditService(db, user=admin, request=request, autocommit=False).log_update(
            "notifications", None,
            new_values={"status": NotificationStatus.READ.value, "updated": updated},
        )
    return envelope(data={"updated": updated})


def _get_notification_or_404(db: Session, notification_id: UUID) -> Notification:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notification:
        raise not_found("Notification not found")
    return notification


@router.put("/api/admin/notifications/{notification_id}/archive")
async def admin_archive_notification(
    notification_id: UUID,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    notification = _get_notification_or_404(db, notification_id)
    old_status = notification.status
    with transaction(db):
        notification.status = NotificationStatus.ARCHIVED
        AuditService(db, user=admin, request=request, autocommit=False).log_update(
            "notifications", notification.id,
            old_values={"status": old_status.value},
            new_values={"status": NotificationStatus.ARCHIVED.value},
        )
    return envelope(data=NotificationResponse.model_validate(notification))


@router.delete("/api/admin/notifications/{notification_id}")
async def admin_delete_notification(
    notification_id: UUID,
    request: Request,
    admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    notification = _get_notification_or_404(db, notification_id)
    with transaction(db):
        db.delete(notification)
        AuditService(db, user=admin, request=request, autocommit=False).log_delete("notifications", notification_id)
    return envelope(data={"message": "Notification deleted successfully", "id": str(notification_id)})
