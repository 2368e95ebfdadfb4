"""
Audit log endpoints (admin).
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.auth import require_permission, require_role
from ..core.database import get_db
from ..core.responses import envelope, paginate
from ..models.audit_log import AuditAction, AuditLog
from ..schemas.admin import AuditLogResponse
from ..schemas.common import page_params
from .deps import not_found


logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/admin/audit-logs",
    tags=["Audit Logs"],
    dependencies=[Depends(require_role("admin")), Depends(require_permission("system.audit"))],
)

SORT_COLUMNS = {
    "created_at": AuditLog.created_at,
    "action": AuditLog.action,
    "resource": AuditLog.resource_type,
    "user_id": AuditLog.user_id,
}

# Entries per user/action/resource group above which activity is flagged
SUSPICIOUS_ACTIVITY_THRESHOLD = 10
TOP_USERS_LIMIT = 10


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


@router.get("")
async def list_audit_logs(
    db: Session = Depends(get_db),
    pagination: tuple[int, int] = Depends(page_params(50)),
    user_id: Optional[UUID] = None,
    action: Optional[AuditAction] = None,
    resource_type: Optional[str] = Query(None, max_length=100),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    sort: Literal["created_at", "action", "resource", "user_id"] = "created_at",
    order: Literal["asc", "desc"] = "desc",
):
    query = db.query(AuditLog)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if action:
        query = query.filter(AuditLog.action == action)
    if resource_type:
        query = query.filter(AuditLog.resource_type == resource_type)
    if start_date:
        query = query.filter(AuditLog.created_at >= _day_start(start_date))
    if end_date:
        query = query.filter(AuditLog.created_at < _day_start(end_date) + timedelta(days=1))

    column = SORT_COLUMNS[sort]
    page = paginate(query.order_by(column.asc() if order == "asc" else column.desc()), *pagination)
    return envelope(
        data=[AuditLogResponse.model_validate(entry) for entry in page.items],
        meta={"pagination": page.meta()},
    )


@router.get("/stats")
async def audit_log_stats(
    period: int = Query(30, ge=1, le=365, description="Days to cover"),
    db: Session = Depends(get_db),
):
    """Counts by action and resource, daily trend, top users and suspicious activity."""
    since = datetime.now(timezone.utc) - timedelta(days=period)
    in_period = AuditLog.created_at >= since

    by_action = {a.value: 0 for a in AuditAction}
    by_action.update({
        row.action.value: row.count
        for row in db.query(AuditLog.action, func.count(AuditLog.id).label("count"))
        .filter(in_period).group_by(AuditLog.action).all()
    })

    by_resource = [
        {"resource_type": row.resource_type, "count": row.count}
        for row in db.query(AuditLog.resource_type, func.count(AuditLog.id).label("count"))
        .filter(in_period)
        .group_by(AuditLog.resource_type)
        .order_by(func.count(AuditLog.id).desc())
        .all()
    ]

    day = func.date(AuditLog.created_at)
    daily = [
        {"date": str(row.day), "count": row.count}
        for row in db.query(day.label("day"), func.count(AuditLog.id).label("count"))
        .filter(in_period).group_by(day).order_by(day).all()
    ]

    top_users = [
        {"user_id": str(row.user_id), "user_email": row.user_email, "count": row.count}
        for row in db.query(AuditLog.user_id, AuditLog.user_email, func.count(AuditLog.id).label("count"))
        .filter(in_period, AuditLog.user_id.isnot(None))
        .group_by(AuditLog.user_id, AuditLog.user_email)
        .order_by(func.count(AuditLog.id).desc())
        .limit(TOP_USERS_LIMIT)
        .all()
    ]

    suspicious = [
        {
            "user_id": str(row.user_id) if row.user_id else None,
            "action": row.action.value,
            "resource_type": row.resource_type,
            "count": row.count,
        }
        for row in db.query(
            AuditLog.user_id, AuditLog.action, AuditLog.resource_type,
            func.count(AuditLog.id).label("count"),
        )
        .filter(in_period)
        .group_by(AuditLog.user_id, AuditLog.action, AuditLog.resource_type)
        .having(func.count(AuditLog.id) > SUSPICIOUS_ACTIVITY_THRESHOLD)
        .order_by(func.count(AuditLog.id).desc())
        .all()
    ]
    if suspicious:
        logger.warning(f"{len(suspicious)} suspicious audit activity groups in the last {period} days")

    return envelope(data={
        "period_days": period,
        "total": sum(by_action.values()),
        "by_action": by_action,
        "by_resource": by_resource,
        "daily_trends": daily,
        "top_users": top_users,
        "suspicious_activity": suspicious,
    })


@router.get("/{log_id}")
async def get_audit_log(log_id: UUID, db: Session = Depends(get_db)):
    entry = db.query(AuditLog).filter(AuditLog.id == log_id).first()
    if not entry:
        raise not_found("Audit log not found")
    return envelope(data=AuditLogResponse.model_validate(entry))
