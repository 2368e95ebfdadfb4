"""
System monitoring service.

Collects record counts and database latency and turns them into a health
score between 0 and 100.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, text
from sqlalchemy.orm import Session

from ..models.appointment import Appointment, AppointmentStatus
from ..models.audit_log import AuditLog
from ..models.lab import LabOrder, LabOrderStatus
from ..models.patient import Patient
from ..models.prescription import Prescription, PrescriptionStatus
from ..models.user import User, UserRole
from ..models.visit import Visit


logger = logging.getLogger(__name__)


# =============================================================================
# Scoring Constants
# =============================================================================

# (threshold ms, penalty), checked in order, first match wins
DB_RESPONSE_PENALTIES = ((1000, 20), (500, 10), (200, 5))
TOTAL_RESPONSE_PENALTIES = ((5000, 30), (2000, 15), (1000, 5))

ACTIVITY_BONUS = 5
PENDING_APPOINTMENTS_LIMIT = 50

HEALTHY_THRESHOLD = 80
WARNING_THRESHOLD = 60


@dataclass
class HealthMetrics:
    db_response_ms: float
    total_response_ms: float
    active_users: int
    today_visits: int
    pending_appointments: int


def _penalty(value: float, table: tuple[tuple[int, int], ...]) -> int:
    for threshold, penalty in table:
        if value > threshold:
            return penalty
    return 0


def calculate_health_score(metrics: HealthMetrics) -> int:
    """
    Score starts at 100, loses points for slow responses and gains points
    for signs of normal activity. Clamped to 0..100.
    """
    score = 100
    score -= _penalty(metrics.db_response_ms, DB_RESPONSE_PENALTIES)
    score -= _penalty(metrics.total_response_ms, TOTAL_RESPONSE_PENALTIES)

    if metrics.active_users > 0:
        score += ACTIVITY_BONUS
    if metrics.today_visits > 0:
        score += ACTIVITY_BONUS
    if metrics.pending_appointments < PENDING_APPOINTMENTS_LIMIT:
        score += ACTIVITY_BONUS

    return max(0, min(100, score))


def health_status(score: int) -> str:
    if score >= HEALTHY_THRESHOLD:
        return "healthy"
    if score >= WARNING_THRESHOLD:
        return "warning"
    return "critical"


# =============================================================================
# Collection
# =============================================================================

def _count(db: Session, column, *criteria) -> int:
    return db.query(func.count(column)).filter(*criteria).scalar() or 0


def _day_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def collect_system_health(db: Session) -> dict[str, Any]:
    """Counts per resource, database latency and the resulting score."""
    started = time.perf_counter()

    db_started = time.perf_counter()
    db.execute(text("SELECT 1"))
    db_response_ms = (time.perf_counter() - db_started) * 1000

    now = datetime.now(timezone.utc)
    today_start, today_end = _day_bounds(now)
    week_start = today_start - timedelta(days=7)

    statistics = {
        "users": {
            "total": _count(db, User.id),
            "active": _count(db, User.id, User.is_active.is_(True)),
            "patients": _count(db, User.id, User.role == UserRole.PATIENT),
            "doctors": _count(db, User.id, User.role == UserRole.DOCTOR),
            "nurses": _count(db, User.id, User.role == UserRole.NURSE),
        },
        "patients": {
            "total": _count(db, Patient.id),
            "active": _count(db, Patient.id, Patient.is_active.is_(True)),
        },
        "visits": {
            "total": _count(db, Visit.id),
            "today": _count(db, Visit.id, Visit.visit_date >= today_start, Visit.visit_date < today_end),
            "this_week": _count(db, Visit.id, Visit.visit_date >= week_start),
        },
        "appointments": {
            "total": _count(db, Appointment.id),
            "pending": _count(db, Appointment.id, Appointment.status == AppointmentStatus.SCHEDULED),
            "confirmed": _count(db, Appointment.id, Appointment.status == AppointmentStatus.CONFIRMED),
        },
        "lab_orders": {
            "total": _count(db, LabOrder.id),
            "pending": _count(db, LabOrder.id, LabOrder.status == LabOrderStatus.ORDERED),
            "completed": _count(db, LabOrder.id, LabOrder.status == LabOrderStatus.COMPLETED),
        },
        "prescriptions": {
            "total": _count(db, Prescription.id),
            "pending": _count(db, Prescription.id, Prescription.status == PrescriptionStatus.PENDING),
            "dispensed": _count(db, Prescription.id, Prescription.status == PrescriptionStatus.DISPENSED),
        },
    }

    total_response_ms = (time.perf_counter() - started) * 1000
    score = calculate_health_score(HealthMetrics(
        db_response_ms=db_response_ms,
        total_response_ms=total_response_ms,
        active_users=statistics["users"]["active"],
        today_visits=statistics["visits"]["today"],
        pending_appointments=statistics["appointments"]["pending"],
    ))

    return {
        "system_health": {
            "status": health_status(score),
            "score": score,
            "response_time": round(total_response_ms, 2),
            "database": {
                "status": "connected",
                "response_time": round(db_response_ms, 2),
                "dialect": db.get_bind().dialect.name,
                "current_time": now.isoformat(),
            },
        },
        "statistics": statistics,
    }


def _daily_counts(db: Session, date_column, since: datetime) -> list[dict[str, Any]]:
    day = func.date(date_column)
    rows = (
        db.query(day.label("day"), func.count().label("count"))
        .filter(date_column >= since)
        .group_by(day)
        .order_by(day)
        .all()
    )
    return [{"date": str(row.day), "count": row.count} for row in rows]


def collect_system_stats(db: Session, days: int = 30) -> dict[str, Any]:
    """Daily trends, busiest doctors and recent audit activity over ``days``."""
    end = datetime.now(timezone.utc)
    start = end - timedelta(days=days)

    top_doctors = (
        db.query(User.id, User.first_name, User.last_name, func.count(Visit.id).label("visit_count"))
        .outerjoin(Visit, (Visit.doctor_id == User.id) & (Visit.visit_date >= start))
        .filter(User.role == UserRole.DOCTOR, User.is_active.is_(True))
        .group_by(User.id, User.first_name, User.last_name)
        .order_by(func.count(Visit.id).desc())
        .limit(10)
        .all()
    )

    recent_activity = (
        db.query(AuditLog)
        .filter(AuditLog.created_at >= end - timedelta(hours=24))
        .order_by(AuditLog.created_at.desc())
        .limit(20)
        .all()
    )

    return {
        "period": {
            "days": days,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
        },
        "trends": {
            "user_growth": _daily_counts(db, User.created_at, start),
            "visits": _daily_counts(db, Visit.visit_date, start),
            "appointments": _daily_counts(db, Appointment.created_at, start),
            "lab_orders": _daily_counts(db, LabOrder.order_date, start),
            "prescriptions": _daily_counts(db, Prescription.prescription_date, start),
        },
        "top_performers": {
            "doctors": [
                {
                    "id": str(row.id),
                    "first_name": row.first_name,
                    "last_name": row.last_name,
                    "visit_count": row.visit_count,
                }
                for row in top_doctors
            ],
        },
        "recent_activity": [
            {
                "activity_type": entry.action.value,
                "resource_type": entry.resource_type,
                "reference": str(entry.resource_id) if entry.resource_id else None,
                "user_email": entry.user_email,
                "timestamp": entry.created_at.isoformat(),
            }
            for entry in recent_activity
        ],
    }
