"""
Periodic maintenance tasks.

Provides:
- Expiry of pending consent requests past their deadline
- Expiry of active consent contracts past ``valid_until``
- In-app reminders for upcoming appointments

Each task opens its own session; the ``run_*`` helpers take a session so
they can be called directly.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Optional

from celery import shared_task
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.database import SessionLocal
from ..core.transactions import transaction
from ..models.appointment import Appointment, AppointmentStatus
from ..models.notification import NotificationPriority
from ..services.consent import ConsentService
from ..services.notifications import create_notification


logger = logging.getLogger(__name__)

REMINDER_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)


def get_db_session() -> Session:
    """Create a new database session for task execution."""
    return SessionLocal()


# =============================================================================
# Consent Expiry
# =============================================================================

def run_consent_request_expiry(db: Session, now: Optional[datetime] = None) -> int:
    with transaction(db):
        expired = ConsentService(db).expire_stale_requests(now)
    if expired:
        logger.info(f"Expired {expired} pending consent requests")
    return expired


def run_consent_contract_expiry(db: Session, now: Optional[datetime] = None) -> int:
    with transaction(db):
        expired = ConsentService(db).expire_contracts(now)
    if expired:
        logger.info(f"Expired {expired} consent contracts")
    return expired


@shared_task(
    bind=True,
    autoretry_for=(SQLAlchemyError,),
    retry_backoff=True,
    retry_backoff_max=300,
    max_retries=settings.celery_max_retries,
)
def expire_consent_requests(self) -> Dict[str, Any]:
    db = get_db_session()
    try:
        return {"status": "success", "expired": run_consent_request_expiry(db)}
    finally:
        db.close()


@shared_task(
    bind=True,
    autoretry_for=(SQLAlchemyError,),
    retry_backoff=True,
    retry_backoff_max=300,
    max_retries=settings.celery_max_retries,
)
def expire_consent_contracts(self) -> Dict[str, Any]:
    db = get_db_session()
    try:
        return {"status": "success", "expired": run_consent_contract_expiry(db)}
    finally:
        db.close()


# =============================================================================
# Appointment Reminders
# =============================================================================

def reminder_due(appointment_date: date, appointment_time: time, now: datetime, hours: int) -> bool:
    """True when the appointment starts within the next ``hours``."""
    starts_at = datetime.combine(appointment_date, appointment_time, tzinfo=timezone.utc)
    return now <= starts_at <= now + timedelta(hours=hours)


def run_appointment_reminders(db: Session, now: Optional[datetime] = None,
                              hours: Optional[int] = None) -> int:
    """
    Notify patients of appointments starting within the reminder window.

    Each appointment is reminded once; ``reminder_sent_at`` is stamped.
    """
    now = now or datetime.now(timezone.utc)
    hours = hours or settings.appointment_reminder_hours
    horizon = now + timedelta(hours=hours)

    candidates = (
        db.query(Appointment)
        .filter(
            Appointment.status.in_(REMINDER_STATUSES),
            Appointment.reminder_sent_at.is_(None),
            Appointment.appointment_date >= now.date(),
            Appointment.appointment_date <= horizon.date(),
        )
        .all()
    )

    sent = 0
    with transaction(db):
        for appointment in candidates:
            if not reminder_due(appointment.appointment_date, appointment.appointment_time, now, hours):
                continue
            when = f"{appointment.appointment_date:%A, %B %d, %Y} at {appointment.appointment_time:%H:%M}"
            create_notification(
                db,
                title="Appointment Reminder",
                message=f"You have a {appointment.appointment_type} appointment on {when}.",
                notification_type="appointment_reminder",
                patient_id=appointment.patient_id,
                user_id=appointment.patient.user_id if appointment.patient else None,
                priority=NotificationPriority.MEDIUM,
                action_url=f"/appointments/{appointment.id}",
                data={"appointmentId": str(appointment.id)},
            )
            appointment.reminder_sent_at = now
            sent += 1

    logger.info(f"Sent {sent} appointment reminders")
    return sent


@shared_task(
    bind=True,
    autoretry_for=(SQLAlchemyError,),
    retry_backoff=True,
    retry_backoff_max=300,
    max_retries=settings.celery_max_retries,
)
def send_appointment_reminders(self) -> Dict[str, Any]:
    db = get_db_session()
    try:
        return {"status": "success", "reminders_sent": run_appointment_reminders(db)}
    finally:
        db.close()
