"""
Celery tasks package for periodic maintenance.

Provides background task infrastructure for:
- Consent request and contract expiry
- Appointment reminders
"""

from .celery_app import celery_app
from .maintenance import (
    expire_consent_requests,
    expire_consent_contracts,
    send_appointment_reminders,
)

__all__ = [
    "celery_app",
    "expire_consent_requests",
    "expire_consent_contracts",
    "send_appointment_reminders",
]
