"""
Celery application configuration.

Configures Celery for periodic maintenance with:
- Redis as message broker
- Beat schedule for consent expiry and appointment reminders
- Separate queues for maintenance and notification work
"""

import logging
from celery import Celery
from celery.signals import setup_logging
from kombu import Exchange, Queue
from kombu.exceptions import KombuError
from redis.exceptions import RedisError

from ..core.config import settings
from ..core.logging_config import configure_logging


logger = logging.getLogger(__name__)


# =============================================================================
# Celery Application
# =============================================================================

celery_app = Celery(
    "healthchain",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "healthchain.tasks.maintenance",
    ],
)


# =============================================================================
# Celery Configuration
# =============================================================================

celery_app.conf.update(
    # Task execution settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task time limits
    task_time_limit=settings.celery_task_time_limit,
    task_soft_time_limit=settings.celery_task_time_limit - 30,

    # Worker settings
    worker_concurrency=settings.celery_worker_concurrency,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Result backend settings
    result_expires=3600,

    # Broker settings
    broker_connection_retry_on_startup=True,
    broker_connection_max_retries=10,

    # Task acknowledgement
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Task routing
    task_default_queue="default",
    task_default_exchange="default",
    task_default_routing_key="default",

    beat_scheduler="celery.beat:PersistentScheduler",
    beat_schedule_filename="/tmp/celerybeat-schedule",

    beat_schedule={
        "expire-consent-requests": {
            "task": "healthchain.tasks.maintenance.expire_consent_requests",
            "schedule": 900.0,  # Every 15 minutes
        },
        "expire-consent-contracts": {
            "task": "healthchain.tasks.maintenance.expire_consent_contracts",
            "schedule": 3600.0,  # Hourly
        },
        "send-appointment-reminders": {
            "task": "healthchain.tasks.maintenance.send_appointment_reminders",
            "schedule": 1800.0,  # Every 30 minutes
        },
    },
)


# =============================================================================
# Queue Configuration
# =============================================================================

default_exchange = Exchange("default", type="direct")
maintenance_exchange = Exchange("maintenance", type="direct")

celery_app.conf.task_queues = (
    Queue(
        "default",
        default_exchange,
        routing_key="default",
    ),
    # Consent expiry sweeps
    Queue(
        "maintenance",
        maintenance_exchange,
        routing_key="maintenance",
    ),
    # Reminder notifications
    Queue(
        "notifications",
        default_exchange,
        routing_key="notifications",
    ),
)

celery_app.conf.task_routes = {
    "healthchain.tasks.maintenance.expire_consent_requests": {
        "queue": "maintenance",
        "routing_key": "maintenance",
    },
    "healthchain.tasks.maintenance.expire_consent_contracts": {
        "queue": "maintenance",
        "routing_key": "maintenance",
    },
    "healthchain.tasks.maintenance.send_appointment_reminders": {
        "queue": "notifications",
        "routing_key": "notifications",
    },
}

QUEUE_NAMES = ("default", "maintenance", "notifications")


# =============================================================================
# Queue Monitoring
# =============================================================================

def get_queue_depth(queue_name: str = "default") -> int:
    """
    Get current depth of a Celery queue.

    Args:
        queue_name: Name of queue to check

    Returns:
        Number of messages in queue (0 when the broker is unreachable)
    """
    try:
        with celery_app.pool.acquire(block=True) as conn:
            return conn.default_channel.client.llen(queue_name)
    except (KombuError, RedisError, OSError) as e:
        logger.error(f"Failed to get queue depth for {queue_name}: {e}")
        return 0


def get_queue_stats() -> dict:
    """
    Get statistics for all queues.

    Returns:
        Dict with queue names and their depths
    """
    return {queue: get_queue_depth(queue) for queue in QUEUE_NAMES}


# =============================================================================
# Startup Events
# =============================================================================

@setup_logging.connect
def use_application_logging(**kwargs):
    """Workers log through the same handlers and format as the API."""
    configure_logging()


@celery_app.on_after_configure.connect
def setup_periodic_tasks(sender, **kwargs):
    """Configure periodic tasks on worker startup."""
    logger.info("Celery worker configured with periodic tasks")


@celery_app.task
def health_check():
    """
    Simple health check task for monitoring.

    Returns:
        Dict with worker status
    """
    return {
        "status": "healthy",
        "worker": True,
    }
