"""Celery application configuration"""

from celery import Celery
from celery.signals import setup_logging

from app.config import settings
from app.logging_config import configure_logging

# Create Celery app
celery_app = Celery(
    "lineup",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.jobs.tasks",
    ],
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Beat schedule for periodic tasks
    beat_schedule={
        "sweep-session-expirations": {
            "task": "sweep_session_expirations",
            "schedule": settings.sweep_interval_seconds,
        },
        "send-reservation-reminders": {
            "task": "send_reservation_reminders",
            "schedule": settings.reminder_interval_seconds,
        },
    },
)


@setup_logging.connect
def configure_worker_logging(**kwargs):
    """Keep Celery from replacing the structlog setup"""
    configure_logging(settings.log_level, settings.log_format)
