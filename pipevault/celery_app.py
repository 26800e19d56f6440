"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from pipevault.config import settings

# Create Celery app
celery_app = Celery(
    "pipevault",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "pipevault.tasks.outbox_relay",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Beat schedule for periodic tasks
    beat_schedule={
        "relay-notification-outbox": {
            "task": "pipevault.tasks.outbox_relay.relay_outbox",
            # Every minute; the relay skips rows another worker has locked
            "schedule": crontab(),
            "options": {"queue": "default"},
        },
    },
)
