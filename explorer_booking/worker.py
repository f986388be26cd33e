"""Celery worker configuration.

Runs booking status automation outside the API process:
- Periodic status sweep
- Status history cleanup
- Durable scheduled transitions and review requests
"""

from celery import Celery
from celery.schedules import crontab

from explorer_booking.config import settings

# Create Celery app
celery_app = Celery(
    "explorer_booking_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["explorer_booking.tasks"],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=240,  # Soft limit at 4 minutes

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # ETA tasks may sit in the broker for days; keep them invisible until due
    broker_transport_options={"visibility_timeout": 7 * 24 * 60 * 60},

    # Beat schedule for periodic tasks
    beat_schedule={
        # Advance bookings through time-based statuses
        "process-scheduled-status-updates": {
            "task": "explorer_booking.tasks.process_scheduled_status_updates",
            "schedule": float(settings.status_sweep_interval_seconds),
        },
        # Purge old status history hourly
        "cleanup-status-history": {
            "task": "explorer_booking.tasks.cleanup_status_history",
            "schedule": crontab(minute=0),
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
