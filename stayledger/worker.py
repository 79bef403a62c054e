"""Celery worker configuration.

Start the worker and the beat scheduler with:

    celery -A stayledger.worker worker -B
"""

from celery import Celery

from stayledger.config import settings

# Create Celery app
celery_app = Celery(
    "stayledger_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["stayledger.tasks"],
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
    task_time_limit=settings.escrow_job_lock_timeout_seconds,
    task_soft_time_limit=settings.escrow_job_lock_timeout_seconds - 30,

    # Worker settings
    worker_prefetch_multiplier=1,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Beat schedule for periodic tasks
    beat_schedule={
        "release-escrow-payouts": {
            "task": "stayledger.tasks.release_escrow_payouts",
            "schedule": settings.escrow_release_interval_minutes * 60.0,
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
