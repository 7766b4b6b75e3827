# autoreply/config/celery_config.py
"""Celery configuration and task routing"""
from celery import Celery
from kombu import Queue

from autoreply.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure Celery application"""

    celery_app = Celery(
        "autoreply_service",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=["autoreply.tasks.maintenance_tasks"],
    )

    # Configure Celery
    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,

        # Task routing
        task_routes={
            "autoreply.tasks.maintenance_tasks.*": {"queue": "maintenance"},
        },

        # Queue definitions
        task_queues=(
            Queue("maintenance", routing_key="maintenance"),
        ),

        # Periodic jobs
        beat_schedule={
            "cleanup-expired-conversation-pauses": {
                "task": "autoreply.tasks.maintenance_tasks.cleanup_expired_pauses",
                "schedule": float(settings.PAUSE_CLEANUP_INTERVAL_SECONDS),
            },
        },

        # Worker settings
        worker_max_tasks_per_child=1000,
        worker_prefetch_multiplier=1,
        task_acks_late=True,

        broker_connection_retry_on_startup=True,
    )

    return celery_app


# Create the Celery app instance
celery_app = create_celery_app()
