"""
Celery worker entry point
Runs periodic maintenance; replies are sent inline by the webhook
"""
import logging
from celery.signals import worker_ready, worker_shutdown

from autoreply.config.celery_config import celery_app
from autoreply.utils.my_logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    logger.info("Celery worker ready")
    logger.info(f"Registered tasks: {sorted(name for name in celery_app.tasks if name.startswith('autoreply.'))}")


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    logger.info("Celery worker shutting down")


if __name__ == "__main__":
    # Worker with embedded beat, enough for a single-node deployment
    celery_app.start([
        "worker",
        "--beat",
        "--loglevel=info",
        "--queues=maintenance",
        "--concurrency=1",
    ])
