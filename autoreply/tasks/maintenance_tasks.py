"""Periodic housekeeping tasks"""
import logging

from autoreply.config.celery_config import celery_app
from autoreply.config.database import SessionLocal
from autoreply.services.conversation.conversation_pause_service import ConversationPauseService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def cleanup_expired_pauses(self):
    """Delete human-takeover pauses whose paused_until has passed"""
    db = SessionLocal()
    try:
        deleted = ConversationPauseService.cleanup_expired(db)
        return {"status": "ok", "deleted": deleted}

    except Exception as e:
        db.rollback()
        logger.error(f"Error cleaning up conversation pauses: {str(e)}")
        raise self.retry(exc=e, countdown=60)

    finally:
        db.close()
