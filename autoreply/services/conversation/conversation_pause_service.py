# ============================================================================
# autoreply/services/conversation/conversation_pause_service.py
# ============================================================================
"""Service for human takeover pauses"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from autoreply.config.settings import get_settings
from autoreply.models.conversation_pause import ConversationPause
from autoreply.utils.dates import utcnow

logger = logging.getLogger(__name__)
settings = get_settings()


class ConversationPauseService:
    """A conversation is paused while paused_until lies in the future"""

    @staticmethod
    def is_paused(db: Session, phone_number: str) -> bool:
        return db.query(ConversationPause).filter(
            ConversationPause.phone_number == phone_number,
            ConversationPause.paused_until > utcnow(),
        ).first() is not None

    @staticmethod
    def pause(db: Session, phone_number: str, minutes: Optional[int] = None) -> datetime:
        """Create or extend the pause for a phone number"""
        minutes = settings.CONVERSATION_PAUSE_MINUTES if minutes is None else minutes
        paused_until = utcnow() + timedelta(minutes=minutes)

        pause = db.query(ConversationPause).filter(
            ConversationPause.phone_number == phone_number
        ).first()

        if pause:
            pause.paused_until = paused_until
        else:
            pause = ConversationPause(phone_number=phone_number, paused_until=paused_until)
            db.add(pause)

        try:
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Conversation with {phone_number} paused until {paused_until.isoformat()}")
        return paused_until

    @staticmethod
    def cleanup_expired(db: Session) -> int:
        """Delete pauses that already ended"""
        deleted = db.query(ConversationPause).filter(
            ConversationPause.paused_until < utcnow()
        ).delete(synchronize_session=False)
        db.commit()

        if deleted:
            logger.info(f"Removed {deleted} expired conversation pauses")
        return deleted
