from sqlalchemy import Column, String, DateTime, Integer
from sqlalchemy.sql import func

from autoreply.models.base import Base


class ConversationPause(Base):
    """Human takeover window for one customer phone"""
    __tablename__ = "conversation_pauses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone_number = Column(String(30), nullable=False, unique=True)
    paused_until = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
