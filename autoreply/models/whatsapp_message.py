from sqlalchemy import Column, String, DateTime, JSON, Integer, Index
from sqlalchemy.sql import func

from autoreply.models.base import Base
from autoreply.utils.dates import utcnow


class MessageDirection:
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class WhatsAppMessage(Base):
    __tablename__ = "whatsapp_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String(255), nullable=False, unique=True)  # provider wamid
    direction = Column(String(10), nullable=False)  # inbound, outbound
    from_number = Column("from", String(255), nullable=False)
    to_number = Column("to", String(255), nullable=False)
    message_type = Column(String(20), nullable=False, default="text")
    content = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), default="sent")  # received, sent, delivered, read, failed
    message_metadata = Column(JSON, default=dict)  # raw provider payload
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_whatsapp_messages_direction_created", "direction", "created_at"),
        Index("ix_whatsapp_messages_status", "status"),
    )

    def __repr__(self):
        return f"<WhatsAppMessage(message_id={self.message_id}, direction={self.direction})>"
