from sqlalchemy import Column, String, DateTime, Text, Integer, Boolean, ForeignKey, Index

from autoreply.models.base import Base
from autoreply.utils.dates import utcnow


class AutoReplyLog(Base):
    """Audit row for every auto-reply that was sent"""
    __tablename__ = "auto_reply_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_phone = Column(String(30), nullable=False)
    business_id = Column(Integer, ForeignKey("businesses.id", ondelete="CASCADE"))
    message_text = Column(Text, nullable=False)
    reply_text = Column(Text)
    reply_type = Column(String(20), nullable=False)  # rule, llm, fallback, after_hours, menu_selection, escalation
    llm_tokens_used = Column(Integer)
    rate_limited = Column(Boolean, nullable=False, default=False)
    duration_ms = Column(Integer)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_auto_reply_logs_business_created", "business_id", "created_at"),
        Index("ix_auto_reply_logs_customer_created", "customer_phone", "created_at"),
    )
