# autoreply/services/conversation/rate_limiter_service.py
"""Burst detection for auto-replies"""
import logging
from datetime import datetime
from typing import Optional

import redis
from sqlalchemy.orm import Session

from autoreply.config.redis import RedisKeys
from autoreply.config.settings import get_settings
from autoreply.models.auto_reply_log import AutoReplyLog
from autoreply.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)


class RateLimiterService:
    """
    Suppresses auto-replies to a customer who keeps typing right after a reply.

    The window is measured from the last reply we sent (not the last inbound
    message). Redis holds a short-lived marker for the fast path; the
    auto_reply_logs table is the fallback when the marker is missing.
    Cache and table may briefly disagree, which at worst lets one extra
    reply through inside the window.
    """

    def __init__(self, db: Session, redis_client: redis.Redis, window_seconds: Optional[int] = None):
        self.db = db
        self.redis = redis_client
        if window_seconds is None:
            window_seconds = get_settings().rate_limit_window_seconds
        self.window_seconds = window_seconds

    @staticmethod
    def _key(customer_phone: str) -> str:
        return RedisKeys.AUTO_REPLY_COOLDOWN.format(phone=customer_phone)

    def get_last_reply_time(self, customer_phone: str) -> Optional[datetime]:
        last_log = self.db.query(AutoReplyLog).filter(
            AutoReplyLog.customer_phone == customer_phone,
            AutoReplyLog.rate_limited.is_(False),
        ).order_by(AutoReplyLog.created_at.desc()).first()

        return as_utc(last_log.created_at) if last_log else None

    def _seconds_since_last_reply(self, customer_phone: str) -> Optional[float]:
        last_reply_time = self.get_last_reply_time(customer_phone)
        if last_reply_time is None:
            return None
        return (utcnow() - last_reply_time).total_seconds()

    def is_rate_limited(self, customer_phone: str) -> bool:
        if self.redis.exists(self._key(customer_phone)):
            return True

        elapsed = self._seconds_since_last_reply(customer_phone)
        if elapsed is None:
            return False

        return elapsed < self.window_seconds

    def claim(self, customer_phone: str) -> bool:
        """
        Atomically reserve the reply slot for this customer.

        Two deliveries racing for the same phone both pass is_rate_limited;
        only one of them wins the SET NX.
        """
        return bool(self.redis.set(self._key(customer_phone), "1", nx=True, ex=self.window_seconds))

    def set_cooldown(self, customer_phone: str) -> None:
        """Start the window after a reply was actually sent"""
        self.redis.set(self._key(customer_phone), "1", ex=self.window_seconds)

    def release(self, customer_phone: str) -> None:
        """Drop a claim when no reply went out"""
        self.redis.delete(self._key(customer_phone))

    def get_remaining_cooldown(self, customer_phone: str) -> int:
        """Seconds left in the window, 0 when not limited"""
        ttl = self.redis.ttl(self._key(customer_phone))
        if ttl and ttl > 0:
            return int(ttl)

        elapsed = self._seconds_since_last_reply(customer_phone)
        if elapsed is None:
            return 0

        return max(0, int(self.window_seconds - elapsed))
