# autoreply/services/webhook/whatsapp_webhook_service.py
"""Runs every inbound WhatsApp message through the auto-reply pipeline"""
import logging
import time
from typing import Any, Dict, List, Optional

import redis
from sqlalchemy.orm import Session

from autoreply.models.auto_reply_log import AutoReplyLog
from autoreply.models.business import Business
from autoreply.schemas.auto_reply import GeneratedReply, MessageOutcome, ProcessingResult
from autoreply.schemas.webhook_events import InboundTextMessage, WebhookChange, WhatsAppWebhookPayload
from autoreply.services.auto_reply.auto_reply_service import AutoReplyService
from autoreply.services.conversation.conversation_pause_service import ConversationPauseService
from autoreply.services.conversation.rate_limiter_service import RateLimiterService
from autoreply.services.onboarding.onboarding_service import OnboardingService
from autoreply.services.tenant.tenant_router import TenantRouter
from autoreply.services.whatsapp.whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)

ONBOARDING_TRIGGER = "ONBOARDING"


class WhatsAppWebhookService:
    """
    One instance per webhook delivery.

    Each message goes through: inbound logging, type filter, onboarding,
    human pause, rate limit, tenant resolution, reply. The first step that
    handles the message ends its processing. A failing message yields an
    ERROR result and never stops its siblings in the same batch.
    """

    def __init__(
            self,
            db: Session,
            redis_client: redis.Redis,
            whatsapp_service: Optional[WhatsAppService] = None,
            auto_reply_service: Optional[AutoReplyService] = None,
            rate_limiter: Optional[RateLimiterService] = None,
    ):
        self.db = db
        self.tenant_router = TenantRouter(db)
        self.whatsapp_service = whatsapp_service or WhatsAppService(db)
        self.auto_reply_service = auto_reply_service or AutoReplyService()
        self.rate_limiter = rate_limiter or RateLimiterService(db, redis_client)
        self.onboarding_service = OnboardingService(db, self.whatsapp_service)

    def signing_business(self, payload: Optional[WhatsAppWebhookPayload]) -> Optional[Business]:
        """Tenant whose app secret signs this delivery (None means the global secret)"""
        if payload is None:
            return None
        return self.tenant_router.get_business_by_phone_number_id(payload.first_phone_number_id())

    def verify_signature(
            self, signature: str, raw_body: bytes, payload: Optional[WhatsAppWebhookPayload]
    ) -> bool:
        return self.whatsapp_service.verify_signature(signature, raw_body, self.signing_business(payload))

    def handle_payload(self, payload: WhatsAppWebhookPayload) -> List[ProcessingResult]:
        results: List[ProcessingResult] = []

        for entry in payload.entry:
            for change in entry.changes:
                if change.field != "messages":
                    continue
                results.extend(self.handle_change(change))

        for result in results:
            logger.info(
                f"Webhook message {result.message_id}: {result.outcome.value}",
                extra={"reply_type": result.reply_type.value if result.reply_type else None},
            )
        return results

    def handle_change(self, change: WebhookChange) -> List[ProcessingResult]:
        """Route one change to its tenant, then process its messages and statuses"""
        phone_number_id = change.value.phone_number_id
        business = self.tenant_router.get_business_by_phone_number_id(phone_number_id)

        results = []
        for message_data in change.value.messages or []:
            try:
                results.append(self.handle_message(message_data, phone_number_id, business))
            except Exception as e:
                self.db.rollback()
                logger.exception(f"Failed to process WhatsApp message: {str(e)}")
                results.append(ProcessingResult(
                    message_id=message_data.get("id") if isinstance(message_data, dict) else None,
                    outcome=MessageOutcome.ERROR,
                    detail=str(e),
                ))

        for status_data in change.value.statuses or []:
            try:
                self.handle_status_update(status_data)
            except Exception as e:
                self.db.rollback()
                logger.exception(f"Failed to apply WhatsApp status update: {str(e)}")

        return results

    def handle_status_update(self, status_data: Dict[str, Any]) -> None:
        self.whatsapp_service.update_message_status(status_data)

    def handle_message(
            self,
            message_data: Dict[str, Any],
            phone_number_id: Optional[str] = None,
            business: Optional[Business] = None,
    ) -> ProcessingResult:
        started = time.monotonic()
        message_id = message_data.get("id")

        inbound = self.whatsapp_service.handle_incoming_message(message_data, phone_number_id)
        if inbound is None:
            return ProcessingResult(
                message_id=message_id,
                outcome=MessageOutcome.ERROR,
                detail="inbound message could not be stored",
            )

        if message_data.get("type") != "text":
            logger.info(f"Ignoring non-text message {message_id} of type {message_data.get('type')}")
            return ProcessingResult(message_id=message_id, outcome=MessageOutcome.IGNORED_TYPE)

        message = InboundTextMessage.model_validate(message_data)
        sender = message.from_
        body = message.body

        if body.strip().upper() == ONBOARDING_TRIGGER:
            self.onboarding_service.start_onboarding(sender, business)
            return ProcessingResult(message_id=message_id, outcome=MessageOutcome.ONBOARDING)

        if self.onboarding_service.has_active_onboarding(sender):
            self.onboarding_service.process_response(sender, body, business)
            return ProcessingResult(message_id=message_id, outcome=MessageOutcome.ONBOARDING)

        if ConversationPauseService.is_paused(self.db, sender):
            logger.info(f"Conversation with {sender} is paused for human takeover, skipping auto-reply")
            return ProcessingResult(message_id=message_id, outcome=MessageOutcome.PAUSED)

        if self.rate_limiter.is_rate_limited(sender) or not self.rate_limiter.claim(sender):
            remaining = self.rate_limiter.get_remaining_cooldown(sender)
            logger.info(f"Burst detected for {sender}, skipping auto-reply ({remaining}s remaining)")
            return ProcessingResult(message_id=message_id, outcome=MessageOutcome.RATE_LIMITED)

        try:
            return self._reply(message_id, sender, body, phone_number_id, business, started)
        except Exception:
            self.rate_limiter.release(sender)
            raise

    def _reply(
            self,
            message_id: Optional[str],
            sender: str,
            body: str,
            phone_number_id: Optional[str],
            business: Optional[Business],
            started: float,
    ) -> ProcessingResult:
        """Runs while holding the rate-limit claim for the sender"""
        if business is None:
            business = self.tenant_router.get_business_by_phone_number_id_with_fallback(phone_number_id)

        if business is None:
            logger.warning("No business found for incoming message", extra={"phone_number_id": phone_number_id})
            self.rate_limiter.release(sender)
            return ProcessingResult(message_id=message_id, outcome=MessageOutcome.NO_TENANT)

        if not business.is_onboarded:
            logger.info(f"Business {business.id} is not onboarded yet, skipping auto-reply")
            self.rate_limiter.release(sender)
            return ProcessingResult(message_id=message_id, outcome=MessageOutcome.NOT_ONBOARDED)

        reply: GeneratedReply = self.auto_reply_service.generate_reply(body, business)
        if not reply:
            self.rate_limiter.release(sender)
            return ProcessingResult(message_id=message_id, outcome=MessageOutcome.NO_REPLY)

        sent = self.whatsapp_service.send_message(sender, reply.text, business)
        if not sent:
            self.rate_limiter.release(sender)
            return ProcessingResult(
                message_id=message_id,
                outcome=MessageOutcome.SEND_FAILED,
                reply_type=reply.reply_type,
            )

        self.rate_limiter.set_cooldown(sender)

        self.db.add(AutoReplyLog(
            customer_phone=sender,
            business_id=business.id,
            message_text=body,
            reply_text=reply.text,
            reply_type=reply.reply_type.value,
            llm_tokens_used=reply.tokens_used,
            rate_limited=False,
            duration_ms=int((time.monotonic() - started) * 1000),
        ))
        self.db.commit()

        logger.info(
            f"Auto-reply sent to {sender} for business {business.id}",
            extra={"reply_type": reply.reply_type.value},
        )
        return ProcessingResult(
            message_id=message_id,
            outcome=MessageOutcome.REPLIED,
            reply_type=reply.reply_type,
        )
