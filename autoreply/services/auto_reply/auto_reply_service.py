# autoreply/services/auto_reply/auto_reply_service.py
"""Rule-based auto-replies with LLM and menu fallbacks"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from autoreply.config.settings import get_settings
from autoreply.models.business import Business
from autoreply.schemas.auto_reply import GeneratedReply, Intent, ReplyType
from autoreply.services.ai.llm_service import LLMService

logger = logging.getLogger(__name__)
settings = get_settings()

# Checked in this order; an intent counts once however many of its keywords match
KEYWORD_MAP: Dict[Intent, List[str]] = {
    Intent.PRICE: ["harga", "price", "berapa", "cost"],
    Intent.AREA: ["area", "kawasan", "location", "lokasi"],
    Intent.HOURS: ["hours", "time", "bila", "when", "operating", "open"],
    Intent.BOOK: ["book", "tempah", "appointment", "booking"],
}

MENU_OPTIONS: Dict[str, Intent] = {
    "1": Intent.PRICE,
    "2": Intent.AREA,
    "3": Intent.HOURS,
    "4": Intent.BOOK,
}

MAX_SECTIONS = 3

FALLBACK_MESSAGE = (
    "Hello! How can we help you today?\n\n"
    "Quick menu - reply with a number:\n"
    "1. Our services and prices\n"
    "2. Areas we cover\n"
    "3. Operating hours\n"
    "4. How to book"
)

ESCALATION_MESSAGE = (
    "Thank you for your question! 🙏\n\n"
    "This one needs a personal response from the owner. "
    "We'll get back to you shortly."
)


def detect_intents(message: str) -> List[Intent]:
    lower_message = message.lower()
    return [
        intent
        for intent, keywords in KEYWORD_MAP.items()
        if any(keyword in lower_message for keyword in keywords)
    ]


def format_schedule(operating_hours: dict) -> str:
    lines = []
    for day, hours in operating_hours.items():
        day_name = day.capitalize()
        if hours.get("closed"):
            lines.append(f"• {day_name}: Closed")
        else:
            lines.append(f"• {day_name}: {hours.get('open')} - {hours.get('close')}")
    return "\n".join(lines)


class AutoReplyService:
    """
    Builds the reply for one customer message.

    Precedence: menu number, after-hours notice, keyword sections (at most
    three, in detection order), LLM, then the generic menu. The result says
    which of those produced it so callers never have to inspect the text.
    """

    def __init__(self, llm_service: Optional[LLMService] = None):
        self.llm_service = llm_service or LLMService()

    def generate_reply(
            self,
            message: str,
            business: Business,
            now: Optional[datetime] = None,
    ) -> GeneratedReply:
        trimmed = message.strip()

        menu_intent = MENU_OPTIONS.get(trimmed)
        if menu_intent is not None:
            return GeneratedReply(
                text=self.section_for(menu_intent, business),
                reply_type=ReplyType.MENU_SELECTION,
            )

        if self.is_after_hours(business, now):
            return GeneratedReply(
                text=self.after_hours_reply(business),
                reply_type=ReplyType.AFTER_HOURS,
            )

        intents = detect_intents(message)
        if intents:
            return GeneratedReply(
                text=self.bundle_replies(intents, business),
                reply_type=ReplyType.RULE,
            )

        if business.llm_enabled and self.llm_service.is_available():
            llm_reply = self._llm_reply(message, business)
            if llm_reply:
                return llm_reply

        return GeneratedReply(text=FALLBACK_MESSAGE, reply_type=ReplyType.FALLBACK)

    def _llm_reply(self, message: str, business: Business) -> Optional[GeneratedReply]:
        result = self.llm_service.generate_reply(business, message)

        if not result.get("success"):
            logger.warning(
                f"LLM reply failed for business {business.id}, using fallback menu: {result.get('error')}"
            )
            return None

        tokens_used = result.get("tokens_used") or 0
        if result.get("escalation_needed"):
            logger.info(f"LLM escalated message for business {business.id}")
            return GeneratedReply(
                text=ESCALATION_MESSAGE,
                reply_type=ReplyType.ESCALATION,
                tokens_used=tokens_used,
            )

        reply_text = (result.get("reply") or "").strip()
        if not reply_text:
            return None

        return GeneratedReply(text=reply_text, reply_type=ReplyType.LLM, tokens_used=tokens_used)

    def bundle_replies(self, intents: List[Intent], business: Business) -> str:
        unique_intents = list(dict.fromkeys(intents))[:MAX_SECTIONS]
        return "\n\n".join(self.section_for(intent, business) for intent in unique_intents)

    def section_for(self, intent: Intent, business: Business) -> str:
        if intent == Intent.PRICE:
            return self.price_reply(business)
        if intent == Intent.AREA:
            return self.area_reply(business)
        if intent == Intent.HOURS:
            return self.hours_reply(business)
        if intent == Intent.BOOK:
            return self.booking_reply(business)
        raise ValueError(f"Unknown intent: {intent}")

    @staticmethod
    def price_reply(business: Business) -> str:
        header = "💰 *Our Services & Prices:*\n"
        if not business.services:
            return header + "Please contact us for pricing details."

        lines = [f"• {service.get('name')}: RM{service.get('price')}" for service in business.services]
        return header + "\n".join(lines)

    @staticmethod
    def area_reply(business: Business) -> str:
        header = "📍 *Areas We Cover:*\n"
        if not business.areas:
            return header + "We serve various locations. Contact us for details."
        return header + ", ".join(business.areas)

    @staticmethod
    def hours_reply(business: Business) -> str:
        header = "🕐 *Operating Hours:*\n"
        if not business.operating_hours:
            return header + "Please contact us for our operating hours."
        return header + format_schedule(business.operating_hours)

    @staticmethod
    def booking_reply(business: Business) -> str:
        header = "📅 *How to Book:*\n"
        if not business.booking_method:
            return header + "Please contact us to make a booking."
        return header + business.booking_method

    @staticmethod
    def business_timezone(business: Business):
        tz_name = business.timezone or settings.DEFAULT_TIMEZONE
        try:
            return ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone '{tz_name}' for business {business.id}, using UTC")
            return timezone.utc

    def is_after_hours(self, business: Business, now: Optional[datetime] = None) -> bool:
        """Closed right now? No hours configured means always open."""
        operating_hours = business.operating_hours
        if not operating_hours:
            return False

        local_now = (now or datetime.now(timezone.utc)).astimezone(self.business_timezone(business))
        current_day = local_now.strftime("%A").lower()

        day_hours = operating_hours.get(current_day)
        if day_hours is None:
            return True

        if day_hours.get("closed"):
            return True

        # Zero-padded HH:MM strings compare correctly as text
        current_time = local_now.strftime("%H:%M")
        open_time = day_hours.get("open") or "00:00"
        close_time = day_hours.get("close") or "23:59"

        return current_time < open_time or current_time > close_time

    @staticmethod
    def after_hours_reply(business: Business) -> str:
        reply = "🌙 Thank you for your message!\n\nWe're currently closed. "

        if business.operating_hours:
            reply += "Our operating hours are:\n\n"
            reply += format_schedule(business.operating_hours)
            reply += "\n\nWe'll get back to you during business hours!"
        else:
            reply += "We'll get back to you as soon as possible!"

        return reply
