# autoreply/services/ai/llm_service.py
"""LLM replies constrained to a business profile"""
import json
import logging
from typing import Dict, Optional

from openai import OpenAI

from autoreply.config.settings import Settings, get_settings
from autoreply.models.business import Business

logger = logging.getLogger(__name__)

ESCALATION_PHRASES = (
    "need to check with the owner",
    "check with the owner",
    "don't have that specific information",
    "don't have that information",
    "contact the owner directly",
    "reach out to the owner",
    "connect you with the owner",
    "i cannot help with that",
    "i can't help with that",
    "unable to help with that",
    "outside my knowledge",
)


def detect_escalation(reply: str) -> bool:
    """True when the model handed the question back to a human"""
    lower_reply = (reply or "").lower()
    return any(phrase in lower_reply for phrase in ESCALATION_PHRASES)


class LLMService:
    """Wraps the OpenAI chat API; never raises into the caller"""

    def __init__(self, client: Optional[OpenAI] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(
                api_key=self.settings.OPENAI_API_KEY,
                timeout=self.settings.LLM_TIMEOUT_SECONDS,
            )
        return self._client

    def is_available(self) -> bool:
        return self.settings.llm_available

    @staticmethod
    def build_system_prompt(business: Business, intent: Optional[str] = None) -> str:
        profile_json = json.dumps(business.profile_dict(), indent=2, ensure_ascii=False)

        prompt = f"You are a customer support assistant for {business.name}.\n\n"
        prompt += "STRICT RULES:\n"
        prompt += "1. ONLY answer using the business profile data provided below\n"
        prompt += "2. Answer questions about services, prices, areas, hours, and booking confidently using the profile\n"
        prompt += "3. If specific information is missing from the profile, politely say 'I need to check with the owner about that'\n"
        prompt += "4. NEVER make up prices, services, areas, or hours\n"
        prompt += "5. NEVER answer questions outside the business scope (politics, news, general advice, etc.)\n"
        prompt += "6. Keep replies concise and helpful (2-3 sentences max)\n"
        prompt += "7. Use a friendly, professional tone\n\n"
        prompt += "BUSINESS PROFILE:\n"
        prompt += f"```json\n{profile_json}\n```\n\n"

        if intent:
            prompt += f"Customer Intent: {intent}\n\n"

        prompt += "Provide a natural, helpful reply using ONLY the profile data above."
        return prompt

    @staticmethod
    def build_user_prompt(customer_message: str) -> str:
        return f"Customer message: {customer_message}"

    def generate_reply(self, business: Business, customer_message: str, intent: Optional[str] = None) -> Dict:
        """
        Ask the model for a reply.

        Returns a dict with success, reply, escalation_needed, tokens_used
        and error. Any failure comes back as success=False with
        escalation_needed=True.
        """
        if not self.settings.LLM_ENABLED:
            return {
                "success": False,
                "reply": None,
                "escalation_needed": True,
                "tokens_used": 0,
                "error": "LLM disabled",
            }

        try:
            response = self.client.chat.completions.create(
                model=self.settings.LLM_MODEL,
                messages=[
                    {"role": "system", "content": self.build_system_prompt(business, intent)},
                    {"role": "user", "content": self.build_user_prompt(customer_message)},
                ],
                max_tokens=self.settings.LLM_MAX_TOKENS,
                temperature=self.settings.LLM_TEMPERATURE,
            )

            reply_text = response.choices[0].message.content or ""
            tokens_used = response.usage.total_tokens if response.usage else 0
            escalation_needed = detect_escalation(reply_text)

            logger.info(
                f"LLM reply generated for {business.name}: tokens={tokens_used} escalation={escalation_needed}",
                extra={"business_id": business.id, "intent": intent},
            )

            return {
                "success": True,
                "reply": reply_text,
                "escalation_needed": escalation_needed,
                "tokens_used": tokens_used,
                "error": None,
            }

        except Exception as e:
            logger.error(
                f"LLM generation failed: {str(e)}",
                extra={"business_id": business.id},
            )
            return {
                "success": False,
                "reply": None,
                "escalation_needed": True,
                "tokens_used": 0,
                "error": str(e),
            }
