# autoreply/models/__init__.py
from .base import Base
from .business import Business, WhatsAppStatus
from .onboarding_state import OnboardingState, OnboardingStep
from .conversation_pause import ConversationPause
from .whatsapp_message import WhatsAppMessage, MessageDirection
from .auto_reply_log import AutoReplyLog

__all__ = [
    "Base",
    "Business",
    "WhatsAppStatus",
    "OnboardingState",
    "OnboardingStep",
    "ConversationPause",
    "WhatsAppMessage",
    "MessageDirection",
    "AutoReplyLog",
]
