from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ReplyType(str, Enum):
    RULE = "rule"
    LLM = "llm"
    FALLBACK = "fallback"
    AFTER_HOURS = "after_hours"
    MENU_SELECTION = "menu_selection"
    ESCALATION = "escalation"


class Intent(str, Enum):
    PRICE = "PRICE"
    AREA = "AREA"
    HOURS = "HOURS"
    BOOK = "BOOK"


class GeneratedReply(BaseModel):
    """Reply text together with how it was produced"""
    text: str = ""
    reply_type: ReplyType = ReplyType.FALLBACK
    tokens_used: Optional[int] = None

    def __bool__(self) -> bool:
        return bool(self.text)


class MessageOutcome(str, Enum):
    REPLIED = "replied"
    ONBOARDING = "onboarding"
    IGNORED_TYPE = "ignored_type"
    PAUSED = "paused"
    RATE_LIMITED = "rate_limited"
    NO_TENANT = "no_tenant"
    NOT_ONBOARDED = "not_onboarded"
    NO_REPLY = "no_reply"
    SEND_FAILED = "send_failed"
    ERROR = "error"


class ProcessingResult(BaseModel):
    """What happened to one inbound message of a webhook batch"""
    message_id: Optional[str] = None
    outcome: MessageOutcome
    reply_type: Optional[ReplyType] = None
    detail: Optional[str] = None


class ManualReplyRequest(BaseModel):
    to: str = Field(..., min_length=1, description="Customer phone number")
    message: str = Field(..., min_length=1, max_length=4096)
