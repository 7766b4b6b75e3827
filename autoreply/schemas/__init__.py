# autoreply/schemas/__init__.py
from .webhook_events import (
    ChangeMetadata,
    ChangeValue,
    WebhookChange,
    WebhookEntry,
    WhatsAppWebhookPayload,
    InboundTextMessage,
    MessageStatusUpdate,
)

from .auto_reply import (
    ReplyType,
    Intent,
    GeneratedReply,
    MessageOutcome,
    ProcessingResult,
    ManualReplyRequest,
)
