# ============================================================================
# autoreply/api/v1/conversations.py
# Human takeover endpoints - thin HTTP layer
# ============================================================================
import logging

from fastapi import APIRouter, Depends, HTTPException

from autoreply.api.dependencies import get_business_or_404, get_whatsapp_service
from autoreply.models.business import Business
from autoreply.schemas.auto_reply import ManualReplyRequest
from autoreply.services.whatsapp.whatsapp_service import WhatsAppService

router = APIRouter(prefix="/businesses", tags=["conversations"])
logger = logging.getLogger(__name__)


@router.post("/{business_id}/manual-reply")
def send_manual_reply(
        request: ManualReplyRequest,
        business: Business = Depends(get_business_or_404),
        whatsapp_service: WhatsAppService = Depends(get_whatsapp_service),
):
    """
    Send a reply typed by a person on behalf of the business.
    Auto-replies to this customer are paused while the human handles the chat.
    """
    message = whatsapp_service.send_manual_reply(request.to, request.message, business)
    if not message:
        raise HTTPException(status_code=502, detail="WhatsApp API rejected the message")

    return {
        "status": "sent",
        "message_id": message.message_id,
        "to": request.to,
    }
