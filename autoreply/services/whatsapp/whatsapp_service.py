# autoreply/services/whatsapp/whatsapp_service.py
"""WhatsApp Cloud API gateway: sending, inbound logging, signatures"""
import hashlib
import hmac
import logging
from typing import Any, Callable, Dict, Optional

import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from autoreply.config.settings import get_settings
from autoreply.models.business import Business
from autoreply.models.whatsapp_message import MessageDirection, WhatsAppMessage
from autoreply.services.conversation.conversation_pause_service import ConversationPauseService
from autoreply.services.whatsapp.credential_store import CredentialStore

logger = logging.getLogger(__name__)
settings = get_settings()


def _text_content(data: Dict[str, Any]) -> Dict[str, Any]:
    return {"body": data["text"]["body"]}


def _image_content(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": data["image"]["id"],
        "mime_type": data["image"]["mime_type"],
        "caption": data["image"].get("caption"),
    }


def _video_content(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": data["video"]["id"],
        "mime_type": data["video"]["mime_type"],
        "caption": data["video"].get("caption"),
    }


def _audio_content(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": data["audio"]["id"],
        "mime_type": data["audio"]["mime_type"],
    }


def _document_content(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": data["document"]["id"],
        "mime_type": data["document"]["mime_type"],
        "filename": data["document"].get("filename"),
    }


CONTENT_EXTRACTORS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "text": _text_content,
    "image": _image_content,
    "video": _video_content,
    "audio": _audio_content,
    "document": _document_content,
}


def extract_content(message_data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalized content for a message; unknown types keep the raw payload"""
    extractor = CONTENT_EXTRACTORS.get(message_data.get("type"))
    if extractor is None:
        return {"raw": message_data}
    return extractor(message_data)


class WhatsAppService:
    def __init__(
            self,
            db: Session,
            http_client: Optional[httpx.Client] = None,
            credentials: Optional[CredentialStore] = None,
    ):
        self.db = db
        self.credentials = credentials or CredentialStore()
        self.api_url = settings.WHATSAPP_API_URL.rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.Client(timeout=settings.WHATSAPP_TIMEOUT_SECONDS)

    def send_message(self, to: str, message: str, business: Optional[Business] = None) -> Optional[WhatsAppMessage]:
        """Send a text message; returns the stored outbound row or None on failure"""
        try:
            access_token = self.credentials.access_token_for(business)
            phone_number_id = self.credentials.phone_number_id_for(business)

            response = self.http_client.post(
                f"{self.api_url}/{phone_number_id}/messages",
                headers={"Authorization": f"Bearer {access_token}"},
                json={
                    "messaging_product": "whatsapp",
                    "recipient_type": "individual",
                    "to": to,
                    "type": "text",
                    "text": {
                        "preview_url": False,
                        "body": message,
                    },
                },
            )

            if not response.is_success:
                logger.error(
                    f"WhatsApp send message failed: status={response.status_code} body={response.text}",
                    extra={"to": to},
                )
                return None

            data = response.json()
            outbound = WhatsAppMessage(
                message_id=data["messages"][0]["id"],
                direction=MessageDirection.OUTBOUND,
                from_number=phone_number_id,
                to_number=to,
                message_type="text",
                content={"body": message},
                status="sent",
                message_metadata=data,
            )
            self.db.add(outbound)
            self.db.commit()
            self.db.refresh(outbound)

            logger.info(f"WhatsApp message sent to {to}: {outbound.message_id}")
            return outbound

        except Exception as e:
            self.db.rollback()
            logger.error(f"WhatsApp send message exception: {str(e)}", extra={"to": to})
            return None

    def send_manual_reply(self, to: str, message: str, business: Optional[Business] = None) -> Optional[WhatsAppMessage]:
        """Reply typed by a human; pauses auto-replies for this customer"""
        outbound = self.send_message(to, message, business)

        if outbound:
            paused_until = ConversationPauseService.pause(self.db, to)
            logger.info(
                f"Manual reply sent to {to}, auto-replies paused until {paused_until.isoformat()}"
            )

        return outbound

    @staticmethod
    def sign_payload(payload: bytes, secret: str) -> str:
        digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
        return f"sha256={digest}"

    def verify_signature(self, signature: str, payload: bytes, business: Optional[Business] = None) -> bool:
        """Check X-Hub-Signature-256 against HMAC-SHA256(app secret, raw body)"""
        try:
            app_secret = self.credentials.app_secret_for(business)
        except Exception as e:
            logger.error(f"Could not load app secret for signature check: {str(e)}")
            return False

        expected_signature = self.sign_payload(payload, app_secret or "")
        return hmac.compare_digest(expected_signature, signature or "")

    def handle_incoming_message(
            self,
            message_data: Dict[str, Any],
            phone_number_id: Optional[str] = None,
    ) -> Optional[WhatsAppMessage]:
        """Persist an inbound message once per provider id; returns the stored row"""
        try:
            message_id = message_data["id"]
            sender = message_data["from"]
            message_type = message_data["type"]
            content = extract_content(message_data)

            existing = self.db.query(WhatsAppMessage).filter(
                WhatsAppMessage.message_id == message_id
            ).first()
            if existing:
                logger.info(f"Inbound message {message_id} already stored")
                return existing

            inbound = WhatsAppMessage(
                message_id=message_id,
                direction=MessageDirection.INBOUND,
                from_number=sender,
                to_number=phone_number_id or settings.WHATSAPP_PHONE_NUMBER_ID or "",
                message_type=message_type,
                content=content,
                status="received",
                message_metadata=message_data,
            )
            self.db.add(inbound)
            try:
                self.db.commit()
            except IntegrityError:
                # A concurrent delivery of the same message won the insert
                self.db.rollback()
                return self.db.query(WhatsAppMessage).filter(
                    WhatsAppMessage.message_id == message_id
                ).first()

            self.db.refresh(inbound)
            return inbound

        except Exception as e:
            self.db.rollback()
            logger.error(
                f"WhatsApp handle incoming message exception: {str(e)}",
                extra={"data": message_data},
            )
            return None

    def update_message_status(self, status_data: Dict[str, Any]) -> Optional[WhatsAppMessage]:
        """Apply a delivery status callback; unknown or missing ids are ignored"""
        message_id = status_data.get("id")
        status = status_data.get("status")
        if not message_id or not status:
            return None

        message = self.db.query(WhatsAppMessage).filter(
            WhatsAppMessage.message_id == message_id
        ).first()
        if not message:
            return None

        message.status = status
        self.db.commit()
        logger.info(f"Message status updated: {message_id} -> {status}")
        return message

    def close(self):
        if self._owns_client:
            self.http_client.close()
