"""Builders for WhatsApp Cloud API webhook payloads."""
import hashlib
import hmac
import itertools

_message_ids = itertools.count(1)


def text_message(body, sender="60123456789", message_id=None):
    return {
        "from": sender,
        "id": message_id or f"wamid.in.{next(_message_ids)}",
        "timestamp": "1707500000",
        "type": "text",
        "text": {"body": body},
    }


def image_message(sender="60123456789", message_id=None, caption=None):
    return {
        "from": sender,
        "id": message_id or f"wamid.in.{next(_message_ids)}",
        "timestamp": "1707500000",
        "type": "image",
        "image": {"id": "media-1", "mime_type": "image/jpeg", "caption": caption},
    }


def webhook_payload(messages=None, phone_number_id="global-phone-id", statuses=None):
    value = {
        "messaging_product": "whatsapp",
        "metadata": {"display_phone_number": "60300000000", "phone_number_id": phone_number_id},
    }
    if messages is not None:
        value["messages"] = messages
    if statuses is not None:
        value["statuses"] = statuses
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "waba-1", "changes": [{"field": "messages", "value": value}]}],
    }


def sign(raw_body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
