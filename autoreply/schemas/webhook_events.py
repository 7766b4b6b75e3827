from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class ChangeMetadata(BaseModel):
    """Routing metadata attached to every change"""
    model_config = ConfigDict(extra="allow")

    phone_number_id: Optional[str] = Field(None, description="Business phone number the event belongs to")
    display_phone_number: Optional[str] = Field(None, description="Human readable business number")


class ChangeValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    messaging_product: Optional[str] = Field(None, description="Always 'whatsapp'")
    metadata: Optional[ChangeMetadata] = None
    # Kept as raw dicts so one malformed message does not reject the whole batch
    messages: Optional[List[Dict[str, Any]]] = Field(None, description="Inbound customer messages")
    statuses: Optional[List[Dict[str, Any]]] = Field(None, description="Delivery status updates")

    @property
    def phone_number_id(self) -> Optional[str]:
        return self.metadata.phone_number_id if self.metadata else None


class WebhookChange(BaseModel):
    model_config = ConfigDict(extra="allow")

    field: Optional[str] = Field(None, description="Subscribed field, only 'messages' is handled")
    value: ChangeValue = Field(default_factory=ChangeValue)


class WebhookEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = Field(None, description="WhatsApp Business Account id")
    changes: List[WebhookChange] = Field(default_factory=list)


class WhatsAppWebhookPayload(BaseModel):
    """WhatsApp Cloud API webhook envelope"""
    model_config = ConfigDict(extra="allow")

    object: Optional[str] = Field(None, description="Always 'whatsapp_business_account'")
    entry: List[WebhookEntry] = Field(default_factory=list)

    def first_phone_number_id(self) -> Optional[str]:
        """Phone number id of the first change, used to pick the signing secret"""
        for entry in self.entry:
            for change in entry.changes:
                if change.value.phone_number_id:
                    return change.value.phone_number_id
        return None


class InboundTextMessage(BaseModel):
    """The fields the reply pipeline needs from one inbound message"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., description="Provider message id (wamid)")
    from_: str = Field(..., alias="from", description="Customer phone number")
    type: str = Field(..., description="text, image, video, audio, document, ...")
    text: Optional[Dict[str, Any]] = None

    @property
    def body(self) -> str:
        return (self.text or {}).get("body") or ""


class MessageStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = Field(None, description="Provider message id")
    status: Optional[str] = Field(None, description="sent, delivered, read, failed")
    recipient_id: Optional[str] = None
