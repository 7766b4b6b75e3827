# autoreply/models/business.py
"""
Business Model - one row per tenant.
WhatsApp credentials are stored Fernet-encrypted and only decrypted on use.
"""
from sqlalchemy import Column, String, Boolean, DateTime, JSON, Text, Integer, Index
from sqlalchemy.sql import func

from autoreply.models.base import Base
from autoreply.utils.encryption import encrypt_token


class WhatsAppStatus:
    PENDING_CONNECT = "pending_connect"
    CONNECTED = "connected"
    DISABLED = "disabled"


class Business(Base):
    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, default="")
    phone_number = Column(String(30), unique=True)  # owner's WhatsApp number

    # Profile collected during onboarding
    services = Column(JSON, default=list)  # [{"name": ..., "price": ...}]
    areas = Column(JSON, default=list)
    operating_hours = Column(JSON, default=dict)  # {"monday": {"open": "09:00", "close": "18:00"}, ...}
    booking_method = Column(Text, default="")
    profile_data = Column(JSON, default=dict)  # raw onboarding answers
    timezone = Column(String(50))

    is_onboarded = Column(Boolean, default=False, nullable=False)
    llm_enabled = Column(Boolean, default=False, nullable=False)

    # WhatsApp Cloud API connection
    waba_id = Column(String(255))
    phone_number_id = Column(String(255), unique=True)
    display_phone_number = Column(String(255))
    wa_access_token = Column(Text)  # encrypted
    webhook_verify_token = Column(String(255))
    wa_status = Column(String(20), default=WhatsAppStatus.PENDING_CONNECT, nullable=False)
    connected_at = Column(DateTime(timezone=True))
    meta_app_id = Column(String(255))
    meta_app_secret = Column(Text)  # encrypted

    # First customer phone to start onboarding for this tenant
    onboarding_phone = Column(String(30))

    # Technical fields
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_businesses_wa_status", "wa_status"),
        Index("ix_businesses_onboarding_phone", "onboarding_phone"),
    )

    def __repr__(self):
        return f"<Business(id={self.id}, name={self.name})>"

    def set_access_token(self, token: str) -> None:
        self.wa_access_token = encrypt_token(token)

    def set_app_secret(self, secret: str) -> None:
        self.meta_app_secret = encrypt_token(secret)

    def is_whatsapp_connected(self) -> bool:
        """Connected and holding the credentials needed to send"""
        return (
            self.wa_status == WhatsAppStatus.CONNECTED
            and bool(self.phone_number_id)
            and bool(self.wa_access_token)
        )

    def can_send_messages(self) -> bool:
        return self.is_whatsapp_connected() and bool(self.is_onboarded)

    def is_onboarding_locked(self) -> bool:
        return bool(self.onboarding_phone)

    def can_onboard(self, phone_number: str) -> bool:
        return not self.is_onboarding_locked() or self.onboarding_phone == phone_number

    def profile_dict(self) -> dict:
        """Profile fields the reply generator and LLM are allowed to use"""
        return {
            "business_name": self.name,
            "services": self.services or [],
            "areas": self.areas or [],
            "operating_hours": self.operating_hours or {},
            "booking_method": self.booking_method or "",
        }

    def to_dict(self):
        """Convert to dictionary for API responses (never includes secrets)"""
        return {
            "id": self.id,
            "name": self.name,
            "phone_number": self.phone_number,
            "services": self.services,
            "areas": self.areas,
            "operating_hours": self.operating_hours,
            "booking_method": self.booking_method,
            "is_onboarded": self.is_onboarded,
            "llm_enabled": self.llm_enabled,
            "phone_number_id": self.phone_number_id,
            "display_phone_number": self.display_phone_number,
            "wa_status": self.wa_status,
            "is_connected": self.is_whatsapp_connected(),
            "onboarding_phone": self.onboarding_phone,
            "connected_at": self.connected_at.isoformat() if self.connected_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
