# autoreply/services/business/business_service.py
"""Service for tenant WhatsApp connection management"""
import logging
import secrets
from typing import Optional

from sqlalchemy.orm import Session

from autoreply.models.business import Business, WhatsAppStatus
from autoreply.utils.dates import utcnow

logger = logging.getLogger(__name__)


class BusinessService:
    """Connects and disconnects tenants from the WhatsApp Cloud API"""

    @staticmethod
    def get_business(db: Session, business_id: int) -> Optional[Business]:
        return db.query(Business).filter(Business.id == business_id).first()

    @staticmethod
    def create_business(db: Session, name: str, timezone: Optional[str] = None) -> Business:
        business = Business(name=name, timezone=timezone)
        db.add(business)
        db.commit()
        db.refresh(business)
        logger.info(f"Created business {business.id}: {name}")
        return business

    @staticmethod
    def connect_whatsapp(
            db: Session,
            business: Business,
            phone_number_id: str,
            access_token: str,
            app_secret: Optional[str] = None,
            verify_token: Optional[str] = None,
            waba_id: Optional[str] = None,
            display_phone_number: Optional[str] = None,
    ) -> Business:
        """Store encrypted credentials and mark the tenant connected"""
        business.phone_number_id = phone_number_id
        business.set_access_token(access_token)
        if app_secret:
            business.set_app_secret(app_secret)
        business.webhook_verify_token = verify_token or secrets.token_urlsafe(24)
        business.waba_id = waba_id
        business.display_phone_number = display_phone_number
        business.wa_status = WhatsAppStatus.CONNECTED
        business.connected_at = utcnow()

        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(business)

        logger.info(
            f"WhatsApp connected for business {business.id}",
            extra={"phone_number_id": phone_number_id},
        )
        return business

    @staticmethod
    def disconnect_whatsapp(db: Session, business: Business) -> Business:
        """Drop credentials; the tenant stops receiving routed messages"""
        business.wa_status = WhatsAppStatus.DISABLED
        business.waba_id = None
        business.phone_number_id = None
        business.wa_access_token = None
        business.meta_app_secret = None
        business.display_phone_number = None
        business.webhook_verify_token = None
        business.connected_at = None
        db.commit()
        db.refresh(business)

        logger.info(f"WhatsApp disconnected for business {business.id}")
        return business
