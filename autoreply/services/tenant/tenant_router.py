# autoreply/services/tenant/tenant_router.py
"""Maps WhatsApp phone_number_id values to Business tenants"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from autoreply.models.business import Business, WhatsAppStatus

logger = logging.getLogger(__name__)


class TenantRouter:
    """Read-only tenant lookups. Safe to share across requests."""

    def __init__(self, db: Session):
        self.db = db

    def get_business_by_phone_number_id(self, phone_number_id: Optional[str]) -> Optional[Business]:
        """Connected business whose phone_number_id matches"""
        if not phone_number_id:
            return None

        business = self.db.query(Business).filter(
            Business.phone_number_id == phone_number_id,
            Business.wa_status == WhatsAppStatus.CONNECTED,
        ).first()

        if not business:
            logger.warning(
                "Unknown phone_number_id in webhook",
                extra={"phone_number_id": phone_number_id},
            )

        return business

    def get_business_by_phone_number_id_with_fallback(self, phone_number_id: Optional[str]) -> Optional[Business]:
        """
        Multi-tenant lookup first, then the first onboarded business.

        The fallback keeps single-tenant deployments (one business, global
        WhatsApp credentials) working without any phone_number_id set up.
        """
        business = self.get_business_by_phone_number_id(phone_number_id)
        if business:
            return business

        fallback_business = self.db.query(Business).filter(
            Business.is_onboarded.is_(True)
        ).order_by(Business.id.asc()).first()

        if fallback_business:
            logger.info(
                f"Using fallback business {fallback_business.id} for single-tenant mode",
                extra={"phone_number_id": phone_number_id},
            )

        return fallback_business

    def get_business_by_verify_token(self, verify_token: Optional[str]) -> Optional[Business]:
        """Tenant whose webhook verify token matches (used by the GET handshake)"""
        if not verify_token:
            return None
        return self.db.query(Business).filter(
            Business.webhook_verify_token == verify_token
        ).first()
