# autoreply/services/whatsapp/credential_store.py
"""Resolves per-tenant WhatsApp credentials, falling back to global settings"""
from typing import Optional

from autoreply.config.settings import Settings, get_settings
from autoreply.models.business import Business
from autoreply.utils.encryption import decrypt_token


class CredentialStore:
    """
    Secrets stay encrypted on the Business row and are decrypted here,
    at the point of use, one value at a time.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def access_token_for(self, business: Optional[Business] = None) -> str:
        token = decrypt_token(business.wa_access_token) if business is not None else None
        return token or self.settings.WHATSAPP_ACCESS_TOKEN

    def app_secret_for(self, business: Optional[Business] = None) -> str:
        secret = decrypt_token(business.meta_app_secret) if business is not None else None
        return secret or self.settings.WHATSAPP_APP_SECRET

    def phone_number_id_for(self, business: Optional[Business] = None) -> str:
        phone_number_id = business.phone_number_id if business is not None else None
        return phone_number_id or self.settings.WHATSAPP_PHONE_NUMBER_ID

    def matches_global_verify_token(self, token: Optional[str]) -> bool:
        return bool(token) and token == self.settings.WHATSAPP_VERIFY_TOKEN
