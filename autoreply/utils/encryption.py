# autoreply/utils/encryption.py
"""Fernet encryption for tenant secrets stored in the database"""
from typing import Optional

from cryptography.fernet import Fernet

from autoreply.config.settings import get_settings


def get_cipher() -> Fernet:
    """Cipher for ENCRYPTION_KEY (generate one with Fernet.generate_key())"""
    key = get_settings().ENCRYPTION_KEY
    if not key:
        raise RuntimeError("ENCRYPTION_KEY is not configured")
    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    return get_cipher().encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: Optional[str]) -> Optional[str]:
    """Raises cryptography.fernet.InvalidToken if the key changed"""
    if not encrypted_token:
        return None
    return get_cipher().decrypt(encrypted_token.encode()).decode()
