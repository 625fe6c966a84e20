# backend/app/core/encryption.py
"""
Field-level encryption for credentials stored in the directory database.

Payloads are Fernet tokens (AES-128-CBC + HMAC-SHA256) prefixed with a
format version, e.g. ``v1:gAAAAAB...``.
"""

from functools import lru_cache
from typing import Optional
import base64

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.core.config import settings
from app.core.logging import logger

PAYLOAD_VERSION = "v1"


class EncryptionService:
    """Encrypt sensitive database fields"""

    def __init__(self, master_key: Optional[str] = None, salt: Optional[str] = None):
        # Derive key from master key + salt
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=(salt or settings.ENCRYPTION_SALT).encode(),
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(
            (master_key or settings.ENCRYPTION_KEY).encode()
        ))
        self.cipher = Fernet(key)

    def encrypt(self, data: str) -> str:
        """Encrypt sensitive data"""
        token = self.cipher.encrypt(data.encode()).decode()
        return f"{PAYLOAD_VERSION}:{token}"

    def decrypt(self, encrypted_data: Optional[str]) -> Optional[str]:
        """Decrypt sensitive data; None for empty, unknown or tampered payloads"""
        if not encrypted_data:
            return None

        version, sep, token = encrypted_data.partition(":")
        if not sep or version != PAYLOAD_VERSION:
            logger.warning("Unsupported encrypted payload format")
            return None

        try:
            return self.cipher.decrypt(token.encode()).decode()
        except InvalidToken:
            logger.warning("Failed to decrypt payload (invalid token)")
            return None


def mask_secret(value: Optional[str]) -> Optional[str]:
    """Reveal at most the first and last four characters, and never half of a short secret"""
    if not value:
        return None
    if len(value) <= 8:
        return "***"
    if len(value) < 16:
        return f"{value[:2]}***{value[-2:]}"
    return f"{value[:4]}***{value[-4:]}"


@lru_cache()
def get_encryption_service() -> EncryptionService:
    return EncryptionService()
