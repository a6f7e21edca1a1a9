"""Encryption of per-professional gateway credentials at rest"""

import base64
import hashlib
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from ...config import SECRET_KEY

logger = logging.getLogger(__name__)

# Fernet needs 32 url-safe base64 bytes; derive them from the app secret
cipher_suite = Fernet(base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest()))


def encrypt_credential(credential: str) -> str:
    """Encrypt a credential for storage"""
    return cipher_suite.encrypt(credential.encode()).decode()


def decrypt_credential(encrypted_credential: Optional[str]) -> Optional[str]:
    """Decrypt a stored credential, returning None when it cannot be read"""
    if not encrypted_credential:
        return None
    try:
        return cipher_suite.decrypt(encrypted_credential.encode()).decode()
    except InvalidToken:
        logger.error("❌ Failed to decrypt gateway credential (SECRET_KEY changed?)")
        return None
