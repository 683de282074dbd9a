"""Symmetric encryption for gateway credentials stored at rest."""

import os
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class SecretCodec:
    """Fernet codec for gateway secret, webhook and public keys.

    The key comes from the ``GATEWAY_ENCRYPTION_KEY`` environment variable
    unless passed explicitly. Plaintext values are never logged.
    """

    def __init__(self, key: Optional[str] = None):
        key = key or os.getenv("GATEWAY_ENCRYPTION_KEY")
        if not key:
            raise ValueError(
                "GATEWAY_ENCRYPTION_KEY must be provided either as argument or environment variable"
            )
        self._cipher = Fernet(key.encode() if isinstance(key, str) else key)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: Optional[str]) -> str:
        if not plaintext:
            return ""
        return self._cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: Optional[str]) -> str:
        """Decrypt a stored value.

        Returns an empty string for empty input or a token that does not
        decrypt with the configured key, which callers treat the same as an
        absent credential.
        """
        if not ciphertext:
            return ""
        try:
            return self._cipher.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.warning("Stored gateway credential could not be decrypted")
            return ""
