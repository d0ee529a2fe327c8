"""Security utilities for wearable token encryption."""

from functools import lru_cache

from cryptography.fernet import Fernet

from axle_server.core.config import settings


class TokenEncryption:
    """Encrypt and decrypt OAuth tokens for secure storage."""

    def __init__(self, key: bytes | None = None) -> None:
        """Initialize encryption.

        Args:
            key: Fernet key; defaults to the key from settings
        """
        self.cipher = Fernet(key or settings.get_encryption_key())

    def encrypt(self, token: str) -> str:
        """Encrypt a token for database storage.

        Args:
            token: Plain text token

        Returns:
            Encrypted token (base64 encoded)
        """
        return self.cipher.encrypt(token.encode()).decode()

    def decrypt(self, encrypted_token: str) -> str:
        """Decrypt a token from database.

        Args:
            encrypted_token: Encrypted token (base64 encoded)

        Returns:
            Plain text token
        """
        return self.cipher.decrypt(encrypted_token.encode()).decode()


@lru_cache(maxsize=1)
def get_token_encryption() -> TokenEncryption:
    """Shared encryption instance, created on first use."""
    return TokenEncryption()
