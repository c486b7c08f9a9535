"""Password encryption utilities using Fernet symmetric encryption."""

import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from loguru import logger


class PasswordEncryption:
    """Handles account password encryption and decryption using Fernet."""

    def __init__(self, encryption_key: Optional[str] = None):
        """
        Initialize encryption with key.

        Args:
            encryption_key: Base64-encoded Fernet key. If None, reads ENCRYPTION_KEY.

        Raises:
            ValueError: If encryption key is not provided or invalid
        """
        key = encryption_key or os.getenv("ENCRYPTION_KEY")
        if not key:
            raise ValueError(
                "ENCRYPTION_KEY must be set in environment variables. "
                'Generate one with: python -c "from cryptography.fernet import Fernet; '
                'print(Fernet.generate_key().decode())"'
            )

        try:
            fernet_keys = [Fernet(key.encode())]
            # Old key kept decryptable during key rotation
            old_key = os.getenv("ENCRYPTION_KEY_OLD")
            if old_key:
                fernet_keys.append(Fernet(old_key.encode()))
                logger.info("Old encryption key loaded for key rotation support")
            self.cipher = MultiFernet(fernet_keys)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid ENCRYPTION_KEY: {e}") from e

    def encrypt(self, password: str) -> str:
        """
        Encrypt a plaintext password.

        Args:
            password: Plaintext password

        Returns:
            Fernet token as string
        """
        return self.cipher.encrypt(password.encode()).decode()

    def decrypt(self, token: str) -> str:
        """
        Decrypt a stored password.

        Args:
            token: Fernet token

        Returns:
            Plaintext password

        Raises:
            ValueError: If the token cannot be decrypted with any known key
        """
        try:
            return self.cipher.decrypt(token.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Failed to decrypt password: invalid key or corrupted data") from e
