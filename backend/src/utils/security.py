import logging

from cryptography.fernet import Fernet, InvalidToken

from backend.src.core.config import settings

logger = logging.getLogger(__name__)

class SecurityUtils:
    @staticmethod
    def get_cipher():
        return Fernet(settings.ENCRYPTION_KEY.encode())

    @staticmethod
    def encrypt(data: str | None) -> str | None:
        # NULL stays NULL so "never connected" survives a round trip
        if data is None: return None
        cipher = SecurityUtils.get_cipher()
        return cipher.encrypt(data.encode()).decode()

    @staticmethod
    def decrypt(token: str | None) -> str | None:
        if token is None: return None
        cipher = SecurityUtils.get_cipher()
        try:
            return cipher.decrypt(token.encode()).decode()
        except InvalidToken as e:
            logger.error("🔐 Decryption failed: stored secret does not match ENCRYPTION_KEY")
            raise ValueError("Invalid Key or Corrupted Data") from e
