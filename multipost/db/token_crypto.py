import structlog
from cryptography.fernet import Fernet, InvalidToken
from multipost.config import settings

logger = structlog.get_logger(__name__)

def _fernet() -> Fernet:
    if not settings.fernet_key:
        raise RuntimeError("FERNET_KEY is missing in .env")
    return Fernet(settings.fernet_key.encode())

def encrypt_token(plain: str) -> str:
    return _fernet().encrypt(plain.encode()).decode()

def decrypt_token(cipher: str) -> str:
    try:
        return _fernet().decrypt(cipher.encode()).decode()
    except (TypeError, InvalidToken) as e:
        # never log the cipher text itself
        logger.error("token_decrypt_failed", error_type=type(e).__name__)
        raise
