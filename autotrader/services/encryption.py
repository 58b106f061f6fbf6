"""Fernet symmetric encryption for stored exchange keys."""

from cryptography.fernet import Fernet, InvalidToken

from autotrader.config import settings
from autotrader.engine.errors import ConfigurationError

_fernet: Fernet | None = None


def _get_fernet() -> Fernet:
    global _fernet
    if _fernet is None:
        key = settings.encryption_key
        if not key:
            raise ConfigurationError(
                "AT_ENCRYPTION_KEY not set. Generate one with: "
                "python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
            )
        _fernet = Fernet(key.encode() if isinstance(key, str) else key)
    return _fernet


def encrypt(plaintext: str) -> str:
    """Encrypt a string and return base64-encoded ciphertext."""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str) -> str:
    """Decrypt a base64-encoded ciphertext; a wrong key is a configuration problem."""
    try:
        return _get_fernet().decrypt(ciphertext.encode()).decode()
    except InvalidToken as e:
        raise ConfigurationError("Stored exchange keys cannot be decrypted with AT_ENCRYPTION_KEY") from e
