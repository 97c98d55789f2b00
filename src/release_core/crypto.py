"""Symmetric encryption for third-party credentials stored at rest.

Jira API tokens are encrypted with Fernet (AES-128-CBC + HMAC-SHA256)
keyed by the ``ENCRYPTION_KEY`` setting. Generate a key with::

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""
from cryptography.fernet import Fernet

from .config import get_settings


def _get_fernet() -> Fernet:
    """Return a Fernet instance keyed by ENCRYPTION_KEY.

    Raises RuntimeError if the key is not configured.
    """
    raw_key = get_settings().encryption_key
    if not raw_key:
        raise RuntimeError(
            "ENCRYPTION_KEY environment variable is not set. "
            "Generate one with: python -c \""
            "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
        )
    return Fernet(raw_key.encode())


def encrypt_secret(plaintext: str) -> bytes:
    """Encrypt a secret for a LargeBinary column.

    Raises:
        RuntimeError: If ENCRYPTION_KEY is not set.
    """
    return _get_fernet().encrypt(plaintext.encode("utf-8"))


def decrypt_secret(ciphertext: bytes) -> str:
    """Decrypt a value previously returned by encrypt_secret().

    Raises:
        RuntimeError: If ENCRYPTION_KEY is not set.
        cryptography.fernet.InvalidToken: If ciphertext is tampered or
            encrypted with a different key.
    """
    return _get_fernet().decrypt(ciphertext).decode("utf-8")
