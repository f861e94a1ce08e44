"""
Encryption utilities for stored BigCommerce credentials.

Tokens are encrypted with AES-GCM using a key derived from ENCRYPTION_KEY
via HKDF-SHA256. Ciphertexts are versioned:

    ENC:v1:<base64(nonce || ciphertext || tag)>

Values without the prefix are treated as legacy plaintext and returned as-is
by decrypt_token.
"""

import base64
import os
from functools import lru_cache

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from catalog_pilot.config import settings

_PREFIX = "ENC:v1:"
_NONCE_SIZE = 12
_KEY_SIZE = 32


@lru_cache()
def _get_key() -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=_KEY_SIZE,
        salt=None,
        info=b"catalog-pilot-token-encryption",
    )
    return hkdf.derive(settings.encryption_key.encode("utf-8"))


def encrypt_token(token: str) -> str:
    """
    Encrypt an access token for storage.

    Args:
        token: Plain text token

    Returns:
        Encrypted token string
    """
    if not token:
        return token
    if token.startswith(_PREFIX):
        return token

    nonce = os.urandom(_NONCE_SIZE)
    ciphertext = AESGCM(_get_key()).encrypt(nonce, token.encode("utf-8"), None)
    blob = base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")
    return f"{_PREFIX}{blob}"


def decrypt_token(encrypted_token: str) -> str:
    """
    Decrypt an access token from storage.

    Args:
        encrypted_token: Encrypted token string

    Returns:
        Plain text token
    """
    if not encrypted_token or not encrypted_token.startswith(_PREFIX):
        return encrypted_token

    raw = base64.urlsafe_b64decode(encrypted_token[len(_PREFIX):].encode("ascii"))
    nonce, ciphertext = raw[:_NONCE_SIZE], raw[_NONCE_SIZE:]
    return AESGCM(_get_key()).decrypt(nonce, ciphertext, None).decode("utf-8")


def mask_token(token: str, visible: int = 4) -> str:
    """Mask all but the last few characters of a secret."""
    if not token:
        return ""
    if len(token) <= visible:
        return "*" * len(token)
    return "*" * (len(token) - visible) + token[-visible:]


__all__ = [
    "encrypt_token",
    "decrypt_token",
    "mask_token",
]
