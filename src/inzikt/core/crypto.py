"""Fernet encryption helpers for helpdesk credential storage."""

from __future__ import annotations

import base64
import hashlib
import json
import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

_fernet: Fernet | None = None


def _get_fernet() -> Fernet:
    """Get or create a Fernet instance derived from SECRET_KEY."""
    global _fernet  # noqa: PLW0603
    if _fernet is None:
        from inzikt.config import get_settings

        secret = get_settings().secret_key
        key = hashlib.pbkdf2_hmac("sha256", secret.encode(), b"inzikt-integrations", 100_000)
        _fernet = Fernet(base64.urlsafe_b64encode(key[:32]))
    return _fernet


def encrypt_credentials(data: dict) -> str:
    return _get_fernet().encrypt(json.dumps(data).encode()).decode()


def decrypt_credentials(ciphertext: str) -> dict:
    try:
        return json.loads(_get_fernet().decrypt(ciphertext.encode()))
    except (InvalidToken, json.JSONDecodeError) as exc:
        logger.error("Failed to decrypt integration credentials: %s", type(exc).__name__)
        raise ValueError("Invalid or corrupted credential data") from exc


def mask_credentials(data: dict, visible: int = 4) -> dict:
    """Mask every string value, keeping the last ``visible`` characters.

    ``{"api_token": "abcdefgh"}`` becomes ``{"api_token": "****efgh"}``. Short
    values are masked entirely.
    """
    masked = {}
    for key, value in data.items():
        if not isinstance(value, str):
            masked[key] = value
        elif len(value) <= visible:
            masked[key] = "*" * len(value)
        else:
            masked[key] = "*" * (len(value) - visible) + value[-visible:]
    return masked


def reset_fernet() -> None:
    """Reset cached Fernet instance (for testing)."""
    global _fernet  # noqa: PLW0603
    _fernet = None
