"""
Supplier credential encryption/decryption.
The stored blob is opaque to the routing engine; only adapters read it.
"""
import json
import base64
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from app.config import settings
from app.models import Supplier

logger = logging.getLogger(__name__)


def get_encryption_key() -> bytes:
    """Derive a Fernet key from ENCRYPTION_KEY (padded/truncated to 32 bytes)"""
    key_bytes = settings.ENCRYPTION_KEY.encode()[:32].ljust(32, b"0")
    return base64.urlsafe_b64encode(key_bytes)


def encrypt_token(token: str) -> str:
    return Fernet(get_encryption_key()).encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    return Fernet(get_encryption_key()).decrypt(encrypted.encode()).decode()


def set_supplier_credentials(supplier: Supplier, creds: dict[str, Any]) -> None:
    supplier.credentials_encrypted = encrypt_token(json.dumps(creds))


def get_supplier_credentials(supplier: Supplier) -> dict[str, Any]:
    """Decrypted credential dict for the supplier, or {} when unset or unreadable."""
    if not supplier.credentials_encrypted:
        return {}
    try:
        dec = decrypt_token(supplier.credentials_encrypted)
    except InvalidToken:
        logger.error("Credentials for supplier %s could not be decrypted", supplier.name)
        return {}
    if dec.strip().startswith("{"):
        return json.loads(dec)
    return {"apiKey": dec}
