"""AES-256-GCM key custody with a fresh random nonce per encryption."""

import hashlib
import os
from typing import Optional

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import ConfigurationError, DecryptionFailure
from .base import KeyCustodyGateway

NONCE_SIZE = 12
SEPARATOR = ":"

logger = structlog.get_logger(__name__)


class AesGcmKeyCustody(KeyCustodyGateway):
    """
    Authenticated encryption of signing keys.

    The 256-bit key is the SHA-256 digest of the configured secret. Every
    encryption draws a new 96-bit nonce, stored in front of the ciphertext
    as ``<nonce-hex>:<ciphertext-hex>``; nonces are never reused under the
    same key.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ConfigurationError("Key custody secret is empty", field="custody.secret")
        self._aead = AESGCM(hashlib.sha256(secret.encode("utf-8")).digest())

    @classmethod
    def from_env(cls, env_var: str = "SAVINGS_CUSTODY_SECRET") -> "AesGcmKeyCustody":
        """Build the gateway from a secret held in the environment."""
        secret: Optional[str] = os.environ.get(env_var)
        if not secret:
            raise ConfigurationError(
                f"{env_var} is missing",
                field="custody.secret_env_var",
                value=env_var,
            )
        return cls(secret)

    def encrypt(self, signing_key: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, signing_key.encode("utf-8"), None)
        return f"{nonce.hex()}{SEPARATOR}{ciphertext.hex()}"

    def decrypt(self, encrypted_key: str) -> str:
        try:
            nonce_hex, ciphertext_hex = encrypted_key.split(SEPARATOR, 1)
            nonce = bytes.fromhex(nonce_hex)
            if len(nonce) != NONCE_SIZE:
                raise ValueError("unexpected nonce length")
            plaintext = self._aead.decrypt(nonce, bytes.fromhex(ciphertext_hex), None)
            return plaintext.decode("utf-8")
        except (InvalidTag, ValueError, AttributeError) as e:
            logger.error(
                "Signing key decryption failed",
                error_type=type(e).__name__,
            )
            raise DecryptionFailure(
                "Stored signing key could not be decrypted"
            ) from e
