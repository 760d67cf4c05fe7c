"""
Key custody module.

Encrypts signing keys at rest and decrypts them transiently for one
settlement execution.
"""
from .aes_custody import AesGcmKeyCustody
from .base import KeyCustodyGateway

__all__ = ["AesGcmKeyCustody", "KeyCustodyGateway"]
