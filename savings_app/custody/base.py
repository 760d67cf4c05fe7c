"""Base class for key custody gateways."""

from abc import ABC, abstractmethod


class KeyCustodyGateway(ABC):
    """Encrypts and decrypts signing keys held at rest."""

    @abstractmethod
    def encrypt(self, signing_key: str) -> str:
        """
        Encrypt a signing key for storage.

        Args:
            signing_key: Plaintext signing key

        Returns:
            Opaque encrypted representation safe to persist
        """
        pass

    @abstractmethod
    def decrypt(self, encrypted_key: str) -> str:
        """
        Decrypt a stored signing key.

        Raises:
            DecryptionFailure: If the stored value cannot be decrypted
        """
        pass
