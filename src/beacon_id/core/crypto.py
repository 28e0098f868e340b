"""
Encryption at rest for wallet credentials.

NWC connect URIs carry a spending secret, so they are only ever stored as
Fernet tokens and decrypted on load.
"""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from beacon_id.core.exceptions import ConfigurationError


def _derive_fernet_key(secret: str) -> bytes:
    """Accept a ready Fernet key, or stretch any passphrase into one."""
    raw = secret.encode("utf-8")
    try:
        if len(base64.urlsafe_b64decode(raw)) == 32:
            return raw
    except ValueError:
        pass
    return base64.urlsafe_b64encode(hashlib.sha256(raw).digest())


class SecretCipher:
    """Symmetric cipher for credentials stored in the wallet table."""

    def __init__(self, key: str) -> None:
        if not key:
            raise ConfigurationError("Encryption key is required to store wallet credentials")
        self._fernet = Fernet(_derive_fernet_key(key))

    @staticmethod
    def generate_key() -> str:
        """Generate a new random key suitable for BEACON_ENCRYPTION_KEY."""
        return Fernet.generate_key().decode("ascii")

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            raise ConfigurationError("Stored wallet credential could not be decrypted") from e
