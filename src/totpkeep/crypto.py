"""AES-256-GCM encryption for TOTP secrets at rest."""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from totpkeep.config import Settings
from totpkeep.errors import StorageError

_NONCE_SIZE = 12  # 96-bit nonce for AES-GCM
_KEY_SIZE = 32


def generate_master_key() -> str:
    """Generate a new base64-encoded 256-bit master key."""
    return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode()


class SecretCipher:
    """Encrypts individual secrets with a single master key."""

    def __init__(self, key: bytes) -> None:
        if len(key) != _KEY_SIZE:
            raise ValueError("Master key must be 32 bytes")
        self._aead = AESGCM(key)

    @classmethod
    def from_settings(cls, settings: Settings) -> SecretCipher | None:
        raw = settings.master_key
        if not raw:
            return None
        try:
            key = base64.b64decode(raw, validate=True)
        except binascii.Error as e:
            raise ValueError("TOTPKEEP_MASTER_KEY must be base64-encoded") from e
        if len(key) != _KEY_SIZE:
            raise ValueError("TOTPKEEP_MASTER_KEY must be 32 bytes (base64-encoded)")
        return cls(key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string. Returns base64(nonce + ciphertext)."""
        nonce = os.urandom(_NONCE_SIZE)
        ct = self._aead.encrypt(nonce, plaintext.encode(), None)
        return base64.b64encode(nonce + ct).decode()

    def decrypt(self, token: str) -> str:
        """Decrypt a base64(nonce + ciphertext) token back to plaintext."""
        try:
            raw = base64.b64decode(token, validate=True)
        except binascii.Error as e:
            raise StorageError("Stored secret is not a valid ciphertext") from e
        if len(raw) <= _NONCE_SIZE:
            raise StorageError("Stored secret is truncated")
        nonce, ct = raw[:_NONCE_SIZE], raw[_NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, ct, None).decode()
        except InvalidTag as e:
            raise StorageError("Stored secret could not be decrypted (wrong master key?)") from e
