"""Base32 secret handling for TOTP credentials."""

from __future__ import annotations

import base64
import binascii
import re

import pyotp

from totpkeep.errors import InvalidParameterError, InvalidSecretError

BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"

_BASE32_RE = re.compile(r"^[A-Z2-7]+$")
# Unpadded lengths (mod 8) that no byte string encodes to
_IMPOSSIBLE_REMAINDERS = {1, 3, 6}


def normalize_secret(secret: str) -> str:
    """Remove whitespace and padding and uppercase a user-entered secret."""
    return "".join(secret.split()).upper().rstrip("=")


def decode_secret(secret: str) -> bytes:
    """Decode a Base32 secret into the raw HMAC key.

    Accepts lowercase input, grouping spaces and missing or partial padding.
    """
    if not isinstance(secret, str):
        raise InvalidSecretError("Secret must be a string")
    # str.upper() maps some non-ASCII letters into the alphabet ("ß" -> "SS")
    if not secret.isascii():
        raise InvalidSecretError("Secret contains characters outside the Base32 alphabet")
    normalized = normalize_secret(secret)
    if not normalized:
        raise InvalidSecretError("Secret is empty")
    if not _BASE32_RE.match(normalized):
        raise InvalidSecretError("Secret contains characters outside the Base32 alphabet")
    if len(normalized) % 8 in _IMPOSSIBLE_REMAINDERS:
        raise InvalidSecretError(f"Secret length {len(normalized)} is not a valid Base32 length")

    padded = normalized + "=" * (-len(normalized) % 8)
    try:
        key = base64.b32decode(padded)
    except binascii.Error as e:
        raise InvalidSecretError(f"Secret is not valid Base32: {e}") from e
    if not key:
        raise InvalidSecretError("Secret decodes to zero bytes")
    return key


def generate_secret(length: int = 32) -> str:
    """Generate a new random Base32 secret (32 chars = 160 bits by default)."""
    if length % 8 in _IMPOSSIBLE_REMAINDERS:
        raise InvalidParameterError(f"{length} is not a valid Base32 length")
    try:
        return pyotp.random_base32(length)
    except ValueError as e:
        raise InvalidParameterError(str(e)) from e
