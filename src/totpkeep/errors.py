"""Error taxonomy shared by the engine, scheduler and registry."""

from __future__ import annotations


class TotpError(ValueError):
    """Base class for every error raised while deriving a code."""


class InvalidSecretError(TotpError):
    """The secret is empty or is not valid Base32."""


class InvalidAlgorithmError(TotpError):
    """The hash algorithm is not one of SHA1, SHA256 or SHA512."""


class InvalidParameterError(TotpError):
    """digits, period or the time instant is out of range."""


class CredentialNotFoundError(KeyError):
    """No credential with the given id exists in the store."""


class StorageError(RuntimeError):
    """The persisted credential list could not be read back."""
