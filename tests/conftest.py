"""Shared fixtures."""

from __future__ import annotations

import base64

import pytest

from totpkeep.models import CredentialForm
from totpkeep.registry import CredentialStore, MemoryKeyValueStore, Registry

# RFC 6238 appendix B keys (ASCII) and their Base32 encodings
RFC_KEY_SHA1 = b"12345678901234567890"
RFC_KEY_SHA256 = b"12345678901234567890123456789012"
RFC_KEY_SHA512 = b"1234567890" * 6 + b"1234"

RFC_SECRET_SHA1 = base64.b32encode(RFC_KEY_SHA1).decode()
RFC_SECRET_SHA256 = base64.b32encode(RFC_KEY_SHA256).decode()
RFC_SECRET_SHA512 = base64.b32encode(RFC_KEY_SHA512).decode()


@pytest.fixture
def registry() -> Registry:
    return Registry(MemoryKeyValueStore())


@pytest.fixture
def store(registry: Registry) -> CredentialStore:
    return CredentialStore(registry)


@pytest.fixture
def github_form() -> CredentialForm:
    return CredentialForm(name="GitHub", secret=RFC_SECRET_SHA1, issuer="GitHub")
