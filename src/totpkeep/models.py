"""Pydantic models for credentials and their derived display state."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from totpkeep.auth.secret import decode_secret
from totpkeep.errors import InvalidAlgorithmError

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 60
MAX_DIGITS = 10


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


# === Enums ===


class Algorithm(StrEnum):
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @classmethod
    def parse(cls, value: object) -> Algorithm:
        """Convert either external spelling ("SHA1" or "SHA-1") to the enum."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidAlgorithmError(f"Unsupported algorithm: {value!r}")
        token = value.strip().upper().replace("-", "")
        try:
            return cls(token)
        except ValueError:
            raise InvalidAlgorithmError(f"Unsupported algorithm: {value!r}") from None

    @property
    def label(self) -> str:
        """Hyphenated spelling shown in forms, e.g. "SHA-256"."""
        return f"SHA-{self.value[3:]}"

    @property
    def hash_name(self) -> str:
        return self.value.lower()


class Preset(StrEnum):
    GOOGLE = "Google"
    MICROSOFT = "Microsoft"
    GITHUB = "GitHub"
    OTHER = "Other"


# === Registry models ===


class CredentialConfig(BaseModel):
    """A stored TOTP credential.

    The algorithm is normalized when it is recognised. Unknown algorithm
    tokens and out-of-range digits or period are kept as stored, so one bad
    imported entry does not make the whole list unreadable; the engine rejects
    them for that credential only.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    secret: str
    issuer: str | None = None
    algorithm: Algorithm | str = Field(default=Algorithm.SHA1, union_mode="left_to_right")
    digits: int = 6
    period: int = 30
    created_at: int = Field(default_factory=_now_ms)
    updated_at: int = Field(default_factory=_now_ms)

    @field_validator("algorithm", mode="before")
    @classmethod
    def _parse_algorithm(cls, v: object) -> Algorithm | str:
        try:
            return Algorithm.parse(v)
        except InvalidAlgorithmError:
            if not isinstance(v, str):
                raise
            logger.warning("Keeping unsupported algorithm %r as stored", v)
            return v

    @property
    def algorithm_label(self) -> str:
        if isinstance(self.algorithm, Algorithm):
            return self.algorithm.label
        return self.algorithm


class CredentialForm(BaseModel):
    """User input for adding or editing a credential."""

    preset: Preset = Preset.OTHER
    name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)
    secret: str
    issuer: str | None = None
    algorithm: Algorithm = Algorithm.SHA1
    digits: int = Field(default=6, ge=6, le=MAX_DIGITS)
    period: int = Field(default=30, ge=1)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("secret")
    @classmethod
    def _check_secret(cls, v: str) -> str:
        decode_secret(v)
        return v

    @field_validator("algorithm", mode="before")
    @classmethod
    def _parse_algorithm(cls, v: object) -> Algorithm:
        return Algorithm.parse(v)

    @classmethod
    def from_preset(cls, preset: Preset | str, name: str, secret: str, **overrides: object) -> CredentialForm:
        """Build a form with algorithm, digits and period taken from a preset."""
        from totpkeep.config import load_presets

        preset = Preset(preset)
        values: dict[str, object] = dict(load_presets().get(preset.value, {}))
        values.update(overrides)
        return cls(preset=preset, name=name, secret=secret, **values)

    def to_config(self, id: str | None = None, created_at: int | None = None) -> CredentialConfig:
        fields = self.model_dump(exclude={"preset"})
        if id is not None:
            fields["id"] = id
        if created_at is not None:
            fields["created_at"] = created_at
        return CredentialConfig(**fields)


# === Derived state (never persisted) ===


@dataclass
class DerivedState:
    """Per-credential overlay produced by the scheduler."""

    code: str = ""
    is_running: bool = False
    progress: float = 0.0  # elapsed fraction of the current step, [0, 1)
    seconds_remaining: int = 0
    counter: int | None = None
    error: str | None = None
