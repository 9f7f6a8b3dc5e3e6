"""Central configuration loaded from environment variables and YAML files."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from totpkeep.models import Algorithm

PACKAGE_DIR = Path(__file__).resolve().parent
PRESETS_FILE = PACKAGE_DIR / "presets.yaml"
DEFAULT_DATA_DIR = Path.home() / ".totpkeep"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TOTPKEEP_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Storage
    data_file: Path = Field(default_factory=lambda: DEFAULT_DATA_DIR / "entries.json")

    # Encryption (base64 of 32 bytes; empty stores secrets in plaintext)
    master_key: str = ""

    # Scheduler
    tick_interval: float = Field(default=1.0, gt=0)

    # Form defaults
    default_algorithm: Algorithm = Algorithm.SHA1
    default_digits: int = Field(default=6, ge=6, le=10)
    default_period: int = Field(default=30, ge=1)

    # Presets
    presets_file: Path | None = None

    # Logging
    log_level: str = "WARNING"

    @field_validator("default_algorithm", mode="before")
    @classmethod
    def _parse_algorithm(cls, v: object) -> Algorithm:
        return Algorithm.parse(v)


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Preset file must contain a mapping: {path}")
    return data


def load_presets(user_file: Path | None = None) -> dict[str, dict[str, Any]]:
    """Load the built-in presets, overlaid with a user preset file if any."""
    presets = _read_yaml(PRESETS_FILE)
    user_file = user_file or settings.presets_file
    if user_file is not None:
        if not user_file.exists():
            raise FileNotFoundError(f"Preset file not found: {user_file}")
        for name, values in _read_yaml(user_file).items():
            presets[name] = {**presets.get(name, {}), **(values or {})}
    return presets


settings = Settings()
