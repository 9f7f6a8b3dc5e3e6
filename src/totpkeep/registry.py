"""Credential persistence: a key-value store, the registry on top of it, and
the in-memory store object the scheduler and CLI share.

Data flow:
  KeyValueStore (JSON blob per key) -> Registry (list[CredentialConfig],
  secrets optionally encrypted) -> CredentialStore (immutable snapshot tuple)
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter, ValidationError

from totpkeep.crypto import SecretCipher
from totpkeep.errors import CredentialNotFoundError, StorageError
from totpkeep.models import CredentialConfig, CredentialForm

logger = logging.getLogger(__name__)

ENTRIES_KEY = "totp_entries"

_entries_adapter = TypeAdapter(list[CredentialConfig])


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Process-local store, used in tests and for throwaway sessions."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """All keys kept in one JSON object on disk, rewritten atomically."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt data file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Corrupt data file {self.path}: expected a JSON object")
        return data

    def _dump(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)
        logger.debug("Wrote %s to %s", key, self.path)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(key, None) is not None:
                self._dump(data)


class Registry:
    """CRUD over the persisted credential list. Every write persists immediately."""

    def __init__(self, kv: KeyValueStore, *, cipher: SecretCipher | None = None) -> None:
        self._kv = kv
        self._cipher = cipher

    def get_entries(self) -> list[CredentialConfig]:
        raw = self._kv.get(ENTRIES_KEY)
        if not raw:
            return []
        try:
            entries = _entries_adapter.validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"Stored credentials are malformed: {e}") from e
        if self._cipher is not None:
            entries = [e.model_copy(update={"secret": self._cipher.decrypt(e.secret)}) for e in entries]
        return entries

    def save_entries(self, entries: list[CredentialConfig]) -> None:
        if self._cipher is not None:
            entries = [e.model_copy(update={"secret": self._cipher.encrypt(e.secret)}) for e in entries]
        self._kv.set(ENTRIES_KEY, _entries_adapter.dump_json(entries).decode())

    def add_entry(self, config: CredentialConfig) -> None:
        entries = self.get_entries()
        if any(e.id == config.id for e in entries):
            raise ValueError(f"Credential {config.id} already exists")
        entries.append(config)
        self.save_entries(entries)
        logger.info("Added credential %s (%s)", config.id, config.name)

    def update_entry(self, config: CredentialConfig) -> None:
        entries = self.get_entries()
        for i, e in enumerate(entries):
            if e.id == config.id:
                entries[i] = config
                break
        else:
            raise CredentialNotFoundError(config.id)
        self.save_entries(entries)
        logger.info("Updated credential %s", config.id)

    def delete_entry(self, id: str) -> None:
        entries = self.get_entries()
        remaining = [e for e in entries if e.id != id]
        if len(remaining) == len(entries):
            raise CredentialNotFoundError(id)
        self.save_entries(remaining)
        logger.info("Deleted credential %s", id)

    def clear(self) -> None:
        self._kv.delete(ENTRIES_KEY)


class CredentialStore:
    """Explicit app-state handle over the registry.

    Mutations persist first, then swap in a new immutable tuple and return it.
    """

    def __init__(self, registry: Registry) -> None:
        self._registry = registry
        self._entries: tuple[CredentialConfig, ...] = tuple(registry.get_entries())

    @property
    def entries(self) -> tuple[CredentialConfig, ...]:
        return self._entries

    def get(self, id: str) -> CredentialConfig:
        for e in self._entries:
            if e.id == id:
                return e
        raise CredentialNotFoundError(id)

    def find(self, ref: str) -> CredentialConfig:
        """Look up by id, unique id prefix, or exact name."""
        matches = [e for e in self._entries if e.id == ref or e.name == ref]
        if not matches:
            matches = [e for e in self._entries if e.id.startswith(ref)]
        if len(matches) != 1:
            raise CredentialNotFoundError(ref)
        return matches[0]

    def add(self, form: CredentialForm) -> tuple[CredentialConfig, ...]:
        config = form.to_config()
        self._registry.add_entry(config)
        self._entries = (*self._entries, config)
        return self._entries

    def update(self, id: str, form: CredentialForm) -> tuple[CredentialConfig, ...]:
        existing = self.get(id)
        config = form.to_config(id=id, created_at=existing.created_at)
        self._registry.update_entry(config)
        self._entries = tuple(config if e.id == id else e for e in self._entries)
        return self._entries

    def delete(self, id: str) -> tuple[CredentialConfig, ...]:
        self._registry.delete_entry(id)
        self._entries = tuple(e for e in self._entries if e.id != id)
        return self._entries

    def reload(self) -> tuple[CredentialConfig, ...]:
        self._entries = tuple(self._registry.get_entries())
        return self._entries
