"""Async key/value persistence plus settings and onboarding records.

Values are opaque strings. ``JsonFileStore`` keeps every key in one JSON file
and replaces it atomically on each write, so a single ``set`` or ``remove`` is
never observed half-written.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Protocol

from .errors import StorageError
from .models import Settings

LOGGER = logging.getLogger("sunrise.storage")

SETTINGS_KEY = "sunriseAlarm.settings"
ONBOARDED_KEY = "sunriseAlarm.hasOnboarded"


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store; nothing survives a restart."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.values[key] = value

    async def remove(self, key: str) -> None:
        self.values.pop(key, None)


class JsonFileStore:
    """Durable store backed by a single JSON object on disk."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise StorageError(f"failed to read {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"unexpected content in {self._path}")
        return {str(key): value for key, value in data.items() if isinstance(value, str)}

    def _write_all(self, values: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(values, indent=2, sort_keys=True), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            raise StorageError(f"failed to write {self._path}: {exc}") from exc

    async def get(self, key: str) -> str | None:
        async with self._lock:
            values = await asyncio.to_thread(self._read_all)
        return values.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            values = await asyncio.to_thread(self._read_all)
            values[key] = value
            await asyncio.to_thread(self._write_all, values)

    async def remove(self, key: str) -> None:
        async with self._lock:
            values = await asyncio.to_thread(self._read_all)
            if key not in values:
                return
            values.pop(key)
            await asyncio.to_thread(self._write_all, values)


async def load_settings(store: KeyValueStore) -> Settings | None:
    raw = await store.get(SETTINGS_KEY)
    if not raw:
        return None
    try:
        payload = json.loads(raw)
        return Settings.from_dict(payload)
    except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError):
        LOGGER.warning("Ignoring unreadable settings record")
        return None


async def save_settings(store: KeyValueStore, settings: Settings) -> None:
    await store.set(SETTINGS_KEY, json.dumps(settings.to_dict()))


async def load_has_onboarded(store: KeyValueStore) -> bool:
    return await store.get(ONBOARDED_KEY) == "true"


async def save_has_onboarded(store: KeyValueStore, value: bool) -> None:
    await store.set(ONBOARDED_KEY, "true" if value else "false")
