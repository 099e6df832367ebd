"""Two-tier TTL cache for fetched weather bundles.

One slot per tier: an in-process memory slot and a single persistent record.
Entries are keyed by coordinates rounded to three decimals, so GPS jitter
lands on the same entry and switching locations evicts by key mismatch.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from .datetime_utils import deserialize_dt, serialize_dt, utc_now
from .errors import StorageError
from .models import Location, WeatherBundle
from .storage import KeyValueStore
from .utils import coordinate_key

LOGGER = logging.getLogger("sunrise.cache")

CACHE_KEY = "sunriseAlarm.weatherCache.v1"
DEFAULT_TTL = timedelta(minutes=5)

TTLValue = timedelta | float | int


def _now() -> datetime:
    return utc_now()


def _coerce_ttl(value: TTLValue | None, default: timedelta) -> timedelta:
    if value is None:
        return default
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=float(value))


def make_cache_key(location: Location) -> str:
    return coordinate_key(location.latitude, location.longitude)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    fetched_at: datetime
    bundle: WeatherBundle
    air_quality: int | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "fetched_at": serialize_dt(self.fetched_at),
            "bundle": self.bundle.to_dict(),
            "air_quality": self.air_quality,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> CacheEntry:
        key = payload.get("key")
        fetched_at = deserialize_dt(payload.get("fetched_at"))
        bundle = payload.get("bundle")
        if not isinstance(key, str) or fetched_at is None or not isinstance(bundle, dict):
            raise ValueError("incomplete cache entry")
        air_quality = payload.get("air_quality")
        if isinstance(air_quality, bool) or not isinstance(air_quality, (int, float)):
            air_quality = None
        return cls(
            key=key,
            fetched_at=fetched_at,
            bundle=WeatherBundle.from_dict(bundle),
            air_quality=int(air_quality) if air_quality is not None else None,
        )


@dataclass(frozen=True, slots=True)
class CacheResult:
    bundle: WeatherBundle | None
    air_quality: int | None
    is_fresh: bool

    @property
    def hit(self) -> bool:
        return self.bundle is not None


MISS = CacheResult(bundle=None, air_quality=None, is_fresh=False)


class SunTimeCache:
    """Cache fetched weather bundles in memory and in the persistent store."""

    def __init__(self, store: KeyValueStore, *, default_ttl: TTLValue = DEFAULT_TTL) -> None:
        self._store = store
        self._default_ttl = _coerce_ttl(default_ttl, DEFAULT_TTL)
        self._memory: CacheEntry | None = None

    @property
    def default_ttl(self) -> timedelta:
        return self._default_ttl

    def _result(self, entry: CacheEntry, ttl: timedelta) -> CacheResult:
        age = _now() - entry.fetched_at
        return CacheResult(bundle=entry.bundle, air_quality=entry.air_quality, is_fresh=age < ttl)

    async def get(self, location: Location, ttl: TTLValue | None = None) -> CacheResult:
        key = make_cache_key(location)
        window = _coerce_ttl(ttl, self._default_ttl)

        memory = self._memory
        if memory is not None and memory.key == key:
            return self._result(memory, window)

        persisted = await self._read_persistent()
        if persisted is not None and persisted.key == key:
            self._memory = persisted
            return self._result(persisted, window)
        return MISS

    async def put(self, location: Location, bundle: WeatherBundle, air_quality: int | None) -> None:
        entry = CacheEntry(
            key=make_cache_key(location),
            fetched_at=_now(),
            bundle=bundle,
            air_quality=air_quality,
        )
        self._memory = entry
        await self._write_persistent(entry)

    async def clear(self) -> None:
        self._memory = None
        try:
            await self._store.remove(CACHE_KEY)
        except StorageError as exc:
            LOGGER.warning("[cache] Failed to clear persisted weather cache: %s", exc)

    async def _read_persistent(self) -> CacheEntry | None:
        try:
            raw = await self._store.get(CACHE_KEY)
        except StorageError:
            LOGGER.debug("[cache] Persistent cache read failed; treating as miss", exc_info=True)
            return None
        if not raw:
            return None
        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                return None
            return CacheEntry.from_dict(payload)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            LOGGER.debug("[cache] Ignoring malformed persisted cache entry", exc_info=True)
            return None

    async def _write_persistent(self, entry: CacheEntry) -> None:
        try:
            await self._store.set(CACHE_KEY, json.dumps(entry.to_dict()))
        except StorageError as exc:
            LOGGER.warning("[cache] Failed to persist weather cache: %s", exc)
