"""
Shared utility functions for parsing and data manipulation

Provides common helpers for:
- String parsing: Environment variable conversion (parse_bool, parse_int, parse_float)
- Hostname sanitization for MQTT topic bases
- Coordinate rounding for cache keys
- Ordered de-duplication of identifier lists
"""

from __future__ import annotations

from collections.abc import Iterable


def sanitize_hostname(hostname: str) -> str:
    """Convert hostnames to topic-safe identifiers."""
    return hostname.lower().replace("-", "_").replace(".", "_")


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Interpret env-style booleans."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_int(value: str | None, default: int) -> int:
    """Best-effort int parser with fallback."""
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_float(value: str | None, default: float) -> float:
    """Best-effort float parser with fallback."""
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def coordinate_key(latitude: float, longitude: float, digits: int = 3) -> str:
    """Round a coordinate pair into a stable string key (3 digits is roughly 100 m)."""
    return f"{latitude:.{digits}f},{longitude:.{digits}f}"


def unique_ordered(values: Iterable[str]) -> list[str]:
    """Drop duplicates and empty strings while keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if not value or value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result
