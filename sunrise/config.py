"""Configuration helpers for the sunrise alarm service."""

from __future__ import annotations

import os
import socket
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from .models import DEFAULT_LOCATION, Location
from .utils import parse_bool, parse_float, parse_int, sanitize_hostname

DEFAULT_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
DEFAULT_AIR_QUALITY_URL = "https://air-quality-api.open-meteo.com/v1/air-quality"
DEFAULT_STATE_DIR = Path("~/.local/state/sunrise-alarm")

TemperatureUnit = Literal["fahrenheit", "celsius"]


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _parse_temperature_unit(value: str | None) -> TemperatureUnit:
    lowered = (value or "").strip().lower()
    if lowered in {"c", "celsius", "metric"}:
        return "celsius"
    return "fahrenheit"


def _parse_location(source: Mapping[str, str]) -> Location:
    latitude = parse_float(source.get("SUNRISE_LATITUDE"), DEFAULT_LOCATION.latitude)
    longitude = parse_float(source.get("SUNRISE_LONGITUDE"), DEFAULT_LOCATION.longitude)
    label = _strip_or_none(source.get("SUNRISE_LOCATION_LABEL"))
    try:
        return Location(latitude=latitude, longitude=longitude, label=label or DEFAULT_LOCATION.label)
    except ValueError:
        return DEFAULT_LOCATION


@dataclass(frozen=True)
class MqttConfig:
    host: str | None
    port: int
    username: str | None
    password: str | None
    tls_enabled: bool
    cert: str | None
    key: str | None
    ca_cert: str | None
    topic_base: str


@dataclass(frozen=True)
class ProviderConfig:
    forecast_url: str
    air_quality_url: str
    temperature_unit: TemperatureUnit
    timeout: float


@dataclass(frozen=True)
class AlarmConfig:
    snooze_minutes: int
    notifications_allowed: bool
    title: str
    body: str


@dataclass(frozen=True)
class SunriseConfig:
    hostname: str
    state_dir: Path
    default_location: Location
    cache_ttl_seconds: int
    alarm: AlarmConfig
    providers: ProviderConfig
    mqtt: MqttConfig

    @property
    def store_path(self) -> Path:
        return self.state_dir / "store.json"

    @property
    def notifications_path(self) -> Path:
        return self.state_dir / "notifications.json"

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> SunriseConfig:
        source = env if env is not None else os.environ
        hostname = source.get("SUNRISE_HOSTNAME") or socket.gethostname()

        state_dir = Path(source.get("SUNRISE_STATE_DIR") or DEFAULT_STATE_DIR).expanduser()

        alarm = AlarmConfig(
            snooze_minutes=max(1, parse_int(source.get("SUNRISE_SNOOZE_MINUTES"), 10)),
            notifications_allowed=parse_bool(source.get("SUNRISE_NOTIFICATIONS_ALLOWED"), True),
            title=source.get("SUNRISE_ALARM_TITLE") or "Sunrise Alarm",
            body=source.get("SUNRISE_ALARM_BODY") or "Good morning, the sun is up",
        )

        providers = ProviderConfig(
            forecast_url=source.get("SUNRISE_FORECAST_URL") or DEFAULT_FORECAST_URL,
            air_quality_url=source.get("SUNRISE_AIR_QUALITY_URL") or DEFAULT_AIR_QUALITY_URL,
            temperature_unit=_parse_temperature_unit(source.get("SUNRISE_TEMPERATURE_UNIT")),
            timeout=max(1.0, parse_float(source.get("SUNRISE_HTTP_TIMEOUT"), 10.0)),
        )

        topic_base = source.get("SUNRISE_TOPIC_BASE") or f"sunrise/{sanitize_hostname(hostname)}"
        mqtt = MqttConfig(
            host=_strip_or_none(source.get("MQTT_HOST")),
            port=parse_int(source.get("MQTT_PORT"), 1883),
            username=_strip_or_none(source.get("MQTT_USER") or source.get("MQTT_USERNAME")),
            password=_strip_or_none(source.get("MQTT_PASS") or source.get("MQTT_PASSWORD")),
            tls_enabled=parse_bool(source.get("MQTT_TLS_ENABLED"), False),
            cert=_strip_or_none(source.get("MQTT_CERT")),
            key=_strip_or_none(source.get("MQTT_KEY")),
            ca_cert=_strip_or_none(source.get("MQTT_CA_CERT")),
            topic_base=topic_base.rstrip("/"),
        )

        return SunriseConfig(
            hostname=hostname,
            state_dir=state_dir,
            default_location=_parse_location(source),
            cache_ttl_seconds=max(1, parse_int(source.get("SUNRISE_CACHE_TTL_SECONDS"), 300)),
            alarm=alarm,
            providers=providers,
            mqtt=mqtt,
        )
