"""Value types for locations, sun times, weather bundles and settings."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from .datetime_utils import deserialize_dt, serialize_dt, utc_now
from .errors import ParseError


def _optional_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


@dataclass(frozen=True, slots=True)
class Location:
    latitude: float
    longitude: float
    label: str

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")

    def with_label(self, label: str) -> Location:
        return replace(self, label=label)

    def to_dict(self) -> dict[str, Any]:
        return {"latitude": self.latitude, "longitude": self.longitude, "label": self.label}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Location:
        return cls(
            latitude=float(payload["latitude"]),
            longitude=float(payload["longitude"]),
            label=str(payload.get("label") or ""),
        )


DEFAULT_LOCATION = Location(latitude=37.7749, longitude=-122.4194, label="San Francisco")


@dataclass(frozen=True, slots=True)
class SunTimes:
    sunrise: datetime
    sunset: datetime

    @property
    def is_valid(self) -> bool:
        return self.sunset > self.sunrise

    def to_dict(self) -> dict[str, Any]:
        return {"sunrise": serialize_dt(self.sunrise), "sunset": serialize_dt(self.sunset)}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> SunTimes:
        sunrise = deserialize_dt(payload.get("sunrise"))
        sunset = deserialize_dt(payload.get("sunset"))
        if sunrise is None or sunset is None:
            raise ParseError("sun times require sunrise and sunset")
        return cls(sunrise=sunrise, sunset=sunset)


@dataclass(frozen=True, slots=True)
class SunTimesBundle:
    today: SunTimes
    tomorrow: SunTimes

    def __post_init__(self) -> None:
        if not self.today.is_valid or not self.tomorrow.is_valid:
            raise ParseError("sunset must be after sunrise for both days")

    def to_dict(self) -> dict[str, Any]:
        return {"today": self.today.to_dict(), "tomorrow": self.tomorrow.to_dict()}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> SunTimesBundle:
        return cls(
            today=SunTimes.from_dict(payload.get("today") or {}),
            tomorrow=SunTimes.from_dict(payload.get("tomorrow") or {}),
        )


@dataclass(frozen=True, slots=True)
class CurrentConditions:
    temperature: float
    unit: str | None = None
    condition_code: int | None = None
    is_daytime: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "temperature": self.temperature,
            "unit": self.unit,
            "condition_code": self.condition_code,
            "is_daytime": self.is_daytime,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> CurrentConditions:
        temperature = _optional_float(payload.get("temperature"))
        if temperature is None:
            raise ParseError("current conditions require a temperature")
        is_daytime = payload.get("is_daytime")
        return cls(
            temperature=temperature,
            unit=_optional_str(payload.get("unit")),
            condition_code=_optional_int(payload.get("condition_code")),
            is_daytime=is_daytime if isinstance(is_daytime, bool) else None,
        )


@dataclass(frozen=True, slots=True)
class DailyForecast:
    date: str
    temp_min: float
    temp_max: float
    unit: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "temp_min": self.temp_min, "temp_max": self.temp_max, "unit": self.unit}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> DailyForecast:
        return cls(
            date=str(payload["date"]),
            temp_min=float(payload["temp_min"]),
            temp_max=float(payload["temp_max"]),
            unit=_optional_str(payload.get("unit")),
        )


@dataclass(frozen=True, slots=True)
class WeatherDetails:
    precip_probability: float | None = None
    wind_speed: float | None = None
    wind_unit: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "precip_probability": self.precip_probability,
            "wind_speed": self.wind_speed,
            "wind_unit": self.wind_unit,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> WeatherDetails:
        if not payload:
            return cls()
        return cls(
            precip_probability=_optional_float(payload.get("precip_probability")),
            wind_speed=_optional_float(payload.get("wind_speed")),
            wind_unit=_optional_str(payload.get("wind_unit")),
        )


def normalize_forecast(days: list[DailyForecast]) -> list[DailyForecast]:
    """Sort forecast days chronologically and keep the first entry per date."""
    by_date: dict[str, DailyForecast] = {}
    for day in days:
        by_date.setdefault(day.date, day)
    return [by_date[key] for key in sorted(by_date)]


@dataclass(frozen=True, slots=True)
class WeatherBundle:
    current: CurrentConditions
    forecast: list[DailyForecast] = field(default_factory=list)
    details: WeatherDetails = field(default_factory=WeatherDetails)
    fetched_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current.to_dict(),
            "forecast": [day.to_dict() for day in self.forecast],
            "details": self.details.to_dict(),
            "fetched_at": serialize_dt(self.fetched_at),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> WeatherBundle:
        current = payload.get("current")
        if not isinstance(current, dict):
            raise ParseError("weather bundle requires current conditions")
        forecast: list[DailyForecast] = []
        for item in payload.get("forecast") or []:
            try:
                forecast.append(DailyForecast.from_dict(item))
            except (KeyError, TypeError, ValueError):
                continue
        return cls(
            current=CurrentConditions.from_dict(current),
            forecast=normalize_forecast(forecast),
            details=WeatherDetails.from_dict(payload.get("details")),
            fetched_at=deserialize_dt(payload.get("fetched_at")) or utc_now(),
        )


@dataclass(frozen=True, slots=True)
class Settings:
    alarm_enabled: bool
    location: Location

    def to_dict(self) -> dict[str, Any]:
        return {"alarm_enabled": self.alarm_enabled, "location": self.location.to_dict()}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Settings:
        location = payload.get("location")
        return cls(
            alarm_enabled=bool(payload.get("alarm_enabled", False)),
            location=Location.from_dict(location) if isinstance(location, dict) else DEFAULT_LOCATION,
        )
