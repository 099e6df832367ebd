"""Sunrise, weather and air-quality sources.

Open-Meteo is the primary source for all three. Sun times can also be
computed offline with astral when the network is unavailable.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import Any

import httpx
from astral import LocationInfo
from astral.sun import sun

from .config import ProviderConfig
from .datetime_utils import parse_provider_time, utc_now
from .errors import NetworkError, ParseError
from .models import (
    CurrentConditions,
    DailyForecast,
    Location,
    SunTimes,
    SunTimesBundle,
    WeatherBundle,
    WeatherDetails,
    normalize_forecast,
)

LOGGER = logging.getLogger("sunrise.providers")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _offset(payload: dict[str, Any]) -> int | None:
    value = payload.get("utc_offset_seconds")
    return int(value) if _is_number(value) else None


def parse_sun_times(payload: dict[str, Any]) -> SunTimesBundle:
    """Build today/tomorrow sun times from a ``daily=sunrise,sunset`` response.

    Index 0 is today and index 1 tomorrow. Either both days parse or the whole
    response is rejected.
    """
    daily = payload.get("daily") if isinstance(payload, dict) else None
    if not isinstance(daily, dict):
        raise ParseError("Sunrise/sunset data missing from API response")
    sunrises = daily.get("sunrise")
    sunsets = daily.get("sunset")
    if not isinstance(sunrises, list) or not isinstance(sunsets, list) or len(sunrises) < 2 or len(sunsets) < 2:
        raise ParseError("Sunrise/sunset data missing from API response")
    offset = _offset(payload)
    try:
        days = [
            SunTimes(
                sunrise=parse_provider_time(sunrises[index], offset),
                sunset=parse_provider_time(sunsets[index], offset),
            )
            for index in (0, 1)
        ]
    except (TypeError, ValueError) as exc:
        raise ParseError(f"Failed to parse sunrise/sunset time: {exc}") from exc
    return SunTimesBundle(today=days[0], tomorrow=days[1])


def _floor_to_hour(value: str) -> str | None:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed.replace(minute=0, second=0, microsecond=0).strftime("%Y-%m-%dT%H:00")


def _precip_at_current_hour(payload: dict[str, Any]) -> float | None:
    hourly = payload.get("hourly") or {}
    times = hourly.get("time")
    chances = hourly.get("precipitation_probability")
    if not isinstance(times, list) or not isinstance(chances, list) or not times:
        return None
    current_time = (payload.get("current_weather") or {}).get("time")
    index = -1
    if isinstance(current_time, str):
        if current_time in times:
            index = times.index(current_time)
        else:
            floored = _floor_to_hour(current_time)
            if floored in times:
                index = times.index(floored)
    selected = index if index >= 0 else 0
    if selected >= len(chances):
        return None
    candidate = chances[selected]
    return float(candidate) if _is_number(candidate) else None


def parse_weather_bundle(payload: dict[str, Any], *, fetched_at: datetime | None = None) -> WeatherBundle:
    """Combine current, daily and hourly sections of one forecast response."""
    if not isinstance(payload, dict):
        raise ParseError("Weather response is not an object")
    current_weather = payload.get("current_weather") or {}
    current_units = payload.get("current_weather_units") or payload.get("current_units") or {}
    temperature = current_weather.get("temperature")
    if not _is_number(temperature):
        raise ParseError("Current temperature missing from API response")

    code = current_weather.get("weathercode")
    is_day = current_weather.get("is_day")
    current = CurrentConditions(
        temperature=float(temperature),
        unit=current_units.get("temperature") or current_units.get("temperature_2m"),
        condition_code=int(code) if _is_number(code) else None,
        is_daytime=(is_day == 1) if _is_number(is_day) else None,
    )

    daily = payload.get("daily") or {}
    dates = daily.get("time")
    highs = daily.get("temperature_2m_max")
    lows = daily.get("temperature_2m_min")
    if not isinstance(dates, list) or not isinstance(highs, list) or not isinstance(lows, list):
        raise ParseError("Forecast missing from API response")
    daily_units = payload.get("daily_units") or {}
    daily_unit = daily_units.get("temperature_2m_max") or daily_units.get("temperature_2m_min")
    forecast: list[DailyForecast] = []
    for day, high, low in zip(dates, highs, lows, strict=False):
        if not isinstance(day, str) or not _is_number(high) or not _is_number(low):
            continue
        forecast.append(DailyForecast(date=day, temp_min=float(low), temp_max=float(high), unit=daily_unit))

    wind = current_weather.get("windspeed")
    details = WeatherDetails(
        precip_probability=_precip_at_current_hour(payload),
        wind_speed=float(wind) if _is_number(wind) else None,
        wind_unit=current_units.get("windspeed"),
    )
    return WeatherBundle(
        current=current,
        forecast=normalize_forecast(forecast),
        details=details,
        fetched_at=fetched_at or utc_now(),
    )


def parse_air_quality(payload: dict[str, Any]) -> int | None:
    current = payload.get("current") if isinstance(payload, dict) else None
    value = (current or {}).get("us_aqi")
    return int(value) if _is_number(value) else None


class OpenMeteoClient:
    """Async Open-Meteo client raising typed network/parse failures."""

    def __init__(self, config: ProviderConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, url: str, params: dict[str, Any], *, label: str) -> dict[str, Any]:
        try:
            response = await self._client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkError(f"{label} API failed ({exc.response.status_code})") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"{label} API request failed: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(f"{label} API returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise ParseError(f"{label} API returned unexpected payload")
        return payload

    async def fetch_sun_times(self, location: Location) -> SunTimesBundle:
        params = {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "daily": "sunrise,sunset",
            "timezone": "auto",
        }
        payload = await self._get_json(self.config.forecast_url, params, label="Sunrise")
        return parse_sun_times(payload)

    async def fetch_weather_bundle(self, location: Location) -> WeatherBundle:
        params = {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "current_weather": "true",
            "daily": "temperature_2m_max,temperature_2m_min",
            "hourly": "precipitation_probability",
            "forecast_days": 7,
            "forecast_hours": 24,
            "temperature_unit": self.config.temperature_unit,
            "timezone": "auto",
        }
        payload = await self._get_json(self.config.forecast_url, params, label="Weather")
        return parse_weather_bundle(payload)

    async def fetch_air_quality(self, location: Location) -> int | None:
        params = {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "current": "us_aqi",
            "timezone": "auto",
        }
        payload = await self._get_json(self.config.air_quality_url, params, label="Air quality")
        return parse_air_quality(payload)


def astral_sun_times(location: Location, day: date, tz: tzinfo) -> SunTimes | None:
    """Compute sunrise/sunset locally; None on polar day or night."""
    info = LocationInfo(latitude=location.latitude, longitude=location.longitude)
    try:
        sun_data = sun(info.observer, date=day, tzinfo=tz)
    except ValueError:
        LOGGER.debug("No sunrise/sunset for %s on %s", location.label, day)
        return None
    times = SunTimes(sunrise=sun_data["sunrise"], sunset=sun_data["sunset"])
    return times if times.is_valid else None


def astral_sun_bundle(location: Location, today: date, tz: tzinfo) -> SunTimesBundle | None:
    first = astral_sun_times(location, today, tz)
    second = astral_sun_times(location, today + timedelta(days=1), tz)
    if first is None or second is None:
        return None
    return SunTimesBundle(today=first, tomorrow=second)
