"""Tests for Open-Meteo parsing, the HTTP client and the astral fallback (sunrise/providers.py)."""

from __future__ import annotations

import json
from datetime import UTC, date, timedelta
from zoneinfo import ZoneInfo

import httpx
import pytest

from sunrise.config import SunriseConfig
from sunrise.errors import NetworkError, ParseError
from sunrise.models import Location
from sunrise.providers import (
    OpenMeteoClient,
    astral_sun_bundle,
    astral_sun_times,
    parse_air_quality,
    parse_sun_times,
    parse_weather_bundle,
)

SUN_PAYLOAD = {
    "utc_offset_seconds": -25200,
    "daily": {
        "time": ["2025-06-21", "2025-06-22"],
        "sunrise": ["2025-06-21T05:48", "2025-06-22T05:48"],
        "sunset": ["2025-06-21T20:35", "2025-06-22T20:35"],
    },
}

WEATHER_PAYLOAD = {
    "current_weather": {"time": "2025-06-21T14:15", "temperature": 68.4, "windspeed": 12.3, "weathercode": 2, "is_day": 1},
    "current_weather_units": {"temperature": "°F", "windspeed": "mp/h"},
    "daily": {
        "time": ["2025-06-22", "2025-06-21", "2025-06-22"],
        "temperature_2m_max": [75.0, 72.0, 99.0],
        "temperature_2m_min": [58.0, 55.0, 11.0],
    },
    "daily_units": {"temperature_2m_max": "°F"},
    "hourly": {
        "time": ["2025-06-21T13:00", "2025-06-21T14:00", "2025-06-21T15:00"],
        "precipitation_probability": [5, 20, 40],
    },
}


@pytest.fixture
def provider_config():
    return SunriseConfig.from_env({"SUNRISE_HOSTNAME": "test"}).providers


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def test_parse_sun_times_applies_offset():
    bundle = parse_sun_times(SUN_PAYLOAD)

    assert bundle.today.sunrise.utcoffset() == timedelta(hours=-7)
    assert (bundle.today.sunrise.hour, bundle.today.sunrise.minute) == (5, 48)
    assert bundle.tomorrow.sunrise.date() == date(2025, 6, 22)


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"daily": {"sunrise": ["2025-06-21T05:48"], "sunset": ["2025-06-21T20:35"]}},
        {"daily": {"sunrise": ["bad", "bad"], "sunset": ["bad", "bad"]}},
        {"daily": {"sunrise": ["2025-06-21T20:35", "2025-06-22T05:48"], "sunset": ["2025-06-21T05:48", "2025-06-22T20:35"]}},
    ],
)
def test_parse_sun_times_rejects_incomplete_payloads(payload):
    with pytest.raises(ParseError):
        parse_sun_times(payload)


def test_parse_weather_bundle():
    bundle = parse_weather_bundle(WEATHER_PAYLOAD)

    assert bundle.current.temperature == 68.4
    assert bundle.current.unit == "°F"
    assert bundle.current.condition_code == 2
    assert bundle.current.is_daytime is True
    assert [day.date for day in bundle.forecast] == ["2025-06-21", "2025-06-22"]
    assert bundle.forecast[1].temp_max == 75.0
    assert bundle.details.precip_probability == 20.0
    assert bundle.details.wind_speed == 12.3
    assert bundle.details.wind_unit == "mp/h"


def test_precipitation_uses_exact_hour_when_present():
    payload = json.loads(json.dumps(WEATHER_PAYLOAD))
    payload["current_weather"]["time"] = "2025-06-21T15:00"
    assert parse_weather_bundle(payload).details.precip_probability == 40.0


def test_precipitation_falls_back_to_first_hour():
    payload = json.loads(json.dumps(WEATHER_PAYLOAD))
    payload["current_weather"]["time"] = "2025-06-23T09:00"
    assert parse_weather_bundle(payload).details.precip_probability == 5.0


def test_parse_weather_bundle_requires_temperature():
    payload = json.loads(json.dumps(WEATHER_PAYLOAD))
    del payload["current_weather"]["temperature"]
    with pytest.raises(ParseError):
        parse_weather_bundle(payload)


def test_parse_air_quality():
    assert parse_air_quality({"current": {"us_aqi": 42}}) == 42
    assert parse_air_quality({"current": {}}) is None
    assert parse_air_quality({}) is None


# ---------------------------------------------------------------------------
# OpenMeteoClient
# ---------------------------------------------------------------------------


def _client(provider_config, handler) -> OpenMeteoClient:
    return OpenMeteoClient(provider_config, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.anyio
async def test_fetch_sun_times_requests_daily_sun_data(provider_config, location):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=SUN_PAYLOAD)

    client = _client(provider_config, handler)
    bundle = await client.fetch_sun_times(location)

    assert bundle.today.sunrise < bundle.today.sunset
    params = seen[0].url.params
    assert params["daily"] == "sunrise,sunset"
    assert params["timezone"] == "auto"
    assert float(params["latitude"]) == location.latitude


@pytest.mark.anyio
async def test_fetch_weather_and_air_quality(provider_config, location):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host.startswith("air-quality"):
            return httpx.Response(200, json={"current": {"us_aqi": 31}})
        assert request.url.params["temperature_unit"] == "fahrenheit"
        return httpx.Response(200, json=WEATHER_PAYLOAD)

    client = _client(provider_config, handler)

    assert (await client.fetch_weather_bundle(location)).current.temperature == 68.4
    assert await client.fetch_air_quality(location) == 31


@pytest.mark.anyio
async def test_http_status_failure_is_network_error(provider_config, location):
    client = _client(provider_config, lambda request: httpx.Response(503))

    with pytest.raises(NetworkError, match=r"Sunrise API failed \(503\)"):
        await client.fetch_sun_times(location)


@pytest.mark.anyio
async def test_transport_failure_is_network_error(provider_config, location):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(NetworkError):
        await _client(provider_config, handler).fetch_weather_bundle(location)


@pytest.mark.anyio
async def test_invalid_json_is_parse_error(provider_config, location):
    client = _client(provider_config, lambda request: httpx.Response(200, text="<html>"))

    with pytest.raises(ParseError):
        await client.fetch_air_quality(location)


# ---------------------------------------------------------------------------
# astral fallback
# ---------------------------------------------------------------------------


def test_astral_sun_bundle(location):
    bundle = astral_sun_bundle(location, date(2025, 6, 21), ZoneInfo("America/Los_Angeles"))

    assert bundle is not None
    assert bundle.today.sunrise < bundle.today.sunset
    assert bundle.tomorrow.sunrise.date() == date(2025, 6, 22)


def test_astral_returns_none_during_polar_day():
    svalbard = Location(latitude=78.2232, longitude=15.6267, label="Longyearbyen")
    assert astral_sun_times(svalbard, date(2025, 6, 21), UTC) is None
    assert astral_sun_bundle(svalbard, date(2025, 6, 21), UTC) is None
