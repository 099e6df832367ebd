"""Tests for the app composition root (sunrise/alarm/app.py)."""

from __future__ import annotations

import json
from datetime import UTC
from unittest.mock import AsyncMock, Mock
from zoneinfo import ZoneInfo

import pytest

from sunrise.alarm import app as app_module
from sunrise.alarm.app import FALLBACK_LOCATION_LABEL, LOCATION_OFF_LABEL, SunriseApp
from sunrise.alarm.notifications import NotificationResponse
from sunrise.alarm.scheduler import ALARM_MARKER, ALARM_MARKER_KEY, IDS_KEY
from sunrise.errors import LocationPermissionError, NetworkError, NotificationPermissionError, SunriseError
from sunrise.models import Location, Settings
from sunrise.storage import SETTINGS_KEY, load_settings, save_settings

pytestmark = pytest.mark.anyio

LONDON = Location(latitude=51.5072, longitude=-0.1276, label="London")


@pytest.fixture
def providers(sun_bundle, make_weather_bundle):
    providers = Mock()
    providers.fetch_sun_times = AsyncMock(return_value=sun_bundle)
    providers.fetch_weather_bundle = AsyncMock(return_value=make_weather_bundle())
    providers.fetch_air_quality = AsyncMock(return_value=25)
    return providers


@pytest.fixture
def app(config, store, notifications, providers):
    return SunriseApp(config, store=store, notifications=notifications, providers=providers, tz=UTC)


def _tracked_ids(store) -> list[str]:
    raw = store.values.get(IDS_KEY)
    return json.loads(raw)["ids"] if raw else []


# ---------------------------------------------------------------------------
# Hydrate
# ---------------------------------------------------------------------------


class TestHydrate:
    async def test_first_launch_uses_default_location(self, app, config, notifications, sun_bundle):
        state = await app.start()

        assert state.location == config.default_location
        assert state.sun_times == sun_bundle
        assert state.alarm_enabled is False
        assert state.loading is False
        assert notifications.scheduled == {}
        assert app.router.registered
        assert state.has_onboarded is False

    async def test_enabled_alarm_is_rearmed(self, app, store, notifications, sun_bundle):
        await save_settings(store, Settings(alarm_enabled=True, location=LONDON))

        state = await app.start()

        assert state.location == LONDON
        [(content, trigger)] = notifications.scheduled.values()
        assert trigger == sun_bundle.tomorrow.sunrise
        assert _tracked_ids(store) == list(notifications.scheduled)

    async def test_onboarding_flag_survives_restart(self, app, config, store, notifications, providers):
        await app.start()
        await app.complete_onboarding()

        restarted = SunriseApp(config, store=store, notifications=notifications, providers=providers, tz=UTC)

        assert (await restarted.hydrate()).has_onboarded is True

    async def test_restart_replaces_armed_alarm(self, app, config, store, notifications, providers, sun_bundle):
        await app.start()
        await app.toggle_alarm()
        [previous] = _tracked_ids(store)
        await app.shutdown()

        restarted = SunriseApp(config, store=store, notifications=notifications, providers=providers, tz=UTC)
        await restarted.start()

        [current] = _tracked_ids(store)
        assert current != previous
        assert previous in notifications.cancelled
        assert len(notifications.scheduled) == 1
        assert notifications.scheduled[current][1] == sun_bundle.tomorrow.sunrise

    async def test_load_failure_is_reported(self, app, providers, monkeypatch):
        providers.fetch_sun_times.side_effect = NetworkError("Sunrise API failed (500)")
        monkeypatch.setattr(app_module, "astral_sun_bundle", lambda *args: None)

        state = await app.hydrate()

        assert state.sun_times is None
        assert state.last_error == "Sunrise API failed (500)"
        assert state.loading is False

    async def test_offline_sun_times_are_computed(self, config, store, notifications, providers):
        providers.fetch_sun_times.side_effect = NetworkError("offline")
        app = SunriseApp(
            config,
            store=store,
            notifications=notifications,
            providers=providers,
            tz=ZoneInfo("America/Los_Angeles"),
        )

        state = await app.hydrate()

        assert state.last_error is None
        assert state.sun_times is not None
        assert state.sun_times.today.sunrise < state.sun_times.today.sunset


# ---------------------------------------------------------------------------
# Toggle and location
# ---------------------------------------------------------------------------


class TestToggle:
    async def test_toggle_on_then_off(self, app, store, notifications, sun_bundle):
        await app.start()

        assert await app.toggle_alarm() is True
        assert len(_tracked_ids(store)) == 1
        assert (await load_settings(store)).alarm_enabled is True

        assert await app.toggle_alarm() is False
        assert IDS_KEY not in store.values
        assert (await load_settings(store)).alarm_enabled is False

    async def test_toggle_reverts_when_permission_denied(self, app, store, notifications):
        await app.start()
        notifications.permission = "undetermined"
        notifications.grant = False

        with pytest.raises(NotificationPermissionError):
            await app.toggle_alarm()

        assert app.state.alarm_enabled is False
        assert SETTINGS_KEY not in store.values
        assert IDS_KEY not in store.values

    async def test_toggle_requires_sun_times(self, app):
        with pytest.raises(SunriseError):
            await app.toggle_alarm()
        assert app.state.alarm_enabled is False

    async def test_set_location_reschedules_enabled_alarm(self, app, store, notifications, providers):
        await app.start()
        await app.toggle_alarm()
        first_ids = _tracked_ids(store)

        await app.set_location(LONDON)

        providers.fetch_sun_times.assert_awaited_with(LONDON)
        assert _tracked_ids(store) != first_ids
        assert len(_tracked_ids(store)) == 1
        assert (await load_settings(store)).location == LONDON


class TestCurrentLocation:
    async def test_permission_denied_marks_location_off(self, app):
        app.location_provider = Mock()
        app.location_provider.get_current_coordinates = AsyncMock(side_effect=LocationPermissionError("denied"))

        assert await app.use_current_location() is None
        assert app.state.location.label == LOCATION_OFF_LABEL

    async def test_reverse_geocode_result_is_used(self, app):
        app.location_provider = Mock()
        app.location_provider.get_current_coordinates = AsyncMock(return_value=(51.5072, -0.1276))
        app.location_provider.reverse_geocode = AsyncMock(return_value="London")

        location = await app.use_current_location()

        assert location == LONDON
        assert app.state.location == LONDON

    @pytest.mark.parametrize("geocode", [AsyncMock(return_value=None), AsyncMock(side_effect=RuntimeError("x"))])
    async def test_reverse_geocode_fallback_label(self, app, geocode):
        app.location_provider = Mock()
        app.location_provider.get_current_coordinates = AsyncMock(return_value=(51.5072, -0.1276))
        app.location_provider.reverse_geocode = geocode

        location = await app.use_current_location()

        assert location.label == FALLBACK_LOCATION_LABEL

    async def test_without_provider_nothing_changes(self, app, config):
        assert await app.use_current_location() is None
        assert app.state.location == config.default_location


# ---------------------------------------------------------------------------
# Weather
# ---------------------------------------------------------------------------


class TestWeather:
    async def test_fetches_and_caches(self, app, providers):
        first = await app.weather()
        second = await app.weather()

        assert first.is_fresh and first.air_quality == 25
        assert second.is_fresh
        providers.fetch_weather_bundle.assert_awaited_once()

    async def test_force_refresh_skips_fresh_cache(self, app, providers):
        await app.weather()
        await app.weather(force=True)

        assert providers.fetch_weather_bundle.await_count == 2

    async def test_serves_stale_data_when_fetch_fails(self, app, providers):
        await app.weather()
        providers.fetch_weather_bundle.side_effect = NetworkError("offline")

        result = await app.weather(ttl=0)

        assert result.hit
        assert not result.is_fresh
        assert result.air_quality == 25

    async def test_fetch_failure_without_cache_raises(self, app, providers):
        providers.fetch_weather_bundle.side_effect = NetworkError("offline")

        with pytest.raises(NetworkError):
            await app.weather()

    async def test_air_quality_failure_is_tolerated(self, app, providers):
        providers.fetch_air_quality.side_effect = NetworkError("Air quality API failed (502)")

        result = await app.weather()

        assert result.is_fresh
        assert result.air_quality is None


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class TestActions:
    async def test_stop_rearms_for_next_sunrise(self, app, store, notifications, sun_bundle):
        await save_settings(store, Settings(alarm_enabled=True, location=LONDON))
        await app.start()
        [armed] = _tracked_ids(store)

        await notifications.emit(
            NotificationResponse(
                notification_id=armed,
                action_identifier="STOP_ALARM",
                data={ALARM_MARKER_KEY: ALARM_MARKER},
            )
        )

        [rearmed] = _tracked_ids(store)
        assert rearmed != armed
        assert armed in notifications.cancelled
        assert notifications.scheduled[rearmed][1] == sun_bundle.tomorrow.sunrise

    async def test_stop_with_alarm_disabled_leaves_nothing_armed(self, app, store, notifications):
        await app.start()
        await app.toggle_alarm()
        await app.toggle_alarm()

        await notifications.emit(
            NotificationResponse(notification_id="old", action_identifier="STOP_ALARM", data={ALARM_MARKER_KEY: ALARM_MARKER})
        )

        assert IDS_KEY not in store.values

    async def test_snooze_keeps_primary_alarm(self, app, store, notifications):
        await save_settings(store, Settings(alarm_enabled=True, location=LONDON))
        await app.start()
        [armed] = _tracked_ids(store)

        await notifications.emit(
            NotificationResponse(notification_id=armed, action_identifier="SNOOZE_10", data={ALARM_MARKER_KEY: ALARM_MARKER})
        )

        ids = _tracked_ids(store)
        assert ids[0] == armed
        assert len(ids) == 2

    async def test_shutdown_releases_router(self, app, notifications):
        await app.start()
        await app.shutdown()

        assert notifications.listeners == []
