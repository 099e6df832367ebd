"""Composition root wiring location, sun times, cache, scheduler and action routing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Protocol

from sunrise.cache import CacheResult, SunTimeCache, TTLValue
from sunrise.config import SunriseConfig
from sunrise.datetime_utils import local_now
from sunrise.errors import LocationPermissionError, NetworkError, ParseError, SunriseError
from sunrise.models import Location, Settings, SunTimesBundle, WeatherBundle
from sunrise.mqtt import MqttBridge
from sunrise.providers import OpenMeteoClient, astral_sun_bundle
from sunrise.storage import (
    JsonFileStore,
    KeyValueStore,
    load_has_onboarded,
    load_settings,
    save_has_onboarded,
    save_settings,
)
from sunrise.sun_position import SunDetails, altitude, sun_details

from .actions import ActionRouter
from .notifications import LocalNotificationService, NotificationService
from .scheduler import AlarmScheduler

LOGGER = logging.getLogger("sunrise.app")

LOCATION_OFF_LABEL = "Location Off"
FALLBACK_LOCATION_LABEL = "Your Location"


class LocationProvider(Protocol):
    async def get_current_coordinates(self) -> tuple[float, float]: ...

    async def reverse_geocode(self, latitude: float, longitude: float) -> str | None: ...


class ForecastProvider(Protocol):
    async def fetch_sun_times(self, location: Location) -> SunTimesBundle: ...

    async def fetch_weather_bundle(self, location: Location) -> WeatherBundle: ...

    async def fetch_air_quality(self, location: Location) -> int | None: ...


@dataclass(slots=True)
class AppState:
    location: Location
    alarm_enabled: bool = False
    sun_times: SunTimesBundle | None = None
    has_onboarded: bool = False
    loading: bool = False
    last_error: str | None = None


class SunriseApp:
    """Owns every long-lived collaborator; call start() once and shutdown() on exit."""

    def __init__(
        self,
        config: SunriseConfig,
        *,
        store: KeyValueStore | None = None,
        notifications: NotificationService | None = None,
        providers: ForecastProvider | None = None,
        location_provider: LocationProvider | None = None,
        tz: tzinfo | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.logger = logger or LOGGER
        self.store = store or JsonFileStore(config.store_path)
        self.notifications = notifications or LocalNotificationService(
            storage_path=config.notifications_path,
            allow_permission=config.alarm.notifications_allowed,
            mqtt=MqttBridge(config.mqtt),
        )
        self._owns_providers = providers is None
        self.providers = providers or OpenMeteoClient(config.providers)
        self.location_provider = location_provider
        self.tz = tz or local_now().tzinfo
        self.cache = SunTimeCache(self.store, default_ttl=config.cache_ttl_seconds)
        self.scheduler = AlarmScheduler(self.store, self.notifications, config=config.alarm)
        self.router = ActionRouter(self.notifications, self.scheduler)
        self.state = AppState(location=config.default_location)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> AppState:
        if isinstance(self.notifications, LocalNotificationService):
            await self.notifications.start()
        self.router.register(on_stop=self._handle_stop, on_snooze=self._handle_snooze)
        return await self.hydrate()

    async def shutdown(self) -> None:
        self.router.unregister()
        if isinstance(self.notifications, LocalNotificationService):
            await self.notifications.stop()
        if self._owns_providers and isinstance(self.providers, OpenMeteoClient):
            await self.providers.close()

    async def hydrate(self) -> AppState:
        """Restore settings, load sun times and re-arm the alarm if it was enabled."""
        self.state.loading = True
        self.state.last_error = None
        try:
            self.state.has_onboarded = await load_has_onboarded(self.store)
            saved = await load_settings(self.store)
            if saved:
                self.state.location = saved.location
                self.state.alarm_enabled = saved.alarm_enabled
            bundle = await self.refresh_sun_times(self.state.location)
            if self.state.alarm_enabled:
                await self.scheduler.ensure_permissions()
                await self.scheduler.schedule(bundle.tomorrow.sunrise)
        except SunriseError as exc:
            self.state.last_error = str(exc)
            self.logger.warning("[app] Failed to load: %s", exc)
        finally:
            self.state.loading = False
        return self.state

    async def complete_onboarding(self) -> None:
        await save_has_onboarded(self.store, True)
        self.state.has_onboarded = True

    # ========================================================================
    # Sun times
    # ========================================================================

    async def refresh_sun_times(self, location: Location) -> SunTimesBundle:
        try:
            bundle = await self.providers.fetch_sun_times(location)
        except (NetworkError, ParseError) as exc:
            fallback = astral_sun_bundle(location, local_now().astimezone(self.tz).date(), self.tz)
            if fallback is None:
                raise
            self.logger.info("[app] Using computed sun times for %s: %s", location.label, exc)
            bundle = fallback
        self.state.sun_times = bundle
        return bundle

    def sun_details(self) -> SunDetails | None:
        if self.state.sun_times is None:
            return None
        return sun_details(self.state.sun_times.tomorrow)

    def current_altitude(self, now: datetime | None = None) -> float | None:
        bundle = self.state.sun_times
        if bundle is None:
            return None
        moment = now or local_now()
        return altitude(moment, bundle.today.sunrise, bundle.today.sunset, bundle.tomorrow.sunrise)

    # ========================================================================
    # Alarm toggle and location
    # ========================================================================

    async def toggle_alarm(self) -> bool:
        """Flip the alarm; on failure the previous state is restored and the error re-raised."""
        bundle = self.state.sun_times
        if bundle is None:
            raise SunriseError("Sunrise Unavailable: wait for the sunrise time to load, then try again.")
        previous = self.state.alarm_enabled
        enabled = not previous
        self.state.alarm_enabled = enabled
        try:
            if enabled:
                await self.scheduler.ensure_permissions()
                await self.scheduler.schedule(bundle.tomorrow.sunrise)
            else:
                await self.scheduler.cancel()
            await save_settings(self.store, Settings(alarm_enabled=enabled, location=self.state.location))
        except Exception:
            self.state.alarm_enabled = previous
            raise
        return enabled

    async def set_location(self, location: Location) -> SunTimesBundle:
        self.state.location = location
        bundle = await self.refresh_sun_times(location)
        if self.state.alarm_enabled:
            await self.scheduler.ensure_permissions()
            await self.scheduler.schedule(bundle.tomorrow.sunrise)
        await save_settings(self.store, Settings(alarm_enabled=self.state.alarm_enabled, location=location))
        return bundle

    async def use_current_location(self) -> Location | None:
        if self.location_provider is None:
            return None
        try:
            latitude, longitude = await self.location_provider.get_current_coordinates()
        except LocationPermissionError:
            self.state.location = self.state.location.with_label(LOCATION_OFF_LABEL)
            self.logger.info("[app] Location permission denied; keeping %s", self.state.location)
            return None
        label = FALLBACK_LOCATION_LABEL
        try:
            label = await self.location_provider.reverse_geocode(latitude, longitude) or FALLBACK_LOCATION_LABEL
        except Exception:
            self.logger.debug("[app] Reverse geocode failed", exc_info=True)
        location = Location(latitude=latitude, longitude=longitude, label=label)
        await self.set_location(location)
        return location

    # ========================================================================
    # Weather
    # ========================================================================

    async def weather(self, ttl: TTLValue | None = None, *, force: bool = False) -> CacheResult:
        """Serve fresh cache hits; otherwise fetch, falling back to stale data on failure."""
        location = self.state.location
        cached = await self.cache.get(location, ttl)
        if cached.is_fresh and not force:
            return cached
        try:
            bundle = await self.providers.fetch_weather_bundle(location)
        except (NetworkError, ParseError) as exc:
            if cached.hit:
                self.logger.warning("[app] Weather refresh failed, serving cached data: %s", exc)
                return cached
            raise
        try:
            air_quality = await self.providers.fetch_air_quality(location)
        except (NetworkError, ParseError) as exc:
            self.logger.debug("[app] Air quality unavailable: %s", exc)
            air_quality = None
        await self.cache.put(location, bundle, air_quality)
        return CacheResult(bundle=bundle, air_quality=air_quality, is_fresh=True)

    # ========================================================================
    # Action callbacks
    # ========================================================================

    async def _handle_stop(self) -> None:
        self.logger.info("[app] Alarm stopped")
        if not self.state.alarm_enabled:
            return
        try:
            bundle = await self.refresh_sun_times(self.state.location)
            if bundle.tomorrow.sunrise > local_now():
                await self.scheduler.schedule(bundle.tomorrow.sunrise)
        except SunriseError as exc:
            self.state.last_error = str(exc)
            self.logger.warning("[app] Could not re-arm alarm after stop: %s", exc)

    def _handle_snooze(self, minutes: int) -> None:
        self.logger.info("[app] Alarm snoozed for %d min", minutes)
