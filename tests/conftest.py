"""Shared test fixtures and configuration for the sunrise alarm test suite.

This module provides reusable fixtures for common test scenarios including:
- In-memory key/value store
- A recording notification service
- Sun time and weather bundles anchored to the current day
- Configuration objects
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import Mock

import pytest

from sunrise.alarm.notifications import (
    ActionListener,
    ChannelConfig,
    NotificationAction,
    NotificationContent,
    NotificationResponse,
    PermissionState,
)
from sunrise.config import SunriseConfig
from sunrise.models import (
    CurrentConditions,
    DailyForecast,
    Location,
    SunTimes,
    SunTimesBundle,
    WeatherBundle,
    WeatherDetails,
)
from sunrise.storage import MemoryStore

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing.

    Returns a Mock with spec=logging.Logger to ensure only valid
    logger methods can be called.
    """
    return Mock(spec=logging.Logger)


# ============================================================================
# Storage and Notification Fixtures
# ============================================================================


@pytest.fixture
def store():
    return MemoryStore()


class RecordingNotifications:
    """Notification service double that records every call.

    Set ``schedule_error``, ``cancel_error`` or ``dismiss_error`` to make the
    matching call raise.
    """

    def __init__(self, permission: PermissionState = "granted", grant: bool = True) -> None:
        self.permission: PermissionState = permission
        self.grant = grant
        self.scheduled: dict[str, tuple[NotificationContent, datetime]] = {}
        self.cancelled: list[str] = []
        self.dismissed: list[str] = []
        self.channels: dict[str, ChannelConfig] = {}
        self.categories: dict[str, list[NotificationAction]] = {}
        self.listeners: list[ActionListener] = []
        self.schedule_error: Exception | None = None
        self.cancel_error: Exception | None = None
        self.dismiss_error: Exception | None = None
        self._counter = 0

    async def get_permission_state(self) -> PermissionState:
        return self.permission

    async def request_permission(self) -> PermissionState:
        if self.permission == "undetermined":
            self.permission = "granted" if self.grant else "denied"
        return self.permission

    async def schedule_one_shot(self, content: NotificationContent, trigger: datetime) -> str:
        if self.schedule_error is not None:
            raise self.schedule_error
        self._counter += 1
        notification_id = f"notif-{self._counter}"
        self.scheduled[notification_id] = (content, trigger)
        return notification_id

    async def cancel_scheduled(self, notification_id: str) -> None:
        self.cancelled.append(notification_id)
        if self.cancel_error is not None:
            raise self.cancel_error
        self.scheduled.pop(notification_id, None)

    async def dismiss_delivered(self, notification_id: str) -> None:
        self.dismissed.append(notification_id)
        if self.dismiss_error is not None:
            raise self.dismiss_error

    async def ensure_channel(self, config: ChannelConfig) -> None:
        self.channels[config.channel_id] = config

    async def ensure_category(self, category_id: str, actions: Sequence[NotificationAction]) -> None:
        self.categories[category_id] = list(actions)

    def subscribe_to_user_actions(self, listener: ActionListener):
        self.listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self.listeners:
                self.listeners.remove(listener)

        return _unsubscribe

    async def emit(self, response: NotificationResponse) -> None:
        for listener in list(self.listeners):
            result = listener(response)
            if inspect.isawaitable(result):
                await result


@pytest.fixture
def notifications():
    return RecordingNotifications()


# ============================================================================
# Domain Data Fixtures
# ============================================================================


@pytest.fixture
def location():
    return Location(latitude=37.7749, longitude=-122.4194, label="San Francisco")


@pytest.fixture
def sun_bundle():
    """Sunrise 06:00 and sunset 18:00 UTC for today and tomorrow."""
    midnight = datetime.now(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
    today = SunTimes(sunrise=midnight + timedelta(hours=6), sunset=midnight + timedelta(hours=18))
    tomorrow = SunTimes(sunrise=midnight + timedelta(days=1, hours=6), sunset=midnight + timedelta(days=1, hours=18))
    return SunTimesBundle(today=today, tomorrow=tomorrow)


@pytest.fixture
def make_weather_bundle():
    """Factory fixture for weather bundles.

    Usage:
        bundle = make_weather_bundle(temperature=55.0)
    """

    def _create(temperature: float = 64.0, **overrides: Any) -> WeatherBundle:
        defaults: dict[str, Any] = {
            "current": CurrentConditions(temperature=temperature, unit="°F", condition_code=1, is_daytime=True),
            "forecast": [
                DailyForecast(date="2025-06-21", temp_min=55.0, temp_max=70.0, unit="°F"),
                DailyForecast(date="2025-06-22", temp_min=56.0, temp_max=72.0, unit="°F"),
            ],
            "details": WeatherDetails(precip_probability=10.0, wind_speed=8.0, wind_unit="mp/h"),
            "fetched_at": datetime(2025, 6, 21, 12, 0, tzinfo=UTC),
        }
        defaults.update(overrides)
        return WeatherBundle(**defaults)

    return _create


@pytest.fixture
def config(tmp_path):
    return SunriseConfig.from_env({"SUNRISE_HOSTNAME": "test-host", "SUNRISE_STATE_DIR": str(tmp_path)})
