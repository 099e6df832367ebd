"""Route user interactions on alarm notifications to scheduler operations.

Action identifiers arrive as strings from the notification layer
(``STOP_ALARM``, ``SNOOZE_10``). They are decoded once into ``AlarmAction``
values here; nothing downstream compares raw identifiers.
"""

from __future__ import annotations

import inspect
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sunrise.errors import SunriseError

from .notifications import NotificationResponse, NotificationService, Unsubscribe
from .scheduler import (
    ALARM_MARKER,
    ALARM_MARKER_KEY,
    CATEGORY_ID,
    SNOOZE_ACTION_PREFIX,
    STOP_ACTION_ID,
    AlarmScheduler,
)

LOGGER = logging.getLogger("sunrise.actions")

_SNOOZE_PATTERN = re.compile(rf"^{SNOOZE_ACTION_PREFIX}(\d+)$", re.IGNORECASE)

StopCallback = Callable[[], Awaitable[None] | None]
SnoozeCallback = Callable[[int], Awaitable[None] | None]


@dataclass(frozen=True, slots=True)
class StopAlarm:
    pass


@dataclass(frozen=True, slots=True)
class SnoozeAlarm:
    minutes: int


AlarmAction = StopAlarm | SnoozeAlarm


def decode_action(identifier: str | None) -> AlarmAction | None:
    """Decode a platform action identifier; unknown identifiers decode to None."""
    if not identifier:
        return None
    cleaned = identifier.strip()
    if cleaned.upper() == STOP_ACTION_ID:
        return StopAlarm()
    match = _SNOOZE_PATTERN.match(cleaned)
    if match:
        minutes = int(match.group(1))
        if minutes > 0:
            return SnoozeAlarm(minutes)
    return None


def is_alarm_notification(response: NotificationResponse) -> bool:
    if response.data.get(ALARM_MARKER_KEY) == ALARM_MARKER:
        return True
    return response.category_id == CATEGORY_ID


async def _invoke(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class ActionRouter:
    """Subscribes to notification interactions and dispatches alarm actions."""

    def __init__(
        self,
        notifications: NotificationService,
        scheduler: AlarmScheduler,
        logger: logging.Logger | None = None,
    ) -> None:
        self._notifications = notifications
        self._scheduler = scheduler
        self.logger = logger or LOGGER
        self._unsubscribe: Unsubscribe | None = None
        self._on_stop: StopCallback | None = None
        self._on_snooze: SnoozeCallback | None = None

    @property
    def registered(self) -> bool:
        return self._unsubscribe is not None

    def register(
        self,
        *,
        on_stop: StopCallback | None = None,
        on_snooze: SnoozeCallback | None = None,
    ) -> Unsubscribe:
        """Subscribe once; registering again replaces the previous subscription."""
        self.unregister()
        self._on_stop = on_stop
        self._on_snooze = on_snooze
        self._unsubscribe = self._notifications.subscribe_to_user_actions(self.handle_response)
        return self.unregister

    def unregister(self) -> None:
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        self._on_stop = None
        self._on_snooze = None
        if unsubscribe:
            unsubscribe()

    async def handle_response(self, response: NotificationResponse) -> None:
        if not is_alarm_notification(response):
            self.logger.debug("[actions] Ignoring unrelated notification %s", response.notification_id)
            return
        try:
            await self._notifications.dismiss_delivered(response.notification_id)
        except Exception:
            self.logger.debug("[actions] Failed to dismiss %s", response.notification_id, exc_info=True)

        action = decode_action(response.action_identifier)
        if action is None:
            return
        if isinstance(action, StopAlarm):
            await self._scheduler.cancel()
            await _invoke(self._on_stop)
            return
        try:
            await self._scheduler.snooze(action.minutes)
        except (SunriseError, ValueError) as exc:
            self.logger.warning("[actions] Snooze for %d min failed: %s", action.minutes, exc)
            return
        await _invoke(self._on_snooze, action.minutes)
