"""Sunrise alarm scheduling on top of the notification service.

The tracked id set is the durable source of truth: an empty set means no
alarm is armed. It is stored as one versioned JSON record so a write is never
observed partially. Older installs stored a single bare id under a separate
key; every read folds that record into the set and removes it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal

from sunrise.config import AlarmConfig
from sunrise.datetime_utils import ensure_aware, utc_now
from sunrise.errors import NotificationPermissionError, SchedulingError, StorageError, SunriseError
from sunrise.storage import KeyValueStore
from sunrise.utils import unique_ordered

from .notifications import ChannelConfig, NotificationAction, NotificationContent, NotificationService

LOGGER = logging.getLogger("sunrise.alarm")

IDS_KEY = "sunriseAlarm.notificationIds"
LEGACY_ID_KEY = "sunriseAlarm.notificationId"
SCHEMA_VERSION = 2

CHANNEL_ID = "sunrise"
CATEGORY_ID = "sunrise-alarm"
ALARM_MARKER_KEY = "kind"
ALARM_MARKER = "sunrise_alarm"
STOP_ACTION_ID = "STOP_ALARM"
SNOOZE_ACTION_PREFIX = "SNOOZE_"

CleanupOperation = Literal["cancel", "dismiss"]


def _now() -> datetime:
    return utc_now()


def snooze_action_id(minutes: int) -> str:
    return f"{SNOOZE_ACTION_PREFIX}{minutes}"


@dataclass(frozen=True, slots=True)
class CleanupResult:
    notification_id: str
    operation: CleanupOperation
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AlarmScheduler:
    """Keep at most one primary sunrise notification armed."""

    def __init__(
        self,
        store: KeyValueStore,
        notifications: NotificationService,
        *,
        config: AlarmConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._notifications = notifications
        self._config = config or AlarmConfig(
            snooze_minutes=10,
            notifications_allowed=True,
            title="Sunrise Alarm",
            body="Good morning, the sun is up",
        )
        self.logger = logger or LOGGER

    @property
    def snooze_minutes(self) -> int:
        return self._config.snooze_minutes

    # ========================================================================
    # Public API
    # ========================================================================

    async def ensure_permissions(self) -> None:
        state = await self._notifications.get_permission_state()
        if state == "granted":
            return
        state = await self._notifications.request_permission()
        if state != "granted":
            raise NotificationPermissionError("Notifications permission is required to enable the sunrise alarm.")

    async def schedule(self, when: datetime) -> str:
        """Replace any armed alarm with a single notification at ``when``."""
        when = ensure_aware(when)
        await self.cancel()
        await self._ensure_presentation()
        notification_id = await self._request(
            NotificationContent(
                title=self._config.title,
                body=self._config.body,
                data={ALARM_MARKER_KEY: ALARM_MARKER, "role": "primary"},
                category_id=CATEGORY_ID,
                channel_id=CHANNEL_ID,
            ),
            when,
        )
        await self._track(notification_id, [])
        self.logger.info("[alarm] Sunrise alarm armed for %s (%s)", when.isoformat(), notification_id)
        return notification_id

    async def snooze(self, minutes: float) -> str:
        """Add a one-shot notification ``minutes`` from now, keeping existing ids."""
        if minutes <= 0:
            raise ValueError("snooze minutes must be positive")
        current = await self._read_ids()
        await self._ensure_presentation()
        when = _now() + timedelta(minutes=minutes)
        notification_id = await self._request(
            NotificationContent(
                title=self._config.title,
                body=f"Snoozed {minutes:g} min. {self._config.body}",
                data={ALARM_MARKER_KEY: ALARM_MARKER, "role": "snooze"},
                category_id=CATEGORY_ID,
                channel_id=CHANNEL_ID,
            ),
            when,
        )
        await self._track(notification_id, current)
        self.logger.info("[alarm] Snoozed for %g min (%s)", minutes, notification_id)
        return notification_id

    async def cancel(self) -> list[CleanupResult]:
        """Disarm every tracked notification; never raises."""
        try:
            ids = await self._read_ids()
        except StorageError as exc:
            self.logger.warning("[alarm] Could not read tracked alarm ids: %s", exc)
            return []
        if not ids:
            return []
        try:
            await self._store.remove(IDS_KEY)
        except StorageError as exc:
            self.logger.warning("[alarm] Could not clear tracked alarm ids: %s", exc)

        results: list[CleanupResult] = []
        for notification_id in ids:
            results.append(await self._best_effort("cancel", notification_id, self._notifications.cancel_scheduled))
            results.append(await self._best_effort("dismiss", notification_id, self._notifications.dismiss_delivered))
        failures = [result for result in results if not result.ok]
        if failures:
            self.logger.debug(
                "[alarm] %d of %d cleanup calls failed (already consumed ids are expected)",
                len(failures),
                len(results),
            )
        self.logger.info("[alarm] Sunrise alarm disarmed (%d ids)", len(ids))
        return results

    async def scheduled_ids(self) -> list[str]:
        return await self._read_ids()

    # ========================================================================
    # Internals
    # ========================================================================

    async def _ensure_presentation(self) -> None:
        await self._notifications.ensure_channel(ChannelConfig(channel_id=CHANNEL_ID, name="Sunrise"))
        await self._notifications.ensure_category(
            CATEGORY_ID,
            [
                NotificationAction(identifier=STOP_ACTION_ID, title="Stop"),
                NotificationAction(
                    identifier=snooze_action_id(self._config.snooze_minutes),
                    title=f"Snooze {self._config.snooze_minutes} min",
                ),
            ],
        )

    async def _request(self, content: NotificationContent, when: datetime) -> str:
        try:
            return await self._notifications.schedule_one_shot(content, when)
        except SunriseError:
            raise
        except PermissionError as exc:
            raise NotificationPermissionError(str(exc)) from exc
        except Exception as exc:
            raise SchedulingError(f"Failed to schedule sunrise notification: {exc}") from exc

    async def _track(self, notification_id: str, current: list[str]) -> None:
        """Record a freshly scheduled id, withdrawing the notification if that fails."""
        try:
            await self._write_ids([*current, notification_id])
        except StorageError:
            await self._best_effort("cancel", notification_id, self._notifications.cancel_scheduled)
            self.logger.warning("[alarm] Could not record alarm id %s; notification withdrawn", notification_id)
            raise

    async def _best_effort(
        self,
        operation: CleanupOperation,
        notification_id: str,
        call: Callable[[str], Awaitable[None]],
    ) -> CleanupResult:
        try:
            await call(notification_id)
        except Exception as exc:
            self.logger.debug("[alarm] %s of %s failed: %s", operation, notification_id, exc)
            return CleanupResult(notification_id, operation, exc)
        return CleanupResult(notification_id, operation)

    def _decode(self, raw: str | None) -> list[str]:
        if not raw:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            self.logger.warning("[alarm] Ignoring unreadable alarm id record")
            return []
        if isinstance(payload, list):
            ids: Iterable[object] = payload
        elif isinstance(payload, dict) and payload.get("version") == SCHEMA_VERSION:
            ids = payload.get("ids") or []
        else:
            self.logger.warning("[alarm] Ignoring alarm id record with unknown schema: %s", raw)
            return []
        return unique_ordered(str(item) for item in ids if isinstance(item, str))

    async def _read_ids(self) -> list[str]:
        ids = self._decode(await self._store.get(IDS_KEY))
        legacy = await self._store.get(LEGACY_ID_KEY)
        if legacy:
            ids = unique_ordered([*ids, legacy])
            await self._write_ids(ids)
            self.logger.debug("[alarm] Migrated legacy alarm id %s", legacy)
        if legacy is not None:
            await self._store.remove(LEGACY_ID_KEY)
        return ids

    async def _write_ids(self, ids: list[str]) -> None:
        ids = unique_ordered(ids)
        if not ids:
            await self._store.remove(IDS_KEY)
            return
        await self._store.set(IDS_KEY, json.dumps({"version": SCHEMA_VERSION, "ids": ids}))
