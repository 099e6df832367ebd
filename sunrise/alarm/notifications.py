"""Local notification service: one-shot triggers, channels, categories and user actions."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal, Protocol
from uuid import uuid4

from sunrise.datetime_utils import deserialize_dt, ensure_aware, serialize_dt, utc_now
from sunrise.errors import NotificationPermissionError, SchedulingError
from sunrise.mqtt import MqttBridge

PermissionState = Literal["granted", "denied", "undetermined"]
Unsubscribe = Callable[[], None]

DEFAULT_ACTION_IDENTIFIER = "default"

LOGGER = logging.getLogger("sunrise.notifications")


def _now() -> datetime:
    return utc_now()


@dataclass(frozen=True, slots=True)
class NotificationContent:
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    category_id: str | None = None
    channel_id: str | None = None
    sound: str | None = "default"

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "data": self.data,
            "category_id": self.category_id,
            "channel_id": self.channel_id,
            "sound": self.sound,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> NotificationContent:
        return cls(
            title=str(payload.get("title") or ""),
            body=str(payload.get("body") or ""),
            data=dict(payload.get("data") or {}),
            category_id=payload.get("category_id"),
            channel_id=payload.get("channel_id"),
            sound=payload.get("sound"),
        )


@dataclass(frozen=True, slots=True)
class ChannelConfig:
    channel_id: str
    name: str
    importance: Literal["min", "low", "default", "high", "max"] = "max"
    sound: str | None = "default"


@dataclass(frozen=True, slots=True)
class NotificationAction:
    identifier: str
    title: str
    opens_app: bool = False


@dataclass(frozen=True, slots=True)
class NotificationResponse:
    """A user interaction with a delivered notification."""

    notification_id: str
    action_identifier: str
    category_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


ActionListener = Callable[[NotificationResponse], Awaitable[None] | None]


class NotificationService(Protocol):
    async def get_permission_state(self) -> PermissionState: ...

    async def request_permission(self) -> PermissionState: ...

    async def schedule_one_shot(self, content: NotificationContent, trigger: datetime) -> str: ...

    async def cancel_scheduled(self, notification_id: str) -> None: ...

    async def dismiss_delivered(self, notification_id: str) -> None: ...

    async def ensure_channel(self, config: ChannelConfig) -> None: ...

    async def ensure_category(self, category_id: str, actions: Sequence[NotificationAction]) -> None: ...

    def subscribe_to_user_actions(self, listener: ActionListener) -> Unsubscribe: ...


@dataclass(slots=True)
class LocalNotification:
    notification_id: str
    content: NotificationContent
    trigger: datetime
    delivered_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.notification_id,
            "content": self.content.to_dict(),
            "trigger": serialize_dt(self.trigger),
            "delivered_at": serialize_dt(self.delivered_at) if self.delivered_at else None,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> LocalNotification:
        trigger = deserialize_dt(payload.get("trigger"))
        if trigger is None:
            raise ValueError("notification trigger is required")
        return cls(
            notification_id=str(payload["id"]),
            content=NotificationContent.from_dict(payload.get("content") or {}),
            trigger=trigger,
            delivered_at=deserialize_dt(payload.get("delivered_at")),
        )


class LocalNotificationService:
    """Fire one-shot notifications from asyncio timers on this host.

    Pending and delivered notifications survive restarts through a JSON file.
    Delivery is logged and, when MQTT is configured, published so a kiosk or
    phone bridge can present it; user actions come back on the action topic.
    """

    def __init__(
        self,
        *,
        storage_path: Path | None = None,
        allow_permission: bool = True,
        mqtt: MqttBridge | None = None,
        on_delivered: Callable[[LocalNotification], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._storage_path = storage_path
        self._allow_permission = allow_permission
        self._mqtt = mqtt
        self._on_delivered = on_delivered
        self.logger = logger or LOGGER
        self._permission: PermissionState = "undetermined"
        self._pending: dict[str, LocalNotification] = {}
        self._delivered: dict[str, LocalNotification] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._channels: dict[str, ChannelConfig] = {}
        self._categories: dict[str, tuple[NotificationAction, ...]] = {}
        self._listeners: list[ActionListener] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._started = False

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        if self._started:
            return
        self._loop = asyncio.get_running_loop()
        self._load()
        for notification_id in list(self._pending):
            self._arm(notification_id)
        if self._mqtt and await asyncio.to_thread(self._mqtt.connect):
            try:
                self._mqtt.subscribe_json(self._mqtt.topic("notifications/action"), self._handle_mqtt_action)
            except RuntimeError:
                self.logger.debug("[notify] MQTT client not ready for action subscription")
        self._started = True

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._mqtt:
            self._mqtt.disconnect()
        self._started = False

    # ========================================================================
    # Permissions
    # ========================================================================

    async def get_permission_state(self) -> PermissionState:
        return self._permission

    async def request_permission(self) -> PermissionState:
        if self._permission == "undetermined":
            self._permission = "granted" if self._allow_permission else "denied"
            self._persist()
        return self._permission

    # ========================================================================
    # Scheduling
    # ========================================================================

    async def ensure_channel(self, config: ChannelConfig) -> None:
        self._channels[config.channel_id] = config

    async def ensure_category(self, category_id: str, actions: Sequence[NotificationAction]) -> None:
        self._categories[category_id] = tuple(actions)

    async def schedule_one_shot(self, content: NotificationContent, trigger: datetime) -> str:
        if self._permission != "granted":
            raise NotificationPermissionError("Notifications permission is required to schedule an alarm.")
        if content.channel_id and content.channel_id not in self._channels:
            raise SchedulingError(f"Unknown notification channel: {content.channel_id}")
        notification = LocalNotification(
            notification_id=uuid4().hex,
            content=content,
            trigger=ensure_aware(trigger),
        )
        self._pending[notification.notification_id] = notification
        self._persist()
        self._arm(notification.notification_id)
        self.logger.debug("[notify] Scheduled %s for %s", notification.notification_id, trigger.isoformat())
        return notification.notification_id

    async def cancel_scheduled(self, notification_id: str) -> None:
        task = self._tasks.pop(notification_id, None)
        if task:
            task.cancel()
        if self._pending.pop(notification_id, None) is None:
            self.logger.debug("[notify] No pending notification %s to cancel", notification_id)
            return
        self._persist()

    async def dismiss_delivered(self, notification_id: str) -> None:
        if self._delivered.pop(notification_id, None) is None:
            return
        self._persist()
        if self._mqtt:
            self._mqtt.publish_json(
                self._mqtt.topic("notifications/dismissed"),
                {"notification_id": notification_id},
            )

    def pending_notifications(self) -> list[LocalNotification]:
        return sorted(self._pending.values(), key=lambda item: item.trigger)

    def delivered_notifications(self) -> list[LocalNotification]:
        return list(self._delivered.values())

    def _arm(self, notification_id: str) -> None:
        task = self._tasks.pop(notification_id, None)
        if task:
            task.cancel()
        self._tasks[notification_id] = asyncio.create_task(self._wait_for_trigger(notification_id))

    async def _wait_for_trigger(self, notification_id: str) -> None:
        notification = self._pending.get(notification_id)
        if notification is None:
            return
        delay = (notification.trigger - _now()).total_seconds()
        if delay > 0:
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                return
        self._deliver(notification_id)

    def _deliver(self, notification_id: str) -> None:
        self._tasks.pop(notification_id, None)
        notification = self._pending.pop(notification_id, None)
        if notification is None:
            return
        notification.delivered_at = _now()
        self._delivered[notification_id] = notification
        self._persist()
        self.logger.info("[notify] %s: %s", notification.content.title, notification.content.body)
        if self._mqtt:
            actions = self._categories.get(notification.content.category_id or "", ())
            self._mqtt.publish_json(
                self._mqtt.topic("notifications/delivered"),
                {
                    "notification_id": notification_id,
                    "content": notification.content.to_dict(),
                    "actions": [{"id": action.identifier, "title": action.title} for action in actions],
                },
            )
        if self._on_delivered:
            self._on_delivered(notification)

    # ========================================================================
    # User actions
    # ========================================================================

    def subscribe_to_user_actions(self, listener: ActionListener) -> Unsubscribe:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def handle_user_action(self, response: NotificationResponse) -> None:
        """Fan a user interaction out to every subscribed listener."""
        for listener in list(self._listeners):
            try:
                result = listener(response)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                self.logger.error("[notify] Action listener failed: %s", exc, exc_info=True)

    def response_for(self, notification_id: str, action_identifier: str) -> NotificationResponse:
        record = self._delivered.get(notification_id) or self._pending.get(notification_id)
        content = record.content if record else None
        return NotificationResponse(
            notification_id=notification_id,
            action_identifier=action_identifier or DEFAULT_ACTION_IDENTIFIER,
            category_id=content.category_id if content else None,
            data=dict(content.data) if content else {},
        )

    def _handle_mqtt_action(self, payload: dict[str, Any]) -> None:
        """MQTT thread callback; hands the response to the event loop."""
        notification_id = payload.get("notification_id")
        if not notification_id or self._loop is None:
            return
        response = self.response_for(str(notification_id), str(payload.get("action") or ""))
        asyncio.run_coroutine_threadsafe(self.handle_user_action(response), self._loop)

    # ========================================================================
    # Persistence
    # ========================================================================

    def _persist(self) -> None:
        if self._storage_path is None:
            return
        payload = {
            "permission": self._permission,
            "pending": [item.to_dict() for item in self._pending.values()],
            "delivered": [item.to_dict() for item in self._delivered.values()],
        }
        try:
            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._storage_path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(self._storage_path)
        except OSError as exc:
            self.logger.warning("[notify] Failed to persist notifications to %s: %s", self._storage_path, exc)

    def _load(self) -> None:
        if self._storage_path is None or not self._storage_path.exists():
            return
        try:
            data = json.loads(self._storage_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            self.logger.warning("[notify] Failed to load notifications file %s: %s", self._storage_path, exc)
            return
        permission = data.get("permission")
        if permission in {"granted", "denied", "undetermined"}:
            self._permission = permission
        for key, target in (("pending", self._pending), ("delivered", self._delivered)):
            for item in data.get(key) or []:
                try:
                    notification = LocalNotification.from_dict(item)
                except (KeyError, TypeError, ValueError):
                    self.logger.debug("[notify] Skipping invalid notification entry: %s", item, exc_info=True)
                    continue
                target[notification.notification_id] = notification
