"""MQTT bridge used to deliver alarm notifications and receive user actions."""

from __future__ import annotations

import json
import logging
import ssl
import threading
from collections.abc import Callable
from typing import Any

import paho.mqtt.client as mqtt

from .config import MqttConfig

JsonHandler = Callable[[dict[str, Any]], None]


class MqttBridge:
    def __init__(self, config: MqttConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.config.host)

    def topic(self, suffix: str) -> str:
        return f"{self.config.topic_base}/{suffix.lstrip('/')}"

    def _build_client(self) -> mqtt.Client:
        callback_kwargs: dict[str, object] = {}
        if hasattr(mqtt, "CallbackAPIVersion"):
            callback_kwargs["callback_api_version"] = mqtt.CallbackAPIVersion.VERSION2
        client = mqtt.Client(
            client_id=f"sunrise-alarm-{self.config.topic_base.replace('/', '-')}",
            clean_session=True,
            **callback_kwargs,
        )
        if self.config.username:
            client.username_pw_set(self.config.username, self.config.password or "")
        if self.config.tls_enabled:
            tls_kwargs: dict[str, object] = {"tls_version": ssl.PROTOCOL_TLS_CLIENT}
            if self.config.ca_cert:
                tls_kwargs["ca_certs"] = self.config.ca_cert
            if self.config.cert:
                tls_kwargs["certfile"] = self.config.cert
            if self.config.key:
                tls_kwargs["keyfile"] = self.config.key
            client.tls_set(**tls_kwargs)
        return client

    def connect(self) -> bool:
        if not self.enabled:
            self._logger.debug("[mqtt] MQTT host not configured; notification bridge disabled")
            return False
        with self._lock:
            if self._client is not None:
                return True
            client = self._build_client()
            try:
                client.connect(self.config.host, self.config.port, keepalive=30)
            except Exception as exc:
                self._logger.warning("[mqtt] Failed to connect to MQTT: %s", exc)
                return False
            client.loop_start()
            self._client = client
        return True

    def disconnect(self) -> None:
        with self._lock:
            client = self._client
            self._client = None
        if client:
            client.loop_stop()
            client.disconnect()

    def publish_json(self, topic: str, payload: dict[str, Any], *, retain: bool = False) -> None:
        client = self._client
        if not client:
            return
        try:
            client.publish(topic, payload=json.dumps(payload), qos=1, retain=retain)
        except Exception as exc:
            self._logger.debug("[mqtt] Failed to publish to %s: %s", topic, exc)

    def subscribe_json(self, topic: str, on_message: JsonHandler) -> None:
        """Subscribe to a topic carrying JSON objects; other payloads are dropped."""
        client = self._client
        if not client:
            raise RuntimeError("MQTT client is not connected")

        def _callback(_client, _userdata, message):  # type: ignore[no-untyped-def]
            raw = message.payload.decode("utf-8", errors="ignore")
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                self._logger.debug("[mqtt] Ignoring non-JSON payload on %s: %s", topic, raw)
                return
            if not isinstance(data, dict):
                return
            try:
                on_message(data)
            except Exception as exc:
                self._logger.error("[mqtt] Subscriber callback failed for topic '%s': %s", topic, exc, exc_info=True)

        result, _mid = client.subscribe(topic, qos=1)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("[mqtt] Failed to subscribe to topic: %s (rc=%s)", topic, result)
        client.message_callback_add(topic, _callback)
