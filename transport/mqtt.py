"""MQTT transport delivering field messages and publishing device output."""

from __future__ import annotations

import json
import logging
import secrets
from typing import Any, Callable, Iterable, Mapping, Optional, Tuple

import paho.mqtt.client as mqtt

from settings import get_settings

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], object]


def create_mqtt_client(client_id: str = "", **kwargs: Any) -> mqtt.Client:
    """Build a paho client on the v2 callback API speaking MQTT v3.1.1."""

    client_kwargs: dict[str, Any] = {
        "callback_api_version": mqtt.CallbackAPIVersion.VERSION2,
        "client_id": client_id,
        "protocol": kwargs.pop("protocol", mqtt.MQTTv311),
    }
    client_kwargs.update(kwargs)
    return mqtt.Client(**client_kwargs)


class MqttTransport:
    """Subscribe to reading topics and forward each message to ``handler``.

    Delivery is at-most-once (QoS 0). Dropped connections are re-established
    by paho's network loop with exponential backoff capped at
    ``reconnect_max_delay`` seconds; messages lost in between are not
    recovered.
    """

    def __init__(
        self,
        host: str,
        port: int = 1883,
        topics: Iterable[str] = (),
        handler: Optional[MessageHandler] = None,
        client_id: Optional[str] = None,
        keepalive: int = 60,
        reconnect_max_delay: int = 30,
        connect_timeout: float = 4.0,
        client_factory: Callable[..., mqtt.Client] = create_mqtt_client,
    ) -> None:
        self.host = host
        self.port = port
        self.topics: Tuple[str, ...] = tuple(topics)
        self.handler = handler
        self.keepalive = keepalive
        self.client_id = client_id or f"mqtt_to_store_{secrets.token_hex(4)}"
        self.client = client_factory(self.client_id, clean_session=True)
        self.client.connect_timeout = connect_timeout
        self.client.reconnect_delay_set(min_delay=1, max_delay=reconnect_max_delay)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message
        self._started = False

    @property
    def broker(self) -> str:
        return f"{self.host}:{self.port}"

    def start(self) -> None:
        if self._started:
            return
        self.client.connect_async(self.host, self.port, keepalive=self.keepalive)
        self.client.loop_start()
        self._started = True
        logger.info("Connecting to MQTT broker", extra={"broker": self.broker})

    def stop(self) -> None:
        if not self._started:
            return
        self.client.disconnect()
        self.client.loop_stop()
        self._started = False
        logger.info("MQTT connection closed", extra={"broker": self.broker})

    def publish(self, topic: str, payload: Mapping[str, Any]) -> bool:
        info = self.client.publish(topic, json.dumps(dict(payload), default=str), qos=0)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(
                "Publish failed",
                extra={"topic": topic, "reason": mqtt.error_string(info.rc)},
            )
            return False
        return True

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code.is_failure:
            logger.error(
                "MQTT connection refused",
                extra={"broker": self.broker, "reason": str(reason_code)},
            )
            return
        logger.info("Connected to MQTT broker", extra={"broker": self.broker})
        if not self.topics:
            return
        result, _mid = client.subscribe([(topic, 0) for topic in self.topics])
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error(
                "MQTT subscription error",
                extra={"broker": self.broker, "reason": mqtt.error_string(result)},
            )
        else:
            logger.info("Subscribed to topics: %s", ", ".join(self.topics))

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        logger.warning(
            "Disconnected from MQTT broker; reconnecting",
            extra={"broker": self.broker, "reason": str(reason_code)},
        )

    def _on_message(self, client, userdata, message) -> None:
        if self.handler is None:
            return
        logger.debug("Message received", extra={"topic": message.topic})
        try:
            self.handler(message.topic, message.payload)
        except Exception:  # pragma: no cover - keeps the network loop alive
            logger.exception("Message handler failed", extra={"topic": message.topic})


def build_default_transport(handler: Optional[MessageHandler] = None) -> Optional[MqttTransport]:
    """Transport configured from settings, or ``None`` when no broker is set."""

    settings = get_settings()
    if not settings.mqtt_host:
        return None
    return MqttTransport(
        host=settings.mqtt_host,
        port=settings.mqtt_port,
        topics=settings.mqtt_topics,
        handler=handler,
        client_id=f"{settings.mqtt_client_id_prefix}{secrets.token_hex(4)}",
        keepalive=settings.mqtt_keepalive,
        reconnect_max_delay=settings.mqtt_reconnect_max_delay,
        connect_timeout=settings.mqtt_connect_timeout,
    )
