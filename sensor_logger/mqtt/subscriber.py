"""MQTT subscriber that feeds broker messages into the reading store.

One ``MqttSubscriber`` owns the broker connection for the whole process. paho
runs its network loop on a background thread, reconnects on its own with a
bounded backoff and calls back into this class; the subscription is
re-asserted on every successful connect because a clean session does not
keep it across reconnects.

State machine::

    DISCONNECTED -> CONNECTING -> CONNECTED -> SUBSCRIBED
                        ^                          |
                        +------ connection lost ---+
"""

from __future__ import annotations

import enum
import logging
import threading
import uuid
from typing import Any

import paho.mqtt.client as mqtt

from sensor_logger.core.config import Settings
from sensor_logger.services.ingestion import SUBSCRIPTION_TOPIC, ReadingIngestor

logger = logging.getLogger(__name__)


class SubscriberState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"


class MqttSubscriber:
    def __init__(
        self,
        *,
        ingestor: ReadingIngestor,
        host: str,
        port: int = 1883,
        topic: str = SUBSCRIPTION_TOPIC,
        username: str | None = None,
        password: str | None = None,
        client_id_prefix: str = "sensor-logger",
        keepalive_seconds: int = 60,
        reconnect_min_delay_seconds: int = 1,
        reconnect_max_delay_seconds: int = 30,
    ) -> None:
        self._ingestor = ingestor
        self._host = host
        self._port = port
        self._topic = topic
        self._keepalive = keepalive_seconds

        self._lock = threading.Lock()
        self._state = SubscriberState.DISCONNECTED
        self._stopping = False
        self._connect_count = 0
        self._subscribe_mid: int | None = None

        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"{client_id_prefix}-{uuid.uuid4().hex[:8]}",
            protocol=mqtt.MQTTv311,
            clean_session=True,
        )
        if username:
            self._client.username_pw_set(username, password)
        self._client.reconnect_delay_set(
            min_delay=reconnect_min_delay_seconds,
            max_delay=max(reconnect_min_delay_seconds, reconnect_max_delay_seconds),
        )
        self._client.enable_logger(logging.getLogger("paho.mqtt.client"))
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_subscribe = self._on_subscribe
        self._client.on_message = self._on_message

    @classmethod
    def from_settings(cls, settings: Settings, *, ingestor: ReadingIngestor) -> MqttSubscriber:
        return cls(
            ingestor=ingestor,
            host=settings.mqtt_host,
            port=settings.mqtt_port,
            topic=settings.mqtt_topic,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            client_id_prefix=settings.mqtt_client_id_prefix,
            keepalive_seconds=settings.mqtt_keepalive_seconds,
            reconnect_min_delay_seconds=settings.mqtt_reconnect_min_delay_seconds,
            reconnect_max_delay_seconds=settings.mqtt_reconnect_max_delay_seconds,
        )

    @property
    def state(self) -> SubscriberState:
        with self._lock:
            return self._state

    @property
    def broker(self) -> str:
        return f"mqtt://{self._host}:{self._port}"

    @property
    def topic(self) -> str:
        return self._topic

    def start(self) -> None:
        """Begin connecting in the background; never blocks on the broker."""
        with self._lock:
            self._stopping = False
        self._set_state(SubscriberState.CONNECTING)
        logger.info("[MQTT] Connecting to %s", self.broker)
        # connect_async defers the socket work to the loop thread, which keeps
        # retrying if the broker is down at startup.
        self._client.connect_async(self._host, self._port, keepalive=self._keepalive)
        self._client.loop_start()

    def stop(self) -> None:
        with self._lock:
            self._stopping = True
        try:
            self._client.disconnect()
        finally:
            self._client.loop_stop()
            self._set_state(SubscriberState.DISCONNECTED)
        logger.info("[MQTT] Connection closed")

    def status(self) -> dict[str, Any]:
        stats = self._ingestor.stats()
        with self._lock:
            state = self._state
            reconnects = max(self._connect_count - 1, 0)
        return {
            "connected": state in (SubscriberState.CONNECTED, SubscriberState.SUBSCRIBED),
            "status": state.value,
            "broker": self.broker,
            "topic": self._topic,
            "reconnect_count": reconnects,
            "messages": {
                "received": stats.received,
                "stored": stats.stored,
                "rejected": stats.rejected,
                "failed": stats.failed,
            },
        }

    def _set_state(self, state: SubscriberState) -> None:
        with self._lock:
            previous = self._state
            self._state = state
        if previous != state:
            logger.debug("[MQTT] State %s -> %s", previous.value, state.value)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code.is_failure:
            logger.error("[MQTT] Connection refused: %s", reason_code)
            self._set_state(SubscriberState.CONNECTING)
            return

        with self._lock:
            self._connect_count += 1
        self._set_state(SubscriberState.CONNECTED)
        logger.info("[MQTT] Connected to broker %s", self.broker)

        result, mid = client.subscribe(self._topic, qos=0)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error("[MQTT] Failed to subscribe to %s (rc=%s)", self._topic, result)
            return
        with self._lock:
            self._subscribe_mid = mid

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None) -> None:
        with self._lock:
            expected = self._subscribe_mid
        if expected is not None and mid != expected:
            return
        if any(rc.is_failure for rc in reason_code_list):
            logger.error("[MQTT] Broker rejected subscription to %s", self._topic)
            return
        self._set_state(SubscriberState.SUBSCRIBED)
        logger.info("[MQTT] Subscribed to topic: %s", self._topic)

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None) -> None:
        with self._lock:
            stopping = self._stopping
            self._subscribe_mid = None
        if stopping:
            self._set_state(SubscriberState.DISCONNECTED)
            return
        self._set_state(SubscriberState.CONNECTING)
        logger.warning("[MQTT] Connection lost (%s); reconnecting", reason_code)

    def _on_message(self, client, userdata, message) -> None:
        if self.state is not SubscriberState.SUBSCRIBED:
            logger.debug("[MQTT] Ignoring message on %s before subscription", message.topic)
            return
        try:
            self._ingestor.handle_message(message.topic, message.payload)
        except Exception:  # noqa: BLE001 - keep the network loop thread alive
            logger.exception("[MQTT] Unexpected error handling message on %s", message.topic)
