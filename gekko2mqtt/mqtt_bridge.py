from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable

import paho.mqtt.client as mqtt

from gekko2mqtt.models import MQTTConfig
from gekko2mqtt.mygekko import TransportError

LOGGER = logging.getLogger(__name__)


class MqttConnectError(TransportError):
    pass


class PublishError(TransportError):
    pass


class SubscribeError(TransportError):
    pass


class ConnectionLostError(TransportError):
    pass


def format_payload(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def _json_value(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return int(value)
    return value


class MqttBridge:
    def __init__(
        self,
        config: MQTTConfig,
        on_connection_lost: Callable[[Exception], None] | None = None,
    ):
        self._config = config
        self._on_connection_lost = on_connection_lost
        self._connected = threading.Event()
        self._closing = False

        transport = "unix" if config.socket else "tcp"
        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv311,
            transport=transport,
        )
        if config.username:
            self._client.username_pw_set(config.username, config.password)
        if not config.socket and config.tls:
            self._client.tls_set()

        self._client.on_connect = self._handle_connect
        self._client.on_disconnect = self._handle_disconnect

    def set_connection_lost_handler(self, handler: Callable[[Exception], None]) -> None:
        self._on_connection_lost = handler

    def connect(self) -> None:
        if self._config.socket:
            LOGGER.info("Connessione MQTT via socket Unix %s", self._config.socket)
            # la porta viene ignorata dal trasporto unix
            host, port = self._config.socket, self._config.port
        else:
            LOGGER.info("Connessione MQTT via TCP %s:%d", self._config.host, self._config.port)
            host, port = self._config.host, self._config.port
        LOGGER.info("Client ID MQTT: %s", self._config.client_id)

        try:
            self._client.connect_async(host, port, keepalive=self._config.keepalive)
        except (OSError, ValueError) as exc:
            raise MqttConnectError(f"Connessione MQTT fallita: {exc}") from exc
        self._client.loop_start()

        if not self._connected.wait(self._config.connect_timeout_sec):
            self.disconnect()
            raise MqttConnectError(f"Connessione MQTT non riuscita entro {self._config.connect_timeout_sec}s")

    def disconnect(self) -> None:
        self._closing = True
        try:
            self._client.disconnect()
            self._client.loop_stop()
        except Exception:
            LOGGER.exception("Errore stop MQTT")

    def full_topic(self, topic: str) -> str:
        return f"{self._config.root}/{topic}"

    def publish(self, topic: str, value: Any) -> None:
        self._publish(self.full_topic(topic), format_payload(value))

    def publish_json(self, topic: str, data: dict[str, Any]) -> None:
        full_topic = self.full_topic(topic)
        try:
            raw_payload = json.dumps(
                {key: _json_value(value) for key, value in data.items()},
                ensure_ascii=True,
                allow_nan=False,
            )
        except ValueError as exc:
            raise PublishError(f"Documento JSON non valido per {full_topic}: {exc}") from exc
        self._publish(full_topic, raw_payload)

    def _publish(self, full_topic: str, raw_payload: str) -> None:
        result = self._client.publish(full_topic, raw_payload, qos=0, retain=False)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(f"Publish MQTT fallita su {full_topic}: {mqtt.error_string(result.rc)}")

    def subscribe(self, topic: str, handler: Callable[[str, bytes], None]) -> None:
        full_topic = self.full_topic(topic)

        def _on_message(client, userdata, msg):
            handler(msg.topic, msg.payload)

        self._client.message_callback_add(full_topic, _on_message)
        rc, _ = self._client.subscribe(full_topic, qos=0)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise SubscribeError(f"Subscribe MQTT fallita su {full_topic}: {mqtt.error_string(rc)}")

    def _handle_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            LOGGER.error("Connessione MQTT fallita: rc=%s", reason_code)
            return
        LOGGER.info("Connesso a MQTT")
        self._connected.set()

    def _handle_disconnect(self, client, userdata, flags, reason_code, properties):
        was_connected = self._connected.is_set()
        self._connected.clear()

        if self._closing or not reason_code.is_failure:
            LOGGER.info("Disconnesso da MQTT")
            return

        LOGGER.error("Disconnessione MQTT inattesa rc=%s", reason_code)
        if was_connected and self._on_connection_lost:
            self._on_connection_lost(ConnectionLostError(f"Disconnessione MQTT inattesa: {reason_code}"))
