from __future__ import annotations

import logging
import threading
import time
from typing import Any

from gekko2mqtt.history import HistoryCache, decode_and_dedupe
from gekko2mqtt.models import AppConfig
from gekko2mqtt.mqtt_bridge import MqttBridge
from gekko2mqtt.mygekko import MyGekkoClient
from gekko2mqtt.protocol import GROUP_PREFIX, Registry

LOGGER = logging.getLogger(__name__)

ONLINE_PAYLOAD = "true"
STOP_JOIN_TIMEOUT_SEC = 5.0


class RouteError(ValueError):
    pass


def parse_command_topic(topic: str) -> tuple[str, str]:
    # {root}/{name}/{category}/{item}/set, root di profondita' qualsiasi
    parts = topic.split("/")
    if len(parts) < 4:
        raise RouteError(f"Topic non valido: {topic}")
    return parts[-3], parts[-2]


def decode_payload(payload: bytes) -> str:
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise RouteError(f"Payload non UTF-8: {payload!r}") from exc


class BridgeService:
    def __init__(
        self,
        config: AppConfig,
        gekko: MyGekkoClient,
        mqtt: MqttBridge,
        registry: Registry,
        gekko_name: str,
    ):
        self._config = config
        self._gekko = gekko
        self._mqtt = mqtt
        self._registry = registry
        self._gekko_name = gekko_name
        self._history = HistoryCache()

        self._lock = threading.Lock()
        self._shutdown_event = threading.Event()
        self._error: BaseException | None = None
        self._stopping = False
        self._getter: threading.Thread | None = None
        self._setter: threading.Thread | None = None
        self._round = 0

    @property
    def history(self) -> HistoryCache:
        return self._history

    @property
    def error(self) -> BaseException | None:
        with self._lock:
            return self._error

    @property
    def stopped(self) -> bool:
        return self._shutdown_event.is_set()

    def start(self) -> None:
        if self._getter or self._setter:
            return
        self._getter = threading.Thread(target=self._guard, args=(self.run_getter,), name="getter", daemon=True)
        self._setter = threading.Thread(target=self._guard, args=(self.run_setter,), name="setter", daemon=True)
        self._getter.start()
        self._setter.start()

    def stop(self) -> None:
        with self._lock:
            self._stopping = True
        self._shutdown_event.set()
        current = threading.current_thread()
        for worker in (self._getter, self._setter):
            if worker and worker.is_alive() and worker is not current:
                worker.join(timeout=STOP_JOIN_TIMEOUT_SEC)

    def wait(self, timeout: float | None = None) -> bool:
        return self._shutdown_event.wait(timeout)

    def fail(self, exc: BaseException) -> None:
        with self._lock:
            if self._stopping:
                # errori durante l'arresto richiesto non cambiano l'esito
                LOGGER.debug("Errore ignorato durante l'arresto: %s", exc)
                return
            LOGGER.error("Errore fatale: %s", exc)
            if self._error is None:
                self._error = exc
        self._shutdown_event.set()

    def _guard(self, target) -> None:
        try:
            target()
        except Exception as exc:
            self.fail(exc)

    def _topic(self, *parts: str) -> str:
        return "/".join((self._gekko_name, *parts))

    # getter

    def run_getter(self) -> None:
        LOGGER.info("Avvio getter")
        self._mqtt.publish(self._topic("getter_online"), ONLINE_PAYLOAD)

        LOGGER.info("Avvio polling MyGekko")
        interval = self._config.mygekko.interval
        next_tick = time.monotonic()

        while not self._shutdown_event.is_set():
            self.poll_once()

            next_tick += interval
            now = time.monotonic()
            if next_tick < now:
                # tick persi: si riparte dal prossimo intervallo
                next_tick = now + interval - ((now - next_tick) % interval)
            if self._shutdown_event.wait(next_tick - now):
                break

        LOGGER.info("Getter fermato")

    def poll_once(self) -> None:
        gekko = self._config.mygekko
        self._round += 1

        if gekko.interval_items:
            LOGGER.info("Polling interval items: %s", gekko.interval_items)
            self.poll_categories(gekko.interval_items)

        if self._round >= gekko.interval_rounds:
            self._round = 0
            if gekko.main_items:
                LOGGER.info("Polling main items: %s", gekko.main_items)
                self.poll_categories(gekko.main_items)

    def poll_categories(self, categories: list[str]) -> None:
        for category in categories:
            LOGGER.debug("Categoria %s", category)
            status = self._gekko.get_status([category])

            items = status.get(category)
            if items is None:
                LOGGER.warning("Categoria %s non presente nella risposta", category)
                continue
            if not isinstance(items, dict):
                continue

            for item, item_data in items.items():
                if item.startswith(GROUP_PREFIX):
                    continue
                if not isinstance(item_data, dict):
                    continue
                sumstate = item_data.get("sumstate")
                if sumstate is None:
                    continue
                self.process_item(category, item, sumstate)

            self._mqtt.publish(self._topic(category, "get", "time"), int(time.time()))

    def process_item(self, category: str, item: str, sumstate: Any) -> None:
        if not isinstance(sumstate, dict):
            return
        raw = sumstate.get("value")
        if not isinstance(raw, str):
            return

        schema = self._registry.get(category)
        if schema is None:
            LOGGER.warning("Categoria sconosciuta: %s", category)
            return

        result = decode_and_dedupe(category, item, raw, schema, self._history)

        for name, value in result.changed.items():
            self._mqtt.publish(self._topic(category, item, "get", name), value)

        if result.any_change and result.fields:
            payload = dict(result.fields)
            payload["timestamp"] = int(time.time())
            self._mqtt.publish_json(self._topic(category, item, "get", "json"), payload)

    # setter

    def run_setter(self) -> None:
        LOGGER.info("Avvio setter")
        self._mqtt.publish(self._topic("setter_online"), ONLINE_PAYLOAD)

        for category in self._config.mygekko.categories:
            topic = self._topic(category, "+", "set")
            LOGGER.info("Subscribe %s", topic)
            self._mqtt.subscribe(topic, self.handle_set_command)

        LOGGER.info("In attesa di comandi MQTT")
        self._shutdown_event.wait()
        LOGGER.info("Setter fermato")

    def handle_set_command(self, topic: str, payload: bytes) -> None:
        if self._shutdown_event.is_set():
            return
        try:
            category, item = parse_command_topic(topic)
            value = decode_payload(payload)
            LOGGER.info("Comando scrittura %s/%s = %s", category, item, value)
            self._gekko.set_value(category, item, value)
        except Exception as exc:
            self.fail(exc)
