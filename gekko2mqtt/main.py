from __future__ import annotations

import argparse
import logging
import os
import signal
import sys

from gekko2mqtt.config_store import ConfigError, ConfigStore
from gekko2mqtt.mqtt_bridge import (
    ConnectionLostError,
    MqttBridge,
    MqttConnectError,
    PublishError,
    SubscribeError,
)
from gekko2mqtt.mygekko import CommandError, DeviceError, MyGekkoClient, TransportError
from gekko2mqtt.protocol import FormatError, SchemaError, load_registry
from gekko2mqtt.service import BridgeService, RouteError

LOGGER = logging.getLogger("gekko2mqtt")

EXIT_OK = 0
EXIT_FAILURE = 1

EXIT_CODES: dict[type[BaseException], int] = {
    ConfigError: 1,
    MqttConnectError: 1,
    SchemaError: 2,
    FormatError: 5,
    PublishError: 6,
    SubscribeError: 7,
    RouteError: 8,
    CommandError: 9,
    ConnectionLostError: 10,
    DeviceError: 11,
}


def exit_code_for(exc: BaseException) -> int:
    for cls in type(exc).__mro__:
        if cls in EXIT_CODES:
            return EXIT_CODES[cls]
    return EXIT_FAILURE


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="gekko2mqtt", description="Bridge MyGekko <-> MQTT")
    parser.add_argument(
        "--config",
        default=os.getenv("GEKKO2MQTT_CONFIG", "./config/config.json"),
        help="percorso del file di configurazione (JSON o TOML)",
    )
    return parser.parse_args(argv)


def run(config_path: str) -> int:
    try:
        cfg = ConfigStore(config_path).config
    except ConfigError as exc:
        setup_logging()
        LOGGER.error("Configurazione non valida: %s", exc)
        return exit_code_for(exc)

    setup_logging(cfg.log_level)
    LOGGER.info("Avvio bridge mygekko-mqtt")

    gekko = MyGekkoClient(cfg.mygekko)
    try:
        try:
            gekko_name = gekko.get_gekko_name()
        except TransportError as exc:
            raise SchemaError(f"Impossibile leggere il nome del gekko: {exc}") from exc
        LOGGER.info("Nome gekko: %s", gekko_name)
        registry = load_registry(gekko)
    except SchemaError as exc:
        LOGGER.error("%s", exc)
        gekko.close()
        return exit_code_for(exc)

    mqtt = MqttBridge(cfg.mqtt)
    try:
        mqtt.connect()
    except MqttConnectError as exc:
        LOGGER.error("%s", exc)
        gekko.close()
        return exit_code_for(exc)

    service = BridgeService(cfg, gekko, mqtt, registry, gekko_name)
    mqtt.set_connection_lost_handler(service.fail)

    def _shutdown(signum, frame):
        LOGGER.info("Ricevuto segnale %s, arresto in corso", signal.Signals(signum).name)
        service.stop()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    try:
        service.start()
        # wait a intervalli per lasciare passare i segnali al thread principale
        while not service.wait(timeout=1.0):
            pass
        service.stop()
    finally:
        mqtt.disconnect()
        gekko.close()

    error = service.error
    if error is None:
        return EXIT_OK
    return exit_code_for(error)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    sys.exit(run(args.config))


if __name__ == "__main__":
    main()
