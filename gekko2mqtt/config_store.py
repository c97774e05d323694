from __future__ import annotations

import copy
import json
import tomllib
from pathlib import Path
from threading import RLock

from gekko2mqtt.models import AppConfig


class ConfigError(ValueError):
    pass


class ConfigStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = RLock()
        self._config = self._load()

    @property
    def config(self) -> AppConfig:
        with self._lock:
            return copy.deepcopy(self._config)

    def _read_raw(self) -> dict:
        try:
            if self.path.suffix.lower() == ".toml":
                with self.path.open("rb") as handle:
                    return tomllib.load(handle)
            with self.path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except OSError as exc:
            raise ConfigError(f"Impossibile leggere il file di configurazione {self.path}: {exc}") from exc
        except ValueError as exc:
            raise ConfigError(f"Impossibile interpretare il file di configurazione {self.path}: {exc}") from exc

    def _load(self) -> AppConfig:
        raw = self._read_raw()
        if not isinstance(raw, dict):
            raise ConfigError("La configurazione deve essere un oggetto")

        try:
            config = AppConfig.from_dict(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Valore di configurazione non valido: {exc}") from exc

        validate(config)
        return config


def validate(config: AppConfig) -> None:
    gekko = config.mygekko
    if not gekko.host:
        raise ConfigError("mygekko.host obbligatorio")
    if not gekko.username:
        raise ConfigError("mygekko.username obbligatorio")
    if not gekko.password:
        raise ConfigError("mygekko.password obbligatoria")
    if gekko.interval <= 0:
        raise ConfigError("mygekko.interval deve essere positivo")
    if gekko.interval_rounds <= 0:
        raise ConfigError("mygekko.interval_rounds deve essere positivo")
    if gekko.timeout_sec <= 0:
        raise ConfigError("mygekko.timeout_sec deve essere positivo")
    if not gekko.interval_items and not gekko.main_items:
        raise ConfigError("Serve almeno una categoria in mygekko.interval_items o mygekko.main_items")

    mqtt = config.mqtt
    if not mqtt.host and not mqtt.socket:
        raise ConfigError("Serve mqtt.host oppure mqtt.socket")
    if not mqtt.root:
        raise ConfigError("mqtt.root obbligatorio")
    if mqtt.port <= 0:
        raise ConfigError("Porta MQTT non valida")
    if mqtt.keepalive <= 0:
        raise ConfigError("mqtt.keepalive deve essere positivo")
