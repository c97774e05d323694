from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_INTERVAL_SEC = 5.0
DEFAULT_INTERVAL_ROUNDS = 4


def _str_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    return [str(item).strip() for item in value if str(item).strip()]


def _bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes", "on"}:
            return True
        if normalized in {"false", "0", "no", "off"}:
            return False
    raise ValueError(f"valore booleano non valido: {value!r}")


@dataclass
class MyGekkoConfig:
    host: str = ""
    username: str = ""
    password: str = ""
    interval: float = DEFAULT_INTERVAL_SEC
    interval_items: list[str] = field(default_factory=list)
    main_items: list[str] = field(default_factory=list)
    interval_rounds: int = DEFAULT_INTERVAL_ROUNDS
    timeout_sec: float = 60.0

    @property
    def categories(self) -> list[str]:
        return sorted(set(self.interval_items) | set(self.main_items))

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "username": self.username,
            "password": self.password,
            "interval": self.interval,
            "interval_items": list(self.interval_items),
            "main_items": list(self.main_items),
            "interval_rounds": self.interval_rounds,
            "timeout_sec": self.timeout_sec,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "MyGekkoConfig":
        # 0 o assente -> default
        return MyGekkoConfig(
            host=str(data.get("host", "")).strip(),
            username=str(data.get("username", "")),
            password=str(data.get("password", "")),
            interval=float(data.get("interval") or DEFAULT_INTERVAL_SEC),
            interval_items=_str_list(data.get("interval_items")),
            main_items=_str_list(data.get("main_items")),
            interval_rounds=int(data.get("interval_rounds") or DEFAULT_INTERVAL_ROUNDS),
            timeout_sec=float(data.get("timeout_sec") or 60.0),
        )


@dataclass
class MQTTConfig:
    root: str = ""
    host: str = ""
    port: int = 8883
    socket: str = ""
    tls: bool = True
    username: str = ""
    password: str = ""
    client_id: str = "mygekko-mqtt"
    keepalive: int = 60
    connect_timeout_sec: float = 30.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "host": self.host,
            "port": self.port,
            "socket": self.socket,
            "tls": self.tls,
            "username": self.username,
            "password": self.password,
            "client_id": self.client_id,
            "keepalive": self.keepalive,
            "connect_timeout_sec": self.connect_timeout_sec,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "MQTTConfig":
        return MQTTConfig(
            root=str(data.get("root", "")).strip().strip("/"),
            host=str(data.get("host", "")).strip(),
            port=int(data.get("port", 8883)),
            socket=str(data.get("socket", "")).strip(),
            tls=_bool(data.get("tls"), True),
            username=str(data.get("username", "")),
            password=str(data.get("password", "")),
            client_id=str(data.get("client_id", "")).strip() or "mygekko-mqtt",
            keepalive=int(data.get("keepalive", 60)),
            connect_timeout_sec=float(data.get("connect_timeout_sec", 30.0)),
        )


@dataclass
class AppConfig:
    log_level: str = "INFO"
    mygekko: MyGekkoConfig = field(default_factory=MyGekkoConfig)
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)

    def to_dict(self) -> dict[str, Any]:
        return {
            "log_level": self.log_level,
            "mygekko": self.mygekko.to_dict(),
            "mqtt": self.mqtt.to_dict(),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "AppConfig":
        mygekko = MyGekkoConfig.from_dict(data.get("mygekko") or {})
        mqtt = MQTTConfig.from_dict(data.get("mqtt") or {})
        log_level = str(data.get("log_level") or "INFO").strip().upper() or "INFO"
        return AppConfig(log_level=log_level, mygekko=mygekko, mqtt=mqtt)
