from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import requests

from gekko2mqtt.models import MyGekkoConfig

LOGGER = logging.getLogger(__name__)

API_PATH = "/api/v1/"
SET_OK = "OK"


class TransportError(RuntimeError):
    pass


class DeviceError(TransportError):
    pass


class CommandError(TransportError):
    pass


def _segment(value: str) -> str:
    return quote(value, safe="")


class MyGekkoClient:
    def __init__(self, config: MyGekkoConfig, session: requests.Session | None = None):
        self._config = config
        self.base_url = f"http://{config.host}{API_PATH}"
        self.timeout = config.timeout_sec
        self.session = session or requests.Session()

    def url_for(self, endpoint: str) -> str:
        return self.base_url + endpoint.lstrip("/")

    def params(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        params = {
            "username": self._config.username,
            "password": self._config.password,
        }
        if extra:
            params.update(extra)
        return params

    def get(self, endpoint: str) -> dict[str, Any]:
        try:
            r = self.session.get(self.url_for(endpoint), params=self.params(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise DeviceError(f"Richiesta HTTP fallita su {endpoint}: {exc}") from exc

        if r.status_code != 200:
            raise DeviceError(f"HTTP status {r.status_code} su {endpoint}")

        try:
            result = r.json()
        except ValueError as exc:
            raise DeviceError(f"JSON non valido da {endpoint}") from exc

        if not isinstance(result, dict):
            raise DeviceError(f"Risposta inattesa da {endpoint}: atteso un oggetto JSON")
        return result

    def get_status(self, categories: list[str] | None = None) -> dict[str, Any]:
        if not categories:
            return self.get("var/status")

        result: dict[str, Any] = {}
        for category in categories:
            try:
                result[category] = self.get(f"var/{_segment(category)}/status")
            except DeviceError as exc:
                raise DeviceError(f"Lettura stato {category} fallita: {exc}") from exc
        return result

    def set_value(self, category: str, item: str, value: str) -> None:
        endpoint = f"var/{_segment(category)}/{_segment(item)}/scmd/set"
        try:
            r = self.session.get(
                self.url_for(endpoint),
                params=self.params({"value": value}),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise CommandError(f"Richiesta HTTP fallita su {endpoint}: {exc}") from exc

        body = r.text.strip()
        LOGGER.debug("Risposta set %s/%s: status=%s body=%s", category, item, r.status_code, body)

        if r.status_code != 200:
            raise CommandError(f"HTTP status {r.status_code}: {body}")
        if body != SET_OK:
            raise CommandError(f"Risposta inattesa: {body}")

    def get_gekko_name(self) -> str:
        result = self.get("var/globals/network/gekkoname/status")
        value = result.get("value")
        if not isinstance(value, str):
            raise DeviceError("gekkoname non presente nella risposta")
        return value

    def get_definitions(self) -> dict[str, Any]:
        return self.get("var")

    def close(self) -> None:
        self.session.close()
