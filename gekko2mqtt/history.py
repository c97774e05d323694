from __future__ import annotations

import threading
from dataclasses import dataclass, field

from gekko2mqtt.protocol import FieldValue, Schema, decode_status

HistoryKey = tuple[str, str, str]


@dataclass
class DecodeResult:
    fields: dict[str, FieldValue] = field(default_factory=dict)
    changed: dict[str, FieldValue] = field(default_factory=dict)

    @property
    def any_change(self) -> bool:
        return bool(self.changed)


class HistoryCache:
    """Last value published for each (category, item, field)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._values: dict[HistoryKey, FieldValue] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, key: HistoryKey) -> bool:
        with self._lock:
            return key in self._values

    def get(self, key: HistoryKey) -> FieldValue | None:
        with self._lock:
            return self._values.get(key)

    def update(self, category: str, item: str, fields: dict[str, FieldValue]) -> dict[str, FieldValue]:
        changed: dict[str, FieldValue] = {}
        with self._lock:
            for name, value in fields.items():
                key = (category, item, name)
                if key in self._values and _same_value(self._values[key], value):
                    continue
                self._values[key] = value
                changed[name] = value
        return changed


def _same_value(old: FieldValue, new: FieldValue) -> bool:
    # 1 == 1.0 in Python, ma il tipo del campo conta
    return type(old) is type(new) and old == new


def decode_and_dedupe(
    category: str,
    item: str,
    raw: str,
    schema: Schema,
    history: HistoryCache,
) -> DecodeResult:
    fields = decode_status(raw, schema)
    changed = history.update(category, item, fields)
    return DecodeResult(fields=fields, changed=changed)
