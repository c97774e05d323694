from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from gekko2mqtt.mygekko import MyGekkoClient, TransportError

LOGGER = logging.getLogger(__name__)

FIELD_SEPARATOR = ";"
ITEM_PREFIX = "item"
GROUP_PREFIX = "group"


class FieldKind(str, Enum):
    INTEGER = "int"
    FLOAT = "float"
    STRING = "string"
    SKIP = ""


TYPE_KINDS = {
    "int": FieldKind.INTEGER,
    # enum viaggiano come codice intero
    "enum": FieldKind.INTEGER,
    "float": FieldKind.FLOAT,
    "string": FieldKind.STRING,
    "null": FieldKind.SKIP,
}


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    kind: FieldKind

    @property
    def is_empty(self) -> bool:
        return not self.name


EMPTY_FIELD = FieldDescriptor(name="", kind=FieldKind.SKIP)

Schema = list[FieldDescriptor]
Registry = dict[str, Schema]
FieldValue = int | float | str


class FormatError(ValueError):
    pass


class SchemaError(ValueError):
    pass


def parse_field(raw: str) -> FieldDescriptor:
    """Parse one segment of a format string, e.g. ``"mode #vendor:enum[a,b]"``.

    Empty segments return ``EMPTY_FIELD``; callers drop them.
    """
    data = raw.strip()
    if not data:
        return EMPTY_FIELD

    name, sep, type_spec = data.partition(" ")
    if not sep:
        raise FormatError(f"Specifica di tipo mancante in '{data}'")

    # La parentesi va cercata prima dei ':', il contenuto puo' contenerne (xh:x=kW)
    bracket = type_spec.find("[")
    if bracket == -1:
        raise FormatError(f"Parentesi dei vincoli mancante in '{type_spec}'")

    type_name = type_spec[:bracket]
    _, colon, after = type_name.partition(":")
    if colon:
        type_name = after

    kind = TYPE_KINDS.get(type_name)
    if kind is None:
        raise FormatError(f"Tipo {type_name} non supportato")

    return FieldDescriptor(name=name, kind=kind)


def parse_format(format_string: str) -> tuple[Schema, list[FormatError]]:
    fields: Schema = []
    errors: list[FormatError] = []

    for segment in format_string.split(FIELD_SEPARATOR):
        try:
            field = parse_field(segment)
        except FormatError as exc:
            errors.append(exc)
            continue
        if not field.is_empty:
            fields.append(field)

    return fields, errors


def _first_item_format(items: dict[str, Any]) -> str | None:
    for item_name, item_data in items.items():
        if not item_name.startswith(ITEM_PREFIX):
            continue
        if not isinstance(item_data, dict):
            continue
        sumstate = item_data.get("sumstate")
        if not isinstance(sumstate, dict):
            continue
        format_string = sumstate.get("format")
        if isinstance(format_string, str):
            return format_string
    return None


def build_registry(definitions: dict[str, Any]) -> Registry:
    # Si assume che tutti gli item di una categoria condividano lo schema del primo.
    registry: Registry = {}

    for category, items in definitions.items():
        if not isinstance(items, dict):
            continue

        format_string = _first_item_format(items)
        if format_string is None:
            continue

        fields, errors = parse_format(format_string)
        for exc in errors:
            LOGGER.warning("Campo non valido in %s: %s", category, exc)

        if fields:
            registry[category] = fields

    for category, fields in registry.items():
        LOGGER.debug("%s:", category)
        for index, field in enumerate(fields):
            LOGGER.debug("  %d: %s (%s)", index, field.name, field.kind.name.lower())

    return registry


def load_registry(client: MyGekkoClient) -> Registry:
    LOGGER.info("Caricamento definizioni dei campi dalla API")
    try:
        definitions = client.get_definitions()
    except TransportError as exc:
        raise SchemaError(f"Impossibile leggere le definizioni: {exc}") from exc

    registry = build_registry(definitions)
    if not registry:
        raise SchemaError("Nessuna categoria con formato valido nelle definizioni")
    return registry


def convert_value(field: FieldDescriptor, raw_value: str) -> FieldValue:
    if field.kind == FieldKind.INTEGER:
        try:
            return int(raw_value, 10)
        except ValueError as exc:
            raise FormatError(f"Valore intero non valido per {field.name}: '{raw_value}'") from exc

    if field.kind == FieldKind.FLOAT:
        try:
            return float(raw_value)
        except ValueError as exc:
            raise FormatError(f"Valore decimale non valido per {field.name}: '{raw_value}'") from exc

    return raw_value


def decode_status(raw: str, schema: Schema) -> dict[str, FieldValue]:
    """Map the positional tokens of a sumstate value onto the schema.

    Skip fields and empty tokens are left out. Extra tokens are ignored.
    """
    values = raw.split(FIELD_SEPARATOR)
    decoded: dict[str, FieldValue] = {}

    for field, raw_value in zip(schema, values):
        if field.kind == FieldKind.SKIP or field.is_empty:
            continue
        if raw_value == "":
            continue
        decoded[field.name] = convert_value(field, raw_value)

    return decoded
