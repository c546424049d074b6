"""Turn a raw schema payload into a validated, defaulted :class:`GridSchema`.

The payload may be a mapping or a relaxed-JSON string.  Parsing never
raises: a payload that cannot be interpreted yields an empty, defaulted
schema and a list of human-readable warnings.  Individual entries are
validated one by one so a single bad column or filter item is dropped
without discarding the rest of the screen.
"""

import json
from collections.abc import Mapping
from typing import Any, NamedTuple

from pydantic import TypeAdapter, ValidationError
from reflex.utils import console

from monarch_grid import relaxed_json
from monarch_grid.errors import SchemaParseError
from monarch_grid.models import (
    FILTER_TYPES,
    ButtonConfig,
    ColGroup,
    ColumnModel,
    FilterItem,
    FilterRow,
    GridSchema,
)

_FILTER_ITEM_ADAPTER: TypeAdapter[Any] = TypeAdapter(FilterItem)

DEFAULT_BUTTONS: tuple[dict[str, str], ...] = (
    {"label": "조회", "index": "List", "inComm": "List"},
    {"label": "초기화", "index": "Init", "inComm": "initialize"},
)
DEFAULT_COLGROUP: dict[str, str] = {"index": "Col1", "Width": "100%"}

_SCALAR_KEYS: dict[str, str] = {
    "title": "title",
    "service": "service",
    "method": "method",
    "keyName": "key_name",
    "order": "order",
}


class ParsedSchema(NamedTuple):
    schema: GridSchema
    warnings: list[str]


def _first_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error['msg']}" if location else error["msg"]


def _as_list(value: Any, key: str, warnings: list[str]) -> list[Any]:
    """Return *value* as a list with ``None`` holes removed."""
    if value is None:
        return []
    if not isinstance(value, list):
        warnings.append(f"'{key}' is not a list; ignored")
        return []
    return [entry for entry in value if entry is not None]


def _load_payload(raw: Any) -> dict[str, Any]:
    """Decode *raw* into a schema mapping.

    Raises:
        SchemaParseError: If *raw* is not a mapping or valid relaxed JSON
            describing an object.
    """
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (str, bytes)):
        if not raw.strip():
            raise SchemaParseError("schema text is empty")
        try:
            decoded = relaxed_json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise SchemaParseError(f"schema text is not valid JSON: {exc}") from exc
        if not isinstance(decoded, dict):
            raise SchemaParseError(f"schema must be an object, got {type(decoded).__name__}")
        return decoded
    raise SchemaParseError(f"unsupported schema payload type {type(raw).__name__}")


def _parse_filter_item(entry: Any, where: str, warnings: list[str]) -> Any | None:
    if not isinstance(entry, Mapping):
        warnings.append(f"{where}: filter item is not an object; dropped")
        return None
    data = dict(entry)
    if not data.get("type"):
        data["type"] = "text"
    if data["type"] not in FILTER_TYPES:
        warnings.append(f"{where}: unknown filter type {data['type']!r}; dropped")
        return None
    try:
        return _FILTER_ITEM_ADAPTER.validate_python(data)
    except ValidationError as exc:
        warnings.append(f"{where}: invalid filter item ({_first_error(exc)}); dropped")
        return None


def _parse_filter_view(value: Any, warnings: list[str]) -> list[FilterRow]:
    entries = _as_list(value, "filterView", warnings)
    if not entries:
        return []

    first = entries[0]
    if not (isinstance(first, Mapping) and "TD" in first):
        # Legacy flat list: the whole list becomes one synthetic row.
        raw_rows: list[list[Any]] = [entries]
    else:
        raw_rows = []
        for position, entry in enumerate(entries):
            if isinstance(entry, Mapping) and "TD" in entry:
                raw_rows.append(_as_list(entry["TD"], f"filterView[{position}].TD", warnings))
            else:
                warnings.append(f"filterView[{position}] has no 'TD'; dropped")

    rows: list[FilterRow] = []
    for row_index, raw_items in enumerate(raw_rows):
        items = []
        for item_index, entry in enumerate(raw_items):
            item = _parse_filter_item(entry, f"filterView[{row_index}][{item_index}]", warnings)
            if item is not None:
                items.append(item)
        rows.append(FilterRow(items=items))
    return rows


def _parse_entries(value: Any, key: str, model: type, warnings: list[str]) -> list[Any]:
    parsed = []
    for position, entry in enumerate(_as_list(value, key, warnings)):
        if not isinstance(entry, Mapping):
            warnings.append(f"{key}[{position}] is not an object; dropped")
            continue
        try:
            parsed.append(model.model_validate(entry))
        except ValidationError as exc:
            warnings.append(f"{key}[{position}] invalid ({_first_error(exc)}); dropped")
    return parsed


def build_schema(data: Mapping[str, Any], warnings: list[str]) -> GridSchema:
    """Validate a decoded schema mapping and apply defaults.

    Warnings for dropped or defaulted parts are appended to *warnings*.
    """
    scalars = {
        attr: "" if data.get(key) is None else str(data.get(key))
        for key, attr in _SCALAR_KEYS.items()
    }

    colgroup = _parse_entries(data.get("colgroup"), "colgroup", ColGroup, warnings)
    if not colgroup:
        colgroup = [ColGroup.model_validate(DEFAULT_COLGROUP)]

    columns = _parse_entries(data.get("colModel"), "colModel", ColumnModel, warnings)
    if not columns:
        warnings.append("schema has no usable columns ('colModel' is empty)")

    buttons = _parse_entries(data.get("buttons"), "buttons", ButtonConfig, warnings)
    if not buttons:
        buttons = [ButtonConfig.model_validate(button) for button in DEFAULT_BUTTONS]

    return GridSchema(
        colgroup=colgroup,
        col_model=columns,
        filter_view=_parse_filter_view(data.get("filterView"), warnings),
        buttons=buttons,
        **scalars,
    )


def parse_schema(raw: Any, *, screen_id: str = "") -> ParsedSchema:
    """Parse a schema payload (mapping or relaxed-JSON text) without raising.

    Args:
        raw: The ``structureCont`` value returned by the schema endpoint,
            or the contents of a schema file.
        screen_id: Used only to label log messages.

    Returns:
        A ``(schema, warnings)`` pair.  When the payload cannot be decoded
        at all, ``schema`` is the defaulted empty schema.
    """
    warnings: list[str] = []
    try:
        data = _load_payload(raw)
    except SchemaParseError as exc:
        warnings.append(str(exc))
        data = {}

    schema = build_schema(data, warnings)
    label = screen_id or "<inline>"
    for warning in warnings:
        console.warn(f"[DynamicGrid] schema {label}: {warning}")
    return ParsedSchema(schema=schema, warnings=warnings)
