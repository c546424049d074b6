"""Render-model helpers: pure functions from schema/snapshot to plain dicts.

The Reflex components iterate over these dicts with ``rx.foreach``; all
sizing, formatting and column splitting happens here so the component
layer contains no parsing logic.
"""

import math
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timezone
from typing import Any, Literal

from monarch_grid.models import (
    ButtonConfig,
    ColumnModel,
    GridSchema,
    GroupUnit,
    PopupFilter,
    ProcessedRow,
    SelectFilter,
)

GRID_UNITS: int = 12
PAGE_WINDOW: int = 5

ButtonAction = Literal["search", "reset", "export", "custom"]

# Palette order matters: a value's color is palette[sum(ord(c)) % 6].
CHIP_PALETTE: tuple[str, ...] = ("primary", "secondary", "success", "info", "warning", "error")
CHIP_COLOR_SCHEMES: dict[str, str] = {
    "primary": "blue",
    "secondary": "purple",
    "success": "green",
    "info": "cyan",
    "warning": "orange",
    "error": "red",
}

ROW_KEY_FIELD: str = "__key__"
CHIP_KEY_PREFIX: str = "__chip__"


# ---------------------------------------------------------------------------
# Cell values
# ---------------------------------------------------------------------------


def chip_color(value: Any) -> str:
    """Deterministic palette name for a chip value, hashed from its raw text."""
    if value is None:
        text = ""
    elif isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, float) and value.is_integer():
        text = str(int(value))
    else:
        text = str(value)
    return CHIP_PALETTE[sum(ord(char) for char in text) % len(CHIP_PALETTE)]


def chip_color_scheme(value: Any) -> str:
    return CHIP_COLOR_SCHEMES[chip_color(value)]


def format_date(value: Any) -> str:
    """Format a date-ish value as ``YYYY-MM-DD``; unparseable values pass through."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).date().isoformat()
        except (OverflowError, OSError, ValueError):
            return str(value)
    text = str(value).strip()
    if not text:
        return ""
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def format_cell_value(column: ColumnModel, value: Any) -> str:
    """Display/export text of one cell."""
    if value is None:
        return ""
    if column.type == "date":
        return format_date(value)
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def display_rows(schema: GridSchema, rows: Sequence[dict[str, Any]]) -> list[dict[str, str]]:
    """Stringified rows keyed by column field, plus row key and chip colors."""
    result = []
    for position, row in enumerate(rows):
        shown: dict[str, str] = {}
        for column in schema.col_model:
            raw = row.get(column.field)
            text = format_cell_value(column, raw)
            shown[column.field] = text
            if column.chip:
                shown[CHIP_KEY_PREFIX + column.field] = chip_color_scheme(raw) if text else ""
        key = row.get(schema.key_name) if schema.key_name else None
        shown[ROW_KEY_FIELD] = str(key) if key is not None else str(position)
        result.append(shown)
    return result


def column_dicts(columns: Iterable[ColumnModel]) -> list[dict[str, str]]:
    return [
        {
            "field": column.field,
            "label": column.label,
            "type": column.type,
            "align": column.align,
            "label_align": column.label_align,
            "chip": "true" if column.chip else "",
            "chip_key": CHIP_KEY_PREFIX + column.field,
        }
        for column in columns
    ]


def split_mobile_columns(
    columns: Sequence[ColumnModel],
) -> tuple[ColumnModel | None, list[ColumnModel], list[ColumnModel]]:
    """Split columns for the mobile card: ``(title, preview, detail)``.

    The first column is the card title.  Of the rest, ``mobile_imp``
    columns preview and the others collapse into the detail section; when
    none is flagged everything previews and there is no detail.
    """
    if not columns:
        return None, [], []
    title, rest = columns[0], list(columns[1:])
    if not any(column.mobile_imp for column in rest):
        return title, rest, []
    preview = [column for column in rest if column.mobile_imp]
    detail = [column for column in rest if not column.mobile_imp]
    return title, preview, detail


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def unit_width(colspan: int, total_columns: int) -> int:
    """Desktop width of a filter control in 12-unit grid columns."""
    total = max(1, total_columns)
    width = math.floor(colspan / total * GRID_UNITS + 0.5)
    return min(GRID_UNITS, max(1, width))


def render_filter_rows(
    rows: Sequence[ProcessedRow],
    group_selections: dict[str, str],
    total_columns: int,
) -> list[list[dict[str, str]]]:
    """Flatten normalized filter rows into dicts for ``rx.foreach``."""
    rendered: list[list[dict[str, str]]] = []
    for row in rows:
        units: list[dict[str, str]] = []
        for unit in row.units:
            if isinstance(unit, GroupUnit):
                selected = group_selections.get(unit.group_name, unit.items[0].field)
                active = next((m for m in unit.items if m.field == selected), unit.items[0])
                colspan = active.colspan
                entry = {
                    "kind": "group",
                    "key": unit.key,
                    "type": "text",
                    "field": active.field,
                    "label": active.label,
                    "group_name": unit.group_name,
                    "code_group": "",
                }
            else:
                item = unit.item
                colspan = item.colspan
                entry = {
                    "kind": "single",
                    "key": unit.key,
                    "type": item.type,
                    "field": item.field,
                    "label": item.label,
                    "group_name": "",
                    "code_group": item.code_group if isinstance(item, SelectFilter) else "",
                }
            entry["grid_column"] = f"span {unit_width(colspan, total_columns)}"
            units.append(entry)
        rendered.append(units)
    return rendered


def group_option_dicts(rows: Sequence[ProcessedRow]) -> dict[str, list[dict[str, str]]]:
    """Selectable member fields of every group, keyed by group name."""
    options: dict[str, list[dict[str, str]]] = {}
    for row in rows:
        for unit in row.units:
            if isinstance(unit, GroupUnit):
                members = options.setdefault(unit.group_name, [])
                for item in unit.items:
                    if all(member["field"] != item.field for member in members):
                        members.append({"field": item.field, "label": item.label or item.field})
    return options


def popup_fields(schema: GridSchema) -> list[str]:
    return [item.field for item in schema.filter_items() if isinstance(item, PopupFilter)]


# ---------------------------------------------------------------------------
# Buttons and paging
# ---------------------------------------------------------------------------


def button_action(button: ButtonConfig) -> ButtonAction:
    if button.in_comm == "List":
        return "search"
    if button.in_comm == "initialize":
        return "reset"
    if button.index == "excelDown":
        return "export"
    return "custom"


def visible_buttons(buttons: Sequence[ButtonConfig], *, mobile: bool = False) -> list[ButtonConfig]:
    """Buttons to show.  On mobile only search, reset and ``mobile_allow``
    buttons remain, with search moved to the end."""
    if not mobile:
        return list(buttons)
    kept = [
        button
        for button in buttons
        if button.mobile_allow or button_action(button) in ("search", "reset")
    ]
    others = [button for button in kept if button_action(button) != "search"]
    searches = [button for button in kept if button_action(button) == "search"]
    return others + searches


def button_dicts(buttons: Iterable[ButtonConfig]) -> list[dict[str, str]]:
    return [
        {"label": button.label, "index": button.index, "action": button_action(button)}
        for button in buttons
    ]


def total_pages(total_count: int, page_size: int) -> int:
    if page_size <= 0:
        return 0
    return math.ceil(max(0, total_count) / page_size)


def page_window(page: int, pages: int, width: int = PAGE_WINDOW) -> list[int]:
    """Page numbers to show around *page*, at most *width* of them."""
    if pages <= 0:
        return []
    width = max(1, width)
    start = max(1, page - width // 2)
    end = min(pages, start + width - 1)
    start = max(1, end - width + 1)
    return list(range(start, end + 1))
