"""Filter normalization and the mutable active-filter state.

:func:`normalize_filter_rows` is pure: it turns schema filter rows into
render-ready units and computes default group selections.
:class:`FilterState` holds the four query-affecting maps (plain values,
date ranges, popup selections, group selections) and flattens them into
request parameters.
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal, NamedTuple

from monarch_grid.models import FilterRow, GroupUnit, ProcessedRow, SingleUnit, TextFilter

DateBound = Literal["from", "to"]


class NormalizedFilters(NamedTuple):
    rows: list[ProcessedRow]
    default_selections: dict[str, str]
    group_members: dict[str, list[str]]


def normalize_filter_rows(rows: Sequence[FilterRow]) -> NormalizedFilters:
    """Collapse grouped text filters and wrap everything else as single units.

    Within a row, ``text`` items sharing a non-empty ``group_name`` become
    one :class:`GroupUnit` placed where the first member appeared.  The
    default selection of each group is the field of its first member in
    declaration order.
    """
    processed: list[ProcessedRow] = []
    defaults: dict[str, str] = {}
    members: dict[str, list[str]] = {}

    for row_index, row in enumerate(rows):
        units: list[SingleUnit | GroupUnit] = []
        groups: dict[str, GroupUnit] = {}
        for item_index, item in enumerate(row.items):
            if isinstance(item, TextFilter) and item.group_name:
                name = item.group_name
                if name not in groups:
                    groups[name] = GroupUnit(key=name, group_name=name, items=[])
                    units.append(groups[name])
                groups[name].items.append(item)
                defaults.setdefault(name, item.field)
                if item.field not in members.setdefault(name, []):
                    members[name].append(item.field)
            else:
                units.append(SingleUnit(key=item.field or f"single-{item_index}", item=item))
        processed.append(ProcessedRow(key=f"row-{row_index}", units=units))

    return NormalizedFilters(rows=processed, default_selections=defaults, group_members=members)


@dataclass
class DateRange:
    start: str = ""
    end: str = ""

    def is_empty(self) -> bool:
        return not self.start and not self.end


@dataclass(frozen=True)
class PopupValue:
    """A popup selection: the raw key sent to the backend and its display label."""

    value: Any = None
    display: str = ""


class FilterState:
    """The four active-filter maps of one grid.

    Empty values are removed rather than stored, so a cleared field and an
    untouched field produce the same request parameters.
    """

    def __init__(
        self,
        default_selections: dict[str, str] | None = None,
        group_members: dict[str, list[str]] | None = None,
    ) -> None:
        self.default_selections: dict[str, str] = dict(default_selections or {})
        self.group_members: dict[str, list[str]] = {
            name: list(fields) for name, fields in (group_members or {}).items()
        }
        self.plain: dict[str, str] = {}
        self.dates: dict[str, DateRange] = {}
        self.popups: dict[str, PopupValue] = {}
        self.group_selections: dict[str, str] = dict(self.default_selections)

    # -- mutation ---------------------------------------------------------

    def set_plain(self, field: str, value: str) -> None:
        if value:
            self.plain[field] = value
        else:
            self.plain.pop(field, None)

    def set_date(self, field: str, bound: DateBound, value: str) -> None:
        current = self.dates.get(field, DateRange())
        if bound == "from":
            updated = DateRange(start=value or "", end=current.end)
        else:
            updated = DateRange(start=current.start, end=value or "")
        if updated.is_empty():
            self.dates.pop(field, None)
        else:
            self.dates[field] = updated

    def set_popup(self, field: str, value: Any, display: str = "") -> None:
        if value is None or value == "":
            self.popups.pop(field, None)
        else:
            self.popups[field] = PopupValue(value=value, display=display)

    def clear_popup(self, field: str) -> None:
        self.popups.pop(field, None)

    def select_group_field(self, group: str, field: str) -> None:
        """Switch the active field of *group*, carrying any typed value over."""
        previous = self.group_selections.get(group)
        self.group_selections[group] = field
        if previous is None or previous == field:
            return
        value = self.plain.pop(previous, "")
        if value:
            self.plain[field] = value

    def set_group_value(self, group: str, value: str) -> None:
        """Set the value of *group*'s active field; other members are cleared."""
        for member in self.group_members.get(group, []):
            self.plain.pop(member, None)
        selected = self.group_selections.get(group)
        if selected and value:
            self.plain[selected] = value

    def group_value(self, group: str) -> str:
        selected = self.group_selections.get(group, "")
        return self.plain.get(selected, "")

    def reset(self) -> None:
        self.plain.clear()
        self.dates.clear()
        self.popups.clear()
        self.group_selections = dict(self.default_selections)

    # -- request payload --------------------------------------------------

    def to_params(self) -> dict[str, Any]:
        """Flatten the filters into request parameters.

        Date ranges become ``<FIELD>_FROM`` / ``<FIELD>_TO`` and popup
        filters contribute their raw value, never the display label.
        """
        params: dict[str, Any] = dict(self.plain)
        for field, date_range in self.dates.items():
            if date_range.start:
                params[f"{field}_FROM"] = date_range.start
            if date_range.end:
                params[f"{field}_TO"] = date_range.end
        for field, popup in self.popups.items():
            params[field] = popup.value
        return params

    def signature(self) -> str:
        return json.dumps(self.to_params(), sort_keys=True, default=str, ensure_ascii=False)
