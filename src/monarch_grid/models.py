"""Pydantic models for screen schemas, code options and normalized filter units.

Schema fields are declared in snake_case and read from the server's
camelCase keys (``colModel``, ``filterView``, ``labelAlign`` ...) through an
alias generator, mirroring how column props are converted to camelCase on
the JavaScript side.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Alignment = Literal["left", "center", "right"]
ColumnType = Literal["text", "date", "number"]

_ALIGNMENTS: tuple[str, ...] = ("left", "center", "right")
_COLUMN_TYPES: tuple[str, ...] = ("text", "date", "number")


def _flag(value: Any) -> bool:
    """Schema flags arrive as booleans or as the strings ``"true"``/``"false"``."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def _text(value: Any) -> str:
    return "" if value is None else str(value)


class SchemaModel(BaseModel):
    """Base for models parsed from server payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Layout and columns
# ---------------------------------------------------------------------------


class ColGroup(SchemaModel):
    """One layout column of the filter grid."""

    index: str = ""
    width: str = Field(default="100%", alias="Width")

    @field_validator("index", "width", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        return _text(value)


class ColumnModel(SchemaModel):
    """One result column (``colModel`` entry)."""

    field: str
    label: str = ""
    type: ColumnType = "text"
    align: Alignment = "center"
    label_align: Alignment = "center"
    mobile_imp: bool = False
    chip: bool = False

    @field_validator("field", mode="before")
    @classmethod
    def _field_required(cls, value: Any) -> str:
        text = _text(value).strip()
        if not text:
            raise ValueError("column field must be a non-empty string")
        return text

    @field_validator("label", mode="before")
    @classmethod
    def _label_text(cls, value: Any) -> str:
        return _text(value)

    @field_validator("type", mode="before")
    @classmethod
    def _known_type(cls, value: Any) -> str:
        return value if value in _COLUMN_TYPES else "text"

    @field_validator("align", "label_align", mode="before")
    @classmethod
    def _known_alignment(cls, value: Any) -> str:
        return value if value in _ALIGNMENTS else "center"

    @field_validator("mobile_imp", "chip", mode="before")
    @classmethod
    def _as_flag(cls, value: Any) -> bool:
        return _flag(value)


class ButtonConfig(SchemaModel):
    """An action button.  ``in_comm`` selects the behavior."""

    label: str = ""
    index: str = ""
    in_comm: str = ""
    mobile_allow: bool = False

    @field_validator("label", "index", "in_comm", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        return _text(value)

    @field_validator("mobile_allow", mode="before")
    @classmethod
    def _as_flag(cls, value: Any) -> bool:
        return _flag(value)


# ---------------------------------------------------------------------------
# Filter items (discriminated on ``type``)
# ---------------------------------------------------------------------------


class FilterItemBase(SchemaModel):
    field: str
    label: str = ""
    colspan: int = 1

    @field_validator("field", mode="before")
    @classmethod
    def _field_required(cls, value: Any) -> str:
        text = _text(value).strip()
        if not text:
            raise ValueError("filter field must be a non-empty string")
        return text

    @field_validator("label", mode="before")
    @classmethod
    def _label_text(cls, value: Any) -> str:
        return _text(value)

    @field_validator("colspan", mode="before")
    @classmethod
    def _positive_colspan(cls, value: Any) -> int:
        try:
            span = int(float(value))
        except (TypeError, ValueError):
            return 1
        return span if span >= 1 else 1


class TextFilter(FilterItemBase):
    type: Literal["text"] = "text"
    group_name: str = ""

    @field_validator("group_name", mode="before")
    @classmethod
    def _group_text(cls, value: Any) -> str:
        return _text(value).strip()


class SelectFilter(FilterItemBase):
    type: Literal["select"] = "select"
    code_group: str = Field(
        default="",
        validation_alias=AliasChoices("codeGroup", "codeGrp", "code_group"),
    )

    @field_validator("code_group", mode="before")
    @classmethod
    def _code_text(cls, value: Any) -> str:
        return _text(value).strip()


class DateFilter(FilterItemBase):
    type: Literal["date"] = "date"


class DateBetweenFilter(FilterItemBase):
    type: Literal["dateBetween"] = "dateBetween"


class PopupFilter(FilterItemBase):
    """A filter whose value is picked from a nested lookup grid."""

    type: Literal["popup"] = "popup"
    structure_name: str
    popup_key: str
    display_field: str

    @field_validator("structure_name", "popup_key", "display_field", mode="before")
    @classmethod
    def _required_text(cls, value: Any) -> str:
        text = _text(value).strip()
        if not text:
            raise ValueError("popup filters need structureName, popupKey and displayField")
        return text


FilterItem = Annotated[
    Union[TextFilter, SelectFilter, DateFilter, DateBetweenFilter, PopupFilter],
    Field(discriminator="type"),
]

FILTER_TYPES: tuple[str, ...] = ("text", "select", "date", "dateBetween", "popup")


class FilterRow(SchemaModel):
    """One visual row of filters (``{"TD": [...]}``)."""

    items: list[FilterItem] = Field(default_factory=list, alias="TD")


# ---------------------------------------------------------------------------
# Screen schema
# ---------------------------------------------------------------------------


class GridSchema(SchemaModel):
    """A fully parsed, defaulted screen schema."""

    title: str = ""
    service: str = ""
    method: str = ""
    key_name: str = ""
    order: str = ""
    colgroup: list[ColGroup] = Field(default_factory=list)
    col_model: list[ColumnModel] = Field(default_factory=list)
    filter_view: list[FilterRow] = Field(default_factory=list)
    buttons: list[ButtonConfig] = Field(default_factory=list)

    def filter_items(self) -> list[FilterItem]:
        """All filter items in declaration order."""
        return [item for row in self.filter_view for item in row.items]

    def code_groups(self) -> list[str]:
        """Distinct code groups referenced by select filters, in first-use order."""
        groups: list[str] = []
        for item in self.filter_items():
            if isinstance(item, SelectFilter) and item.code_group and item.code_group not in groups:
                groups.append(item.code_group)
        return groups

    def popup_filter(self, field: str) -> PopupFilter | None:
        for item in self.filter_items():
            if isinstance(item, PopupFilter) and item.field == field:
                return item
        return None


class CodeOption(BaseModel):
    """A ``{value, label}`` pair for select filters."""

    value: str
    label: str


# ---------------------------------------------------------------------------
# Normalized filter units
# ---------------------------------------------------------------------------


class SingleUnit(BaseModel):
    kind: Literal["single"] = "single"
    key: str
    item: FilterItem


class GroupUnit(BaseModel):
    """Text filters sharing a ``groupName``, rendered as one field picker + one input."""

    kind: Literal["group"] = "group"
    key: str
    group_name: str
    items: list[TextFilter]


RenderableUnit = Annotated[Union[SingleUnit, GroupUnit], Field(discriminator="kind")]


class ProcessedRow(BaseModel):
    key: str
    units: list[RenderableUnit]
