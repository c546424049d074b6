"""Tests for filter normalization and the active-filter state."""

import pytest

from monarch_grid.filters import FilterState, normalize_filter_rows
from monarch_grid.models import FilterRow, GroupUnit, SingleUnit
from monarch_grid.schema import parse_schema


def _rows(*rows):
    return parse_schema({"colModel": [{"field": "A"}], "filterView": [{"TD": list(r)} for r in rows]}).schema.filter_view


class TestNormalizeFilterRows:
    """Grouping of same-named text filters into one unit."""

    def test_group_collapses_at_first_member_position(self, customer_schema):
        normalized = normalize_filter_rows(customer_schema.filter_view)
        first = normalized.rows[0]
        assert first.key == "row-0"
        assert [unit.kind for unit in first.units] == ["group", "single", "single"]
        group = first.units[0]
        assert isinstance(group, GroupUnit)
        assert group.group_name == "keyword"
        assert [item.field for item in group.items] == ["CUST_NAME", "PHONE"]

    def test_unit_count_is_n_minus_m_plus_one(self):
        rows = _rows(
            [
                {"field": "A"},
                {"field": "B", "groupName": "g"},
                {"field": "C", "type": "date"},
                {"field": "D", "groupName": "g"},
                {"field": "E", "groupName": "g"},
            ]
        )
        units = normalize_filter_rows(rows).rows[0].units
        assert len(units) == 5 - 3 + 1
        assert [unit.key for unit in units] == ["A", "g", "C"]

    def test_default_selection_is_first_member(self, customer_schema):
        normalized = normalize_filter_rows(customer_schema.filter_view)
        assert normalized.default_selections == {"keyword": "CUST_NAME"}
        assert normalized.group_members == {"keyword": ["CUST_NAME", "PHONE"]}

    def test_group_name_on_non_text_stays_single(self):
        rows = _rows([{"field": "S", "type": "select", "groupName": "g"}, {"field": "T", "groupName": "g"}])
        units = normalize_filter_rows(rows).rows[0].units
        assert [unit.kind for unit in units] == ["single", "group"]

    def test_empty_input(self):
        normalized = normalize_filter_rows([])
        assert normalized.rows == []
        assert normalized.default_selections == {}

    def test_single_units_keep_items(self):
        units = normalize_filter_rows([FilterRow(items=[])]).rows[0].units
        assert units == []
        units = normalize_filter_rows(_rows([{"field": "A"}])).rows[0].units
        assert isinstance(units[0], SingleUnit)
        assert units[0].item.field == "A"


@pytest.fixture
def state():
    return FilterState({"keyword": "CUST_NAME"}, {"keyword": ["CUST_NAME", "PHONE"]})


class TestFilterState:
    """Mutation of the four filter maps and request flattening."""

    def test_group_switch_migrates_value(self, state):
        state.set_group_value("keyword", "kim")
        state.select_group_field("keyword", "PHONE")
        assert state.plain == {"PHONE": "kim"}
        assert state.group_value("keyword") == "kim"

    def test_group_switch_without_value(self, state):
        state.select_group_field("keyword", "PHONE")
        assert state.plain == {}
        assert state.group_selections == {"keyword": "PHONE"}

    def test_group_value_clears_other_members(self, state):
        state.set_plain("PHONE", "010")
        state.set_group_value("keyword", "kim")
        assert state.plain == {"CUST_NAME": "kim"}
        state.set_group_value("keyword", "")
        assert state.plain == {}

    def test_empty_plain_value_removes_key(self, state):
        state.set_plain("MEMO", "x")
        state.set_plain("MEMO", "")
        assert "MEMO" not in state.plain

    def test_dates_flatten_to_from_and_to(self, state):
        state.set_date("JOIN_DATE", "from", "2024-01-01")
        state.set_date("JOIN_DATE", "to", "2024-12-31")
        params = state.to_params()
        assert params["JOIN_DATE_FROM"] == "2024-01-01"
        assert params["JOIN_DATE_TO"] == "2024-12-31"
        assert "JOIN_DATE" not in params

    def test_clearing_both_date_bounds_removes_range(self, state):
        state.set_date("D", "from", "2024-01-01")
        state.set_date("D", "from", "")
        assert state.dates == {}

    def test_popup_contributes_raw_value(self, state):
        state.set_popup("MANAGER_NO", 17, "Lee")
        assert state.to_params() == {"MANAGER_NO": 17}
        state.clear_popup("MANAGER_NO")
        assert state.to_params() == {}

    def test_reset_restores_defaults(self, state):
        state.set_plain("MEMO", "x")
        state.set_date("D", "to", "2024-01-01")
        state.set_popup("P", "1", "one")
        state.select_group_field("keyword", "PHONE")
        state.reset()
        assert state.to_params() == {}
        assert state.group_selections == {"keyword": "CUST_NAME"}

    def test_signature_ignores_insertion_order(self):
        a = FilterState()
        a.set_plain("X", "1")
        a.set_plain("Y", "2")
        b = FilterState()
        b.set_plain("Y", "2")
        b.set_plain("X", "1")
        assert a.signature() == b.signature()
