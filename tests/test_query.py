"""Tests for the query orchestrator: lifecycle, dedup, ordering, debounce, popups."""

import asyncio

import pytest

from monarch_grid.client import DataPage
from monarch_grid.errors import NoRowsToExportError
from monarch_grid.filters import PopupValue
from monarch_grid.query import FetchStatus, FilterKind, GridStatus

pytestmark = pytest.mark.asyncio


async def _ready(make_query, screen_id="CUST_LIST", **kwargs):
    query = make_query(**kwargs)
    await query.initialize(screen_id)
    return query


class TestInitialize:
    """Schema load, defaults and the first fetch."""

    async def test_initialize_loads_schema_and_first_page(self, make_query, fake_client):
        """Initialization fetches schema, resolves codes and page 1."""
        query = await _ready(make_query)

        assert query.status is GridStatus.READY
        assert query.fetch_status is FetchStatus.LOADED
        assert query.schema.title == "Customers"
        assert query.page == 1
        assert query.rows[0]["CUST_NO"] == "C1"
        assert query.total_count == 42
        assert [o.value for o in query.options["CUST_STATUS"]] == ["ACTIVE", "DORMANT"]
        assert query.filters.group_selections == {"keyword": "CUST_NAME"}
        assert len(fake_client.data_calls) == 1

    async def test_request_carries_schema_and_session(self, make_query, fake_client):
        await _ready(make_query)
        params = fake_client.data_calls[0]
        assert params["serviceName"] == "CUSTOMER"
        assert params["methodName"] == "LIST"
        assert params["USITE"] == 7
        assert params["UID"] == 42
        assert params["_page"] == 1
        assert params["_size"] == 10
        assert params["_sort"] == "CUST_NO DESC"

    async def test_schema_fetch_failure_is_blocking(self, make_query, fake_client):
        query = await _ready(make_query, "MISSING")
        assert query.status is GridStatus.FAILED
        assert "MISSING" in query.error
        assert fake_client.data_calls == []

    async def test_unparseable_schema_still_initializes(self, make_query, fake_client):
        """A malformed schema degrades to defaults instead of failing."""
        fake_client.schemas["BROKEN"] = "{ not json"
        query = await _ready(make_query, "BROKEN")
        assert query.status is GridStatus.READY
        assert query.warnings
        assert len(query.schema.buttons) == 2

    async def test_reinitialize_resets_state(self, make_query, fake_client):
        query = await _ready(make_query)
        query.set_filter(FilterKind.PLAIN, "MEMO", "vip")
        await query.paginate(3)

        await query.initialize("CUST_LIST")

        assert query.page == 1
        assert query.filters.to_params() == {}
        assert fake_client.data_calls[-1]["_page"] == 1

    async def test_stale_initialization_is_discarded(self, make_query, fake_client):
        """An older initialize finishing last must not overwrite the newer one."""
        fake_client.schemas["OTHER"] = {"title": "Other", "service": "O", "method": "L", "colModel": [{"field": "X"}]}
        slow = asyncio.Event()
        fake_client.schema_gates["CUST_LIST"] = slow
        query = make_query()

        first = asyncio.ensure_future(query.initialize("CUST_LIST"))
        await asyncio.sleep(0)
        await query.initialize("OTHER")
        slow.set()
        await first

        assert query.screen_id == "OTHER"
        assert query.schema.title == "Other"
        assert [call["serviceName"] for call in fake_client.data_calls] == ["O"]


class TestFetchDedup:
    """Identical signatures issue one request."""

    async def test_identical_search_is_not_refetched(self, make_query, fake_client):
        query = await _ready(make_query)
        await query.search()
        await query.search()
        assert len(fake_client.data_calls) == 1

    async def test_changed_filter_refetches(self, make_query, fake_client):
        query = await _ready(make_query)
        query.set_filter(FilterKind.PLAIN, "MEMO", "vip")
        await query.search()
        assert len(fake_client.data_calls) == 2
        assert fake_client.data_calls[-1]["MEMO"] == "vip"

    async def test_failed_fetch_can_be_retried(self, make_query, fake_client):
        query = await _ready(make_query)
        query.set_filter(FilterKind.PLAIN, "MEMO", "vip")
        fake_client.fail_data = True
        await query.search()

        assert query.fetch_status is FetchStatus.ERROR
        assert query.rows == []
        assert query.error
        assert query.filters.plain == {"MEMO": "vip"}

        fake_client.fail_data = False
        await query.search()
        assert query.fetch_status is FetchStatus.LOADED
        assert len(fake_client.data_calls) == 3


class TestSearchAndPaging:
    """Atomic search, reset, pagination and page size."""

    async def test_search_from_later_page_fetches_once_on_page_one(self, make_query, fake_client):
        query = await _ready(make_query)
        await query.paginate(3)
        query.set_filter(FilterKind.PLAIN, "MEMO", "vip")

        await query.search()

        assert query.page == 1
        assert [call["_page"] for call in fake_client.data_calls] == [1, 3, 1]

    async def test_paginate_is_clamped(self, make_query, fake_client):
        query = await _ready(make_query)
        await query.paginate(99)
        assert query.page == 5
        await query.paginate(0)
        assert query.page == 1

    async def test_page_size_change_resets_page(self, make_query, fake_client):
        query = await _ready(make_query)
        await query.paginate(2)
        await query.set_page_size(20)
        assert query.page == 1
        assert fake_client.data_calls[-1]["_size"] == 20

    async def test_reset_clears_filters_and_restores_group_default(self, make_query, fake_client):
        query = await _ready(make_query)
        query.set_group_selection("keyword", "PHONE")
        query.set_group_value("keyword", "010")
        query.set_filter(FilterKind.DATE_FROM, "JOIN_DATE", "2024-01-01")
        await query.search()

        await query.reset()

        assert query.filters.group_selections == {"keyword": "CUST_NAME"}
        last = fake_client.data_calls[-1]
        assert "PHONE" not in last and "JOIN_DATE_FROM" not in last

    async def test_filter_payload_is_flattened(self, make_query, fake_client):
        query = await _ready(make_query)
        query.set_filter(FilterKind.DATE_FROM, "JOIN_DATE", "2024-01-01")
        query.set_filter(FilterKind.DATE_TO, "JOIN_DATE", "2024-06-30")
        query.set_filter(FilterKind.POPUP, "MANAGER_NO", ("U7", "Lee"))
        await query.search()

        last = fake_client.data_calls[-1]
        assert last["JOIN_DATE_FROM"] == "2024-01-01"
        assert last["JOIN_DATE_TO"] == "2024-06-30"
        assert last["MANAGER_NO"] == "U7"

    async def test_set_filter_does_not_fetch(self, make_query, fake_client):
        query = await _ready(make_query)
        query.set_filter(FilterKind.PLAIN, "MEMO", "x")
        query.set_filter("date-from", "JOIN_DATE", "2024-01-01")
        assert len(fake_client.data_calls) == 1

    async def test_single_date_filter_is_sent_as_plain_value(self, make_query, fake_client):
        fake_client.schemas["REG_LIST"] = {
            "title": "Registrations",
            "service": "REG",
            "method": "LIST",
            "colModel": [{"field": "REG_NO"}],
            "filterView": [{"field": "REG_DATE", "label": "Registered", "type": "date"}],
        }
        query = await _ready(make_query, "REG_LIST")
        query.set_filter(FilterKind.PLAIN, "REG_DATE", "2024-05-01")
        await query.search()

        params = fake_client.data_calls[-1]
        assert params["REG_DATE"] == "2024-05-01"
        assert "REG_DATE_FROM" not in params


class TestOrdering:
    """Last-issued request wins."""

    async def test_stale_response_is_discarded(self, make_query, fake_client):
        """R1 resolving after R2 must not overwrite R2's result."""
        query = await _ready(make_query)
        gate_r1, gate_r2 = asyncio.Event(), asyncio.Event()
        fake_client.data_gates.extend([gate_r1, gate_r2])

        query.set_filter(FilterKind.PLAIN, "CUST_NAME", "first")
        r1 = asyncio.ensure_future(query.search())
        await asyncio.sleep(0)
        query.set_filter(FilterKind.PLAIN, "CUST_NAME", "second")
        r2 = asyncio.ensure_future(query.search())
        await asyncio.sleep(0)

        gate_r2.set()
        assert await r2 is True
        gate_r1.set()
        assert await r1 is False

        assert query.rows[0]["CUST_NAME"] == "second"

    async def test_dispose_ignores_in_flight_response(self, make_query, fake_client):
        query = await _ready(make_query)
        gate = asyncio.Event()
        fake_client.data_gates.append(gate)
        query.set_filter(FilterKind.PLAIN, "CUST_NAME", "late")
        pending = asyncio.ensure_future(query.search())
        await asyncio.sleep(0)

        query.dispose()
        gate.set()

        assert await pending is False
        assert query.status is GridStatus.DISPOSED
        assert query.rows[0]["CUST_NAME"] == "Acme"


class TestDebounce:
    """Filter edits collapse into one search."""

    async def test_burst_of_edits_produces_one_fetch(self, make_query, fake_client):
        query = await _ready(make_query)
        for value in ("k", "ki", "kim"):
            query.set_filter(FilterKind.PLAIN, "CUST_NAME", value)
            query.schedule_search()
        await query.settle()

        assert len(fake_client.data_calls) == 2
        assert fake_client.data_calls[-1]["CUST_NAME"] == "kim"

    async def test_explicit_search_cancels_pending_debounce(self, make_query, fake_client):
        query = await _ready(make_query, debounce_seconds=0.05)
        query.set_filter(FilterKind.PLAIN, "CUST_NAME", "kim")
        task = query.schedule_search()
        await asyncio.sleep(0)
        await query.search()

        assert await task is False
        assert len(fake_client.data_calls) == 2

    async def test_initialize_does_not_trigger_debounced_search(self, make_query, fake_client):
        query = await _ready(make_query)
        await asyncio.sleep(0.03)
        assert len(fake_client.data_calls) == 1

    async def test_cancel_pending_drops_scheduled_search(self, make_query, fake_client):
        query = await _ready(make_query, debounce_seconds=0.05)
        query.set_filter(FilterKind.PLAIN, "CUST_NAME", "kim")
        task = query.schedule_search()
        await asyncio.sleep(0)
        query.cancel_pending()

        assert await task is False
        assert len(fake_client.data_calls) == 1

    async def test_debounced_search_on_disposed_grid_reports_nothing(self, make_query, fake_client):
        query = await _ready(make_query)
        query.set_filter(FilterKind.PLAIN, "CUST_NAME", "kim")
        gate = asyncio.Event()
        fake_client.data_gates.append(gate)
        task = asyncio.ensure_future(query.debounced_search())
        while len(fake_client.data_calls) < 2:
            await asyncio.sleep(0.005)

        query.dispose()
        gate.set()

        assert await task is False
        assert query.status is GridStatus.DISPOSED

    async def test_debounced_search_reports_fetch_error(self, make_query, fake_client):
        query = await _ready(make_query)
        query.set_filter(FilterKind.PLAIN, "CUST_NAME", "kim")
        fake_client.fail_data = True

        assert await query.debounced_search() is True
        assert query.fetch_status is FetchStatus.ERROR

    async def test_debounced_search_skips_duplicate_query(self, make_query, fake_client):
        query = await _ready(make_query)
        assert await query.debounced_search() is False
        assert len(fake_client.data_calls) == 1


class TestPopupLookup:
    """Nested picker grids feeding popup filters."""

    async def test_select_writes_value_and_display(self, make_query, fake_client):
        query = await _ready(make_query)
        lookup = query.open_popup("MANAGER_NO")
        await lookup.open()

        assert lookup.child.screen_id == "USER_POPUP"
        assert lookup.child.schema.title == "Users"

        selected = lookup.select({"USER_NO": "U7", "USER_NAME": "Lee"})

        assert selected == PopupValue(value="U7", display="Lee")
        assert query.filters.popups["MANAGER_NO"] == selected
        assert query.request_params()["MANAGER_NO"] == "U7"
        assert lookup.child.disposed

    async def test_close_leaves_parent_untouched(self, make_query, fake_client):
        query = await _ready(make_query)
        query.set_filter(FilterKind.POPUP, "MANAGER_NO", PopupValue("U1", "Park"))
        lookup = query.open_popup("MANAGER_NO")
        await lookup.open()
        lookup.close()

        assert query.filters.popups["MANAGER_NO"] == PopupValue("U1", "Park")
        assert lookup.child.disposed

    async def test_unknown_popup_field(self, make_query):
        query = await _ready(make_query)
        with pytest.raises(KeyError):
            query.open_popup("MEMO")


class TestExport:
    """CSV export of loaded rows."""

    async def test_export_csv(self, make_query):
        query = await _ready(make_query)
        content = query.export_csv()
        assert content.startswith('\ufeff"Customer No","Name","Status","Joined"\n')
        assert '"C1","Acme","ACTIVE","2024-03-05"' in content

    async def test_export_without_rows(self, make_query, fake_client):
        fake_client.responder = lambda params: DataPage(rows=[], total_count=0)
        query = await _ready(make_query)
        with pytest.raises(NoRowsToExportError):
            query.export_csv()


async def test_snapshot_is_a_copy(make_query):
    query = await _ready(make_query)
    snapshot = query.snapshot()
    snapshot.rows.clear()
    snapshot.plain["X"] = "1"
    assert query.rows
    assert "X" not in query.filters.plain
    assert snapshot.total_pages == 5


async def test_code_failure_leaves_empty_options(make_query, fake_client):
    fake_client.failing_groups.add("CUST_STATUS")
    query = await _ready(make_query)
    assert query.options["CUST_STATUS"] == []
    assert query.status is GridStatus.READY
