"""Reflex state for the dynamic grid: mixin, popup picker state and registry.

Inherit from :class:`DynamicGridMixin` **and** ``rx.State``, trigger
:meth:`DynamicGridMixin.load_dg_screen` with a screen id, and render with
:func:`monarch_grid.components.dynamic_grid`::

    class CustomerState(DynamicGridMixin, rx.State):
        pass

    @rx.page(route="/grid/[screen_id]", on_load=CustomerState.load_dg_screen("CUST_LIST"))
    def customers():
        return dynamic_grid(CustomerState)

The :class:`~monarch_grid.query.GridQuery` behind each grid is not
JSON-serialisable, so it lives in a module-level registry keyed by state
class and browser session.  Every handler runs the query operation and
then copies a snapshot into the ``dg_*`` reactive vars.
"""

from dataclasses import dataclass
from typing import Any

import reflex as rx
from reflex.utils import console

from monarch_grid.client import GridApiClient, SessionInfo
from monarch_grid.codes import shared_code_cache
from monarch_grid.config import get_settings
from monarch_grid.errors import NoRowsToExportError
from monarch_grid.layout import (
    button_action,
    button_dicts,
    column_dicts,
    display_rows,
    group_option_dicts,
    page_window,
    popup_fields,
    render_filter_rows,
    split_mobile_columns,
    total_pages,
    visible_buttons,
)
from monarch_grid.models import GridSchema
from monarch_grid.query import FetchStatus, FilterKind, GridQuery, GridStatus, PopupLookup

_MOBILE_BREAKPOINT_PX: int = 768
_SELECT_ALL: str = "__all__"


# ---------------------------------------------------------------------------
# Module-level registries
# ---------------------------------------------------------------------------


@dataclass
class _PopupLink:
    """An open popup lookup and the state class that opened it."""

    lookup: PopupLookup
    parent_cls: type


_query_registry: dict[str, GridQuery] = {}
_popup_registry: dict[str, _PopupLink] = {}
_api_client: GridApiClient | None = None


def _get_api_client() -> GridApiClient:
    """Return (or create) the process-wide API client."""
    global _api_client
    if _api_client is None:
        _api_client = GridApiClient.from_settings(get_settings())
    return _api_client


def _registry_key(state_cls: type, client_token: str) -> str:
    return f"{state_cls.__name__}:{client_token}"


def _dispose_query(key: str) -> None:
    query = _query_registry.pop(key, None)
    if query is not None:
        query.dispose()


# ---------------------------------------------------------------------------
# Mixin
# ---------------------------------------------------------------------------


class DynamicGridMixin(rx.State, mixin=True):
    """Reflex State mixin driving one schema-configured grid.

    Each concrete subclass gets its own ``dg_*`` vars, so several grids can
    live on one page.  All vars hold render-ready values produced by
    :mod:`monarch_grid.layout`; components never parse the schema.

    Example::

        class OrdersState(DynamicGridMixin, rx.State):
            def handle_dg_row_click(self, row: dict[str, Any]):
                return rx.redirect(f"/orders/{row['ORDER_NO']}")
    """

    # -- Session storage written by the login page --
    dg_user_json: str = rx.SessionStorage("", name="user")

    # -- Frontend state vars --
    dg_screen_id: str = ""
    dg_status: str = GridStatus.UNINITIALIZED.value
    dg_loading: bool = False
    dg_error: str = ""
    dg_warnings: list[str] = []
    dg_title: str = ""

    dg_columns: list[dict[str, str]] = []
    dg_rows: list[dict[str, Any]] = []
    dg_display_rows: list[dict[str, str]] = []
    dg_mobile_title: dict[str, str] = {}
    dg_mobile_preview_columns: list[dict[str, str]] = []
    dg_mobile_detail_columns: list[dict[str, str]] = []

    dg_total_count: int = 0
    dg_page: int = 1
    dg_page_size: int = 10
    dg_total_pages: int = 0
    dg_page_numbers: list[int] = []
    dg_page_size_options: list[str] = []

    dg_filter_rows: list[list[dict[str, str]]] = []
    dg_input_values: dict[str, str] = {}
    dg_date_from: dict[str, str] = {}
    dg_date_to: dict[str, str] = {}
    dg_popup_displays: dict[str, str] = {}
    dg_group_selections: dict[str, str] = {}
    dg_group_values: dict[str, str] = {}
    dg_group_options: dict[str, list[dict[str, str]]] = {}
    dg_code_options: dict[str, list[dict[str, str]]] = {}

    dg_buttons: list[dict[str, str]] = []
    dg_mobile_buttons: list[dict[str, str]] = []
    dg_drawer_open: bool = False
    dg_selected_info: str = "Click a row to see details."

    # -- Backend-only vars (not sent to frontend) --
    _dg_pending_screen: str = ""
    _dg_mobile: bool = False

    # ------------------------------------------------------------------
    # Registry access
    # ------------------------------------------------------------------

    def _dg_key(self) -> str:
        return _registry_key(type(self), self.router.session.client_token)

    def _dg_query(self) -> GridQuery | None:
        return _query_registry.get(self._dg_key())

    def _dg_new_query(self) -> GridQuery:
        """Replace this session's query with a fresh one."""
        settings = get_settings()
        key = self._dg_key()
        _dispose_query(key)
        query = GridQuery(
            _get_api_client(),
            SessionInfo.from_user_json(self.dg_user_json, settings.default_site_id),
            code_cache=shared_code_cache,
            page_size=settings.mobile_page_size if self._dg_mobile else settings.page_size,
            debounce_seconds=settings.debounce_seconds,
        )
        _query_registry[key] = query
        return query

    # ------------------------------------------------------------------
    # Snapshot -> vars
    # ------------------------------------------------------------------

    def _dg_sync(self, query: GridQuery) -> None:
        """Copy the query's current snapshot into the reactive vars."""
        snapshot = query.snapshot()
        schema = snapshot.schema or GridSchema()

        self.dg_screen_id = snapshot.screen_id  # type: ignore[assignment]
        self.dg_status = snapshot.status.value  # type: ignore[assignment]
        self.dg_loading = (  # type: ignore[assignment]
            snapshot.status is GridStatus.LOADING_SCHEMA
            or snapshot.fetch_status is FetchStatus.LOADING
        )
        self.dg_error = snapshot.error  # type: ignore[assignment]
        self.dg_warnings = snapshot.warnings  # type: ignore[assignment]
        self.dg_title = schema.title  # type: ignore[assignment]

        self.dg_columns = column_dicts(schema.col_model)  # type: ignore[assignment]
        self.dg_rows = snapshot.rows  # type: ignore[assignment]
        self.dg_display_rows = display_rows(schema, snapshot.rows)  # type: ignore[assignment]
        title, preview, detail = split_mobile_columns(schema.col_model)
        self.dg_mobile_title = column_dicts([title])[0] if title else {}  # type: ignore[assignment]
        self.dg_mobile_preview_columns = column_dicts(preview)  # type: ignore[assignment]
        self.dg_mobile_detail_columns = column_dicts(detail)  # type: ignore[assignment]

        pages = total_pages(snapshot.total_count, snapshot.page_size)
        self.dg_total_count = snapshot.total_count  # type: ignore[assignment]
        self.dg_page = snapshot.page  # type: ignore[assignment]
        self.dg_page_size = snapshot.page_size  # type: ignore[assignment]
        self.dg_total_pages = pages  # type: ignore[assignment]
        self.dg_page_numbers = page_window(snapshot.page, pages)  # type: ignore[assignment]
        sizes = sorted({*get_settings().page_size_options, snapshot.page_size})
        self.dg_page_size_options = [str(size) for size in sizes]  # type: ignore[assignment]

        filter_rows = render_filter_rows(
            snapshot.filter_rows, snapshot.group_selections, len(schema.colgroup)
        )
        self.dg_filter_rows = filter_rows  # type: ignore[assignment]
        plain_fields = [unit["field"] for row in filter_rows for unit in row if unit["kind"] == "single"]
        self.dg_input_values = {  # type: ignore[assignment]
            field: snapshot.plain.get(field, "") for field in plain_fields
        }
        self.dg_date_from = {  # type: ignore[assignment]
            field: snapshot.dates[field].start if field in snapshot.dates else ""
            for field in plain_fields
        }
        self.dg_date_to = {  # type: ignore[assignment]
            field: snapshot.dates[field].end if field in snapshot.dates else ""
            for field in plain_fields
        }
        self.dg_popup_displays = {  # type: ignore[assignment]
            field: snapshot.popups[field].display if field in snapshot.popups else ""
            for field in popup_fields(schema)
        }
        self.dg_group_selections = snapshot.group_selections  # type: ignore[assignment]
        self.dg_group_values = {  # type: ignore[assignment]
            group: snapshot.plain.get(field, "")
            for group, field in snapshot.group_selections.items()
        }
        self.dg_group_options = group_option_dicts(snapshot.filter_rows)  # type: ignore[assignment]
        code_options: dict[str, list[dict[str, str]]] = {"": []}
        for group in schema.code_groups():
            code_options[group] = [option.model_dump() for option in snapshot.options.get(group, [])]
        self.dg_code_options = code_options  # type: ignore[assignment]

        self.dg_buttons = button_dicts(visible_buttons(schema.buttons))  # type: ignore[assignment]
        self.dg_mobile_buttons = button_dicts(  # type: ignore[assignment]
            visible_buttons(schema.buttons, mobile=True)
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_dg_screen(self, screen_id: str):
        """Load (or reload) the grid for *screen_id*.

        The viewport width is read first so mobile screens start with the
        smaller page size; :meth:`start_dg_screen` does the actual load.
        """
        self._dg_pending_screen = screen_id  # type: ignore[assignment]
        self.dg_loading = True  # type: ignore[assignment]
        self.dg_status = GridStatus.LOADING_SCHEMA.value  # type: ignore[assignment]
        return rx.call_script("window.innerWidth", callback=type(self).start_dg_screen)

    async def start_dg_screen(self, viewport_width: int | None = None):
        """Initialize the query for the pending screen and fetch page 1.

        This is an async generator so the loading state is pushed to the
        frontend before the schema request starts.
        """
        self._dg_mobile = bool(viewport_width) and int(viewport_width) < _MOBILE_BREAKPOINT_PX  # type: ignore[assignment]
        screen_id = self._dg_pending_screen
        self.dg_loading = True  # type: ignore[assignment]
        self.dg_error = ""  # type: ignore[assignment]
        yield

        query = self._dg_new_query()
        await query.initialize(screen_id)
        self._dg_sync(query)
        console.debug(f"[DynamicGrid] {type(self).__name__} loaded screen {screen_id} ({query.status.value})")

    # ------------------------------------------------------------------
    # Filter edits (debounced search)
    # ------------------------------------------------------------------

    def _dg_edit(self, kind: FilterKind, field: str, value: Any):
        query = self._dg_query()
        if query is None:
            return None
        query.set_filter(kind, field, value)
        self._dg_sync(query)
        return type(self).run_dg_debounced_search

    def set_dg_plain_filter(self, field: str, value: str):
        return self._dg_edit(FilterKind.PLAIN, field, value)

    def set_dg_select_filter(self, field: str, value: str):
        return self._dg_edit(FilterKind.PLAIN, field, "" if value == _SELECT_ALL else value)

    def set_dg_date_start(self, field: str, value: str):
        return self._dg_edit(FilterKind.DATE_FROM, field, value)

    def set_dg_date_end(self, field: str, value: str):
        return self._dg_edit(FilterKind.DATE_TO, field, value)

    def clear_dg_popup(self, field: str):
        return self._dg_edit(FilterKind.POPUP, field, None)

    def select_dg_group_field(self, group: str, field: str):
        query = self._dg_query()
        if query is None:
            return None
        query.set_group_selection(group, field)
        self._dg_sync(query)
        return type(self).run_dg_debounced_search

    def set_dg_group_value(self, group: str, value: str):
        query = self._dg_query()
        if query is None:
            return None
        query.set_group_value(group, value)
        self._dg_sync(query)
        return type(self).run_dg_debounced_search

    @rx.event(background=True)
    async def run_dg_debounced_search(self):
        """Search once filter edits have been quiet for the debounce window.

        Only the query still registered for this state is synced; a grid
        replaced by a new screen load meanwhile is left alone.
        """
        query = self._dg_query()
        if query is None:
            return
        if not await query.debounced_search():
            return
        async with self:
            if self._dg_query() is not query:
                console.debug(f"[DynamicGrid] Dropping search result of replaced grid {query.screen_id}")
                return
            self._dg_sync(query)

    # ------------------------------------------------------------------
    # Explicit actions
    # ------------------------------------------------------------------

    async def handle_dg_search(self):
        """Search from page 1 (search button, Enter key)."""
        query = self._dg_query()
        if query is None:
            return
        self.dg_loading = True  # type: ignore[assignment]
        self.dg_drawer_open = False  # type: ignore[assignment]
        yield
        await query.search()
        self._dg_sync(query)

    def handle_dg_submit(self, form_data: dict[str, Any]):
        """Enter inside a filter input submits the filter form."""
        return type(self).handle_dg_search

    async def handle_dg_reset(self):
        query = self._dg_query()
        if query is None:
            return
        self.dg_loading = True  # type: ignore[assignment]
        yield
        await query.reset()
        self._dg_sync(query)

    async def handle_dg_paginate(self, page: int):
        query = self._dg_query()
        if query is None:
            return
        self.dg_loading = True  # type: ignore[assignment]
        yield
        await query.paginate(int(page))
        self._dg_sync(query)

    async def handle_dg_page_size(self, size: str):
        query = self._dg_query()
        if query is None:
            return
        self.dg_loading = True  # type: ignore[assignment]
        yield
        await query.set_page_size(int(size))
        self._dg_sync(query)

    def handle_dg_export(self):
        """Download the loaded rows as CSV, or alert when there are none."""
        query = self._dg_query()
        if query is None:
            return None
        try:
            content = query.export_csv()
        except NoRowsToExportError as exc:
            return rx.window_alert(str(exc))
        return rx.download(data=content, filename=query.export_filename())  # type: ignore[return-value]

    def handle_dg_button_click(self, index: str):
        """Dispatch a schema button by its ``index``."""
        query = self._dg_query()
        if query is None or query.schema is None:
            return None
        button = next((b for b in query.schema.buttons if b.index == index), None)
        if button is None:
            return None
        action = button_action(button)
        if action == "search":
            return type(self).handle_dg_search
        if action == "reset":
            return type(self).handle_dg_reset
        if action == "export":
            return type(self).handle_dg_export
        console.info(f"[DynamicGrid] {query.screen_id}: custom button {index!r} ({button.in_comm})")
        return None

    def handle_dg_row_click(self, row: dict[str, Any]) -> None:
        """Default row click -- show the clicked row's labelled values."""
        if not row:
            return
        labels = {column["field"]: column["label"] for column in self.dg_columns}
        lines = [f"{labels.get(field, field)}: {value}" for field, value in row.items()]
        self.dg_selected_info = "\n".join(lines)  # type: ignore[assignment]

    def handle_dg_drawer_change(self, open: bool) -> None:
        self.dg_drawer_open = open  # type: ignore[assignment]

    def dismiss_dg_error(self) -> None:
        self.dg_error = ""  # type: ignore[assignment]

    def handle_dg_unmount(self) -> None:
        """The grid left the page: pending debounced searches are dropped."""
        query = self._dg_query()
        if query is not None:
            query.cancel_pending()

    # ------------------------------------------------------------------
    # Popup lookups
    # ------------------------------------------------------------------

    def open_dg_popup(self, field: str):
        """Open the picker grid for the popup filter on *field*."""
        query = self._dg_query()
        if query is None or query.schema is None or query.schema.popup_filter(field) is None:
            return None
        popup_key = _registry_key(PopupGridState, self.router.session.client_token)
        previous = _popup_registry.pop(popup_key, None)
        if previous is not None:
            previous.lookup.close()
        _dispose_query(popup_key)

        lookup = query.open_popup(field)
        _query_registry[popup_key] = lookup.child
        _popup_registry[popup_key] = _PopupLink(lookup=lookup, parent_cls=type(self))
        return PopupGridState.show_dg_popup


class PopupGridState(DynamicGridMixin, rx.State):
    """The picker grid shown inside the popup-filter dialog."""

    dg_popup_open: bool = False
    dg_popup_label: str = ""

    async def show_dg_popup(self):
        link = _popup_registry.get(self._dg_key())
        if link is None:
            return
        self.dg_popup_open = True  # type: ignore[assignment]
        self.dg_popup_label = link.lookup.filter_item.label  # type: ignore[assignment]
        self.dg_loading = True  # type: ignore[assignment]
        yield
        await link.lookup.open()
        self._dg_sync(link.lookup.child)

    async def pick_dg_popup_row(self, row: dict[str, Any]):
        """Write the picked row into the parent grid's popup filter."""
        key = self._dg_key()
        link = _popup_registry.pop(key, None)
        self.dg_popup_open = False  # type: ignore[assignment]
        _query_registry.pop(key, None)
        if link is None:
            return None
        parent_key = _registry_key(link.parent_cls, self.router.session.client_token)
        parent_query = _query_registry.get(parent_key)
        if parent_query is not link.lookup.parent:
            link.lookup.close()
            console.debug(f"[DynamicGrid] Dropping popup pick for replaced grid {parent_key}")
            return None
        link.lookup.select(row)
        parent = await self.get_state(link.parent_cls)
        parent._dg_sync(parent_query)
        return link.parent_cls.run_dg_debounced_search

    def handle_dg_popup_open_change(self, open: bool) -> None:
        """Dialog dismissed without a pick: the parent filter is unchanged."""
        if open:
            return
        self.dg_popup_open = False  # type: ignore[assignment]
        key = self._dg_key()
        link = _popup_registry.pop(key, None)
        if link is not None:
            link.lookup.close()
        _query_registry.pop(key, None)
