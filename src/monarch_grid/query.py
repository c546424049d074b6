"""The query orchestrator: one grid's schema, filters, paging and results.

:class:`GridQuery` is framework-free.  The Reflex mixin in
:mod:`monarch_grid.state` keeps one instance per browser session in a
module-level registry and copies :meth:`GridQuery.snapshot` into reactive
vars after every operation.

Lifecycle::

    UNINITIALIZED -> LOADING_SCHEMA -> READY -> DISPOSED
                           |
                           +-> FAILED   (schema could not be fetched)

While READY, each data request moves :attr:`GridQuery.fetch_status`
through LOADING and then LOADED or ERROR.

Ordering rules:

* Results are committed only for the most recently *issued* request.  Each
  request takes a sequence number, and a response whose number is no
  longer current is discarded.
* A newer :meth:`GridQuery.initialize` supersedes an older one still
  waiting for its schema.
* A request whose signature (screen, filters, page, page size) equals the
  last issued one is not sent again.
* Filter edits only update state.  :meth:`GridQuery.debounced_search`
  runs a search after the quiescence window unless a later edit, an
  explicit search, a re-initialization or disposal superseded it.
"""

import asyncio
import json
import math
import time
from collections.abc import Coroutine, Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Protocol

from reflex.utils import console

from monarch_grid.client import DataPage, SessionInfo
from monarch_grid.codes import CodeListCache, OptionResolver
from monarch_grid.config import _DEFAULT_DEBOUNCE_SECONDS, _DEFAULT_PAGE_SIZE
from monarch_grid.errors import DataFetchError, NoRowsToExportError, SchemaFetchError
from monarch_grid.export import build_csv, export_filename
from monarch_grid.filters import DateRange, FilterState, PopupValue, normalize_filter_rows
from monarch_grid.models import CodeOption, GridSchema, PopupFilter, ProcessedRow
from monarch_grid.schema import parse_schema


class GridClient(Protocol):
    async def fetch_schema(self, screen_id: str, site_id: int | str) -> Any: ...

    async def fetch_rows(self, params: Mapping[str, Any]) -> DataPage: ...

    async def fetch_code_list(self, group: str, site_id: int | str) -> list[CodeOption]: ...


class GridStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING_SCHEMA = "loading_schema"
    READY = "ready"
    FAILED = "failed"
    DISPOSED = "disposed"


class FetchStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class FilterKind(str, Enum):
    PLAIN = "plain"
    DATE_FROM = "date-from"
    DATE_TO = "date-to"
    POPUP = "popup"


@dataclass
class GridSnapshot:
    """A read-only copy of everything the render layer needs."""

    screen_id: str
    status: GridStatus
    fetch_status: FetchStatus
    schema: GridSchema | None
    rows: list[dict[str, Any]]
    total_count: int
    page: int
    page_size: int
    error: str = ""
    warnings: list[str] = field(default_factory=list)
    filter_rows: list[ProcessedRow] = field(default_factory=list)
    plain: dict[str, str] = field(default_factory=dict)
    dates: dict[str, DateRange] = field(default_factory=dict)
    popups: dict[str, PopupValue] = field(default_factory=dict)
    group_selections: dict[str, str] = field(default_factory=dict)
    options: dict[str, list[CodeOption]] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_count / self.page_size)


class GridQuery:
    """Schema, filter state, paging and results of one dynamic grid.

    Args:
        client: Backend collaborator (usually :class:`GridApiClient`).
        session: Site/user identifiers attached to every data request.
        resolver: Option resolver for select filters.  Defaults to one that
            fetches through *client* and stores into *code_cache*.
        code_cache: Cache for the default resolver; a private cache is
            used when omitted.
        page_size: Initial page size.
        debounce_seconds: Quiescence window of :meth:`debounced_search`.
    """

    def __init__(
        self,
        client: GridClient,
        session: SessionInfo | None = None,
        *,
        resolver: OptionResolver | None = None,
        code_cache: CodeListCache | None = None,
        page_size: int = _DEFAULT_PAGE_SIZE,
        debounce_seconds: float = _DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._client = client
        self.session = session or SessionInfo()
        self.resolver = resolver or OptionResolver(self._fetch_code_list, code_cache)
        self.debounce_seconds = debounce_seconds

        self.status = GridStatus.UNINITIALIZED
        self.fetch_status = FetchStatus.IDLE
        self.screen_id = ""
        self.schema: GridSchema | None = None
        self.warnings: list[str] = []
        self.error = ""
        self.filter_rows: list[ProcessedRow] = []
        self.filters = FilterState()
        self.options: dict[str, list[CodeOption]] = {}
        self.rows: list[dict[str, Any]] = []
        self.total_count = 0
        self.page = 1
        self.page_size = page_size if page_size > 0 else _DEFAULT_PAGE_SIZE

        self._init_generation = 0
        self._request_seq = 0
        self._last_signature: str | None = None
        self._debounce_generation = 0
        self._tasks: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def disposed(self) -> bool:
        return self.status is GridStatus.DISPOSED

    @property
    def ready(self) -> bool:
        return self.status is GridStatus.READY and self.schema is not None

    async def initialize(self, screen_id: str) -> None:
        """Load the schema for *screen_id*, reset all state and fetch page 1.

        A schema fetch failure leaves the grid FAILED with :attr:`error`
        set.  If another :meth:`initialize` starts before this one's schema
        arrives, this call returns without touching state.
        """
        if self.disposed:
            return
        self._init_generation += 1
        generation = self._init_generation
        self._debounce_generation += 1
        self._request_seq += 1

        self.screen_id = screen_id
        self.status = GridStatus.LOADING_SCHEMA
        self.fetch_status = FetchStatus.IDLE
        self.schema = None
        self.warnings = []
        self.error = ""
        self.filter_rows = []
        self.filters = FilterState()
        self.options = {}
        self.rows = []
        self.total_count = 0
        self.page = 1
        self._last_signature = None

        try:
            raw = await self._client.fetch_schema(screen_id, self.session.site_id)
        except SchemaFetchError as exc:
            if generation != self._init_generation or self.disposed:
                return
            self.status = GridStatus.FAILED
            self.error = f"Could not load screen configuration for '{screen_id}'."
            console.error(f"[DynamicGrid] Schema fetch failed for {screen_id}: {exc}")
            return

        if generation != self._init_generation or self.disposed:
            console.debug(f"[DynamicGrid] Discarding superseded schema for {screen_id}")
            return

        parsed = parse_schema(raw, screen_id=screen_id)
        normalized = normalize_filter_rows(parsed.schema.filter_view)
        self.schema = parsed.schema
        self.warnings = parsed.warnings
        self.filter_rows = normalized.rows
        self.filters = FilterState(normalized.default_selections, normalized.group_members)
        self.status = GridStatus.READY

        await asyncio.gather(self._fetch(), self._resolve_options(generation))

    def cancel_pending(self) -> None:
        """Drop any debounced search still waiting for its window."""
        self._debounce_generation += 1

    def dispose(self) -> None:
        """Stop the grid: pending debounces and in-flight results are ignored."""
        self.status = GridStatus.DISPOSED
        self._init_generation += 1
        self._request_seq += 1
        self._debounce_generation += 1
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def _resolve_options(self, generation: int) -> None:
        assert self.schema is not None
        groups = self.schema.code_groups()
        if not groups:
            return
        options = await self.resolver.resolve_many(groups)
        if generation == self._init_generation and not self.disposed:
            self.options = options

    async def _fetch_code_list(self, group: str) -> list[CodeOption]:
        return await self._client.fetch_code_list(group, self.session.site_id)

    # ------------------------------------------------------------------
    # Filter state (no fetching)
    # ------------------------------------------------------------------

    def set_filter(self, kind: FilterKind | str, field: str, value: Any) -> None:
        """Update one filter.

        For :attr:`FilterKind.POPUP`, *value* is a :class:`PopupValue`, a
        ``(value, display)`` pair, or ``None`` to clear.
        """
        kind = FilterKind(kind)
        if kind is FilterKind.PLAIN:
            self.filters.set_plain(field, "" if value is None else str(value))
        elif kind is FilterKind.DATE_FROM:
            self.filters.set_date(field, "from", value or "")
        elif kind is FilterKind.DATE_TO:
            self.filters.set_date(field, "to", value or "")
        elif value is None:
            self.filters.clear_popup(field)
        elif isinstance(value, PopupValue):
            self.filters.set_popup(field, value.value, value.display)
        else:
            raw, display = value
            self.filters.set_popup(field, raw, "" if display is None else str(display))

    def set_group_selection(self, group: str, field: str) -> None:
        self.filters.select_group_field(group, field)

    def set_group_value(self, group: str, value: str) -> None:
        self.filters.set_group_value(group, value or "")

    def clear_popup(self, field: str) -> None:
        self.filters.clear_popup(field)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def request_params(self) -> dict[str, Any]:
        """The data request for the current schema, session, page and filters."""
        schema = self.schema or GridSchema()
        params: dict[str, Any] = {
            "serviceName": schema.service,
            "methodName": schema.method,
            **self.session.ambient_params(),
            "_page": self.page,
            "_sort": schema.order,
            "_size": self.page_size,
        }
        params.update(self.filters.to_params())
        return params

    def fetch_signature(self) -> str:
        return json.dumps(
            [self.screen_id, self.filters.to_params(), self.page, self.page_size],
            sort_keys=True,
            default=str,
            ensure_ascii=False,
        )

    async def _fetch(self) -> bool:
        """Issue a data request unless it duplicates the last one.

        Returns True when a response was committed to state.
        """
        if not self.ready:
            return False
        signature = self.fetch_signature()
        if signature == self._last_signature:
            console.debug(f"[DynamicGrid] Skipping duplicate fetch for {self.screen_id}")
            return False
        self._last_signature = signature
        self._request_seq += 1
        seq = self._request_seq

        assert self.schema is not None
        operation = f"{self.schema.service}/{self.schema.method}"
        self.fetch_status = FetchStatus.LOADING
        self.error = ""
        start = time.perf_counter()
        try:
            page = await self._client.fetch_rows(self.request_params())
        except DataFetchError as exc:
            if seq != self._request_seq:
                return False
            self._last_signature = None
            self.rows = []
            self.total_count = 0
            self.fetch_status = FetchStatus.ERROR
            self.error = "Failed to load data."
            console.error(f"[DynamicGrid] Data fetch failed for {operation}: {exc}")
            return False

        if seq != self._request_seq:
            console.debug(f"[DynamicGrid] Discarding stale response for {operation}")
            return False

        self.rows = page.rows
        self.total_count = page.total_count
        self.fetch_status = FetchStatus.LOADED
        elapsed = (time.perf_counter() - start) * 1000
        console.debug(
            f"[DynamicGrid] {self.screen_id} page {self.page}: "
            f"{len(self.rows)}/{self.total_count} rows in {elapsed:.1f}ms"
        )
        return True

    async def search(self) -> bool:
        """Go to page 1 and fetch with the current filters, as one step."""
        self._debounce_generation += 1
        self.page = 1
        return await self._fetch()

    async def reset(self) -> bool:
        """Clear every filter, restore default group selections, fetch page 1."""
        self._debounce_generation += 1
        self.filters.reset()
        self.page = 1
        return await self._fetch()

    async def paginate(self, page: int) -> bool:
        page = max(1, int(page))
        pages = math.ceil(self.total_count / self.page_size)
        if pages:
            page = min(page, pages)
        self._debounce_generation += 1
        self.page = page
        return await self._fetch()

    async def set_page_size(self, size: int) -> bool:
        size = int(size)
        if size <= 0:
            return False
        self._debounce_generation += 1
        self.page_size = size
        self.page = 1
        return await self._fetch()

    async def debounced_search(self) -> bool:
        """Search after the quiescence window unless superseded meanwhile.

        Returns True when this call's search committed rows or an error
        to a grid that is still live.  A superseded window, a duplicate
        query, a stale response or a disposed grid all return False.
        """
        self._debounce_generation += 1
        generation = self._debounce_generation
        await asyncio.sleep(self.debounce_seconds)
        if generation != self._debounce_generation or not self.ready:
            return False
        committed = await self.search()
        if self.disposed:
            return False
        return committed or self.fetch_status is FetchStatus.ERROR

    def schedule_search(self) -> asyncio.Task[bool]:
        """Start :meth:`debounced_search` in the background and track it."""
        return self._track(self.debounced_search())

    def _track(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def settle(self) -> None:
        """Wait for every scheduled background search to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def snapshot(self) -> GridSnapshot:
        return GridSnapshot(
            screen_id=self.screen_id,
            status=self.status,
            fetch_status=self.fetch_status,
            schema=self.schema,
            rows=list(self.rows),
            total_count=self.total_count,
            page=self.page,
            page_size=self.page_size,
            error=self.error,
            warnings=list(self.warnings),
            filter_rows=list(self.filter_rows),
            plain=dict(self.filters.plain),
            dates={name: DateRange(r.start, r.end) for name, r in self.filters.dates.items()},
            popups=dict(self.filters.popups),
            group_selections=dict(self.filters.group_selections),
            options=dict(self.options),
        )

    def export_csv(self) -> str:
        """CSV of the currently loaded rows.

        Raises:
            NoRowsToExportError: If no rows are loaded.
        """
        if not self.rows or self.schema is None:
            raise NoRowsToExportError("There is no data to download.")
        return build_csv(self.schema.col_model, self.rows)

    def export_filename(self, today: date | None = None) -> str:
        return export_filename(self.schema.title if self.schema else "", today)

    # ------------------------------------------------------------------
    # Popup lookups
    # ------------------------------------------------------------------

    def open_popup(self, field: str, *, child: "GridQuery | None" = None) -> "PopupLookup":
        """Prepare a picker grid for the popup filter on *field*.

        Raises:
            KeyError: If the schema has no popup filter for *field*.
        """
        item = self.schema.popup_filter(field) if self.schema else None
        if item is None:
            raise KeyError(f"no popup filter for field {field!r}")
        if child is None:
            child = GridQuery(
                self._client,
                self.session,
                resolver=self.resolver,
                page_size=self.page_size,
                debounce_seconds=self.debounce_seconds,
            )
        return PopupLookup(self, item, child)


class PopupLookup:
    """A nested grid used to pick the value of one popup filter.

    The child grid is loaded with the filter's ``structure_name``.
    Selecting a row writes ``(row[popup_key], row[display_field])`` into the
    parent's popup filter; closing leaves the parent untouched.  Either way
    the child is disposed.
    """

    def __init__(self, parent: GridQuery, filter_item: PopupFilter, child: GridQuery) -> None:
        self.parent = parent
        self.filter_item = filter_item
        self.child = child

    @property
    def field(self) -> str:
        return self.filter_item.field

    async def open(self) -> None:
        await self.child.initialize(self.filter_item.structure_name)

    def select(self, row: Mapping[str, Any]) -> PopupValue:
        display = row.get(self.filter_item.display_field)
        selected = PopupValue(
            value=row.get(self.filter_item.popup_key),
            display="" if display is None else str(display),
        )
        self.parent.set_filter(FilterKind.POPUP, self.field, selected)
        self.child.dispose()
        return selected

    def close(self) -> None:
        self.child.dispose()
