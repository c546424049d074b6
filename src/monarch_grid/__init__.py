"""monarch-grid – schema-driven search grids for Reflex.

A screen schema fetched from the backend at runtime describes the data
source, columns, filters and buttons of a list screen.  This package
parses and normalizes that schema, runs the search/paging/filter state
machine, and renders it for desktop and mobile::

    pip install monarch-grid
"""

from monarch_grid.client import DataPage, GridApiClient, SessionInfo, normalize_data_response
from monarch_grid.codes import CodeListCache, OptionResolver, clear_code_cache, shared_code_cache
from monarch_grid.components import (
    dynamic_grid,
    filter_unit,
    grid_filters,
    grid_pagination,
    grid_results,
    mobile_cards,
    mobile_filter_drawer,
    popup_dialog,
    results_table,
)
from monarch_grid.config import GridSettings, get_settings
from monarch_grid.errors import (
    DataFetchError,
    GridError,
    NoRowsToExportError,
    OptionResolutionError,
    SchemaFetchError,
    SchemaParseError,
)
from monarch_grid.export import build_csv, export_filename
from monarch_grid.filters import FilterState, PopupValue, normalize_filter_rows
from monarch_grid.models import (
    ButtonConfig,
    CodeOption,
    ColGroup,
    ColumnModel,
    FilterRow,
    GridSchema,
    GroupUnit,
    ProcessedRow,
    SingleUnit,
)
from monarch_grid.query import FetchStatus, FilterKind, GridQuery, GridSnapshot, GridStatus, PopupLookup
from monarch_grid.schema import parse_schema
from monarch_grid.state import DynamicGridMixin, PopupGridState
