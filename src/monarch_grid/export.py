"""CSV export of the currently loaded grid rows.

The body is written by polars with every field quoted; the header line
uses the column labels quoted the same way.  The payload starts with a
UTF-8 byte-order mark so spreadsheet applications detect the encoding.
"""

from collections.abc import Sequence
from datetime import date
from typing import Any

import polars as pl

from monarch_grid.errors import NoRowsToExportError
from monarch_grid.layout import format_cell_value
from monarch_grid.models import ColumnModel

BOM: str = "\ufeff"


def _quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def rows_to_frame(columns: Sequence[ColumnModel], rows: Sequence[dict[str, Any]]) -> pl.DataFrame:
    """Build a string-typed DataFrame of formatted cell values, one column per field."""
    data = {
        f"c{position}": [format_cell_value(column, row.get(column.field)) for row in rows]
        for position, column in enumerate(columns)
    }
    return pl.DataFrame(data, schema={name: pl.String for name in data})


def build_csv(columns: Sequence[ColumnModel], rows: Sequence[dict[str, Any]]) -> str:
    """Return the CSV text (BOM included) for *rows* in column order.

    Raises:
        NoRowsToExportError: If *rows* is empty.
    """
    if not rows:
        raise NoRowsToExportError("There is no data to download.")
    header = ",".join(_quote(column.label) for column in columns)
    if not columns:
        return BOM + header
    body = rows_to_frame(columns, rows).write_csv(include_header=False, quote_style="always")
    if body.endswith("\n"):
        body = body[:-1]
    return BOM + header + "\n" + body


def export_filename(title: str, today: date | None = None) -> str:
    """``<title or "download">_<YYYY-MM-DD>.csv``."""
    day = today or date.today()
    return f"{title or 'download'}_{day.isoformat()}.csv"
