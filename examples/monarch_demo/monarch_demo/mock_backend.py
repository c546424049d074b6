"""In-process stand-in for the ERP endpoints the grid talks to.

Schemas are read from ``data/*.jsonc`` verbatim (comments included, the
grid parses relaxed JSON) and table data from CSV files, filtered and
paged with polars.
"""

import json
from pathlib import Path

import polars as pl
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

DATA_DIR = Path(__file__).parent / "data"

# (serviceName, methodName) -> CSV file
TABLES: dict[tuple[str, str], str] = {
    ("CUSTOMER", "LIST"): "customers.csv",
    ("USER", "LIST"): "users.csv",
}

# Request keys that are never column filters.
RESERVED_PARAMS = {
    "serviceName",
    "methodName",
    "_page",
    "_size",
    "_sort",
    "USITE",
    "UID",
    "UNM",
    "UCD",
}


def _load_table(name: str) -> pl.DataFrame:
    return pl.read_csv(DATA_DIR / name, infer_schema_length=0)


def _apply_filters(frame: pl.DataFrame, params: dict[str, str]) -> pl.DataFrame:
    for key, value in params.items():
        if key in RESERVED_PARAMS or value == "":
            continue
        if key.endswith("_FROM") and key[:-5] in frame.columns:
            frame = frame.filter(pl.col(key[:-5]) >= value)
        elif key.endswith("_TO") and key[:-3] in frame.columns:
            frame = frame.filter(pl.col(key[:-3]) <= value)
        elif key in frame.columns:
            frame = frame.filter(pl.col(key).str.contains(value, literal=True))
    return frame


def _apply_sort(frame: pl.DataFrame, order: str) -> pl.DataFrame:
    parts = order.split()
    if not parts or parts[0] not in frame.columns:
        return frame
    descending = len(parts) > 1 and parts[1].upper() == "DESC"
    return frame.sort(parts[0], descending=descending)


def _int_param(params: dict[str, str], key: str, default: int) -> int:
    try:
        return max(int(params.get(key, default)), 1)
    except ValueError:
        return default


async def execute(request: Request) -> JSONResponse:
    params = dict(request.query_params)
    service = params.get("serviceName", "")
    method = params.get("methodName", "")

    if service == "M_STRUCTURE":
        path = DATA_DIR / f"{params.get('structureName', '')}.jsonc"
        if not path.is_file():
            return JSONResponse({"message": "unknown structure"}, status_code=404)
        return JSONResponse([{"structureCont": path.read_text(encoding="utf-8")}])

    table = TABLES.get((service, method))
    if table is None:
        return JSONResponse({"message": f"unknown service {service}/{method}"}, status_code=404)

    frame = _apply_sort(_apply_filters(_load_table(table), params), params.get("_sort", ""))
    page = _int_param(params, "_page", 1)
    size = _int_param(params, "_size", 10)
    rows = frame.slice((page - 1) * size, size).to_dicts()
    return JSONResponse([{"data": rows, "totalCount": frame.height}])


async def comm_code(request: Request) -> JSONResponse:
    codes = json.loads((DATA_DIR / "codes.json").read_text(encoding="utf-8"))
    return JSONResponse(codes.get(request.query_params.get("codeGrp", ""), []))


mock_api = Starlette(
    routes=[
        Route("/api/data/execute", execute),
        Route("/api/comm-code", comm_code),
    ]
)
