"""Async HTTP client for the schema, data and common-code endpoints."""

import json
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx
from reflex.utils import console

from monarch_grid.config import GridSettings
from monarch_grid.errors import DataFetchError, OptionResolutionError, SchemaFetchError
from monarch_grid.models import CodeOption

EXECUTE_PATH: str = "/api/data/execute"
CODE_LIST_PATH: str = "/api/comm-code"
SCHEMA_SERVICE: str = "M_STRUCTURE"
SCHEMA_METHOD: str = "MVIEW"


@dataclass(frozen=True)
class SessionInfo:
    """Site and user identifiers that scope every request.  Read-only."""

    site_id: int | str = 1
    user_id: int | str | None = None
    user_name: str | None = None
    user_code: str | None = None

    @classmethod
    def from_user_json(cls, raw: str | None, default_site_id: int = 1) -> "SessionInfo":
        """Build from the ``user`` session-storage JSON written at login.

        Missing or unreadable JSON yields an anonymous session on the
        default site.
        """
        if not raw:
            return cls(site_id=default_site_id)
        try:
            user = json.loads(raw)
        except json.JSONDecodeError:
            console.warn("[GridApi] Ignoring unreadable session user JSON")
            return cls(site_id=default_site_id)
        if not isinstance(user, dict):
            return cls(site_id=default_site_id)
        return cls(
            site_id=user.get("M_USITE_NO") or default_site_id,
            user_id=user.get("M_USER_NO"),
            user_name=user.get("USER_NAME"),
            user_code=user.get("USER_CODE"),
        )

    def ambient_params(self) -> dict[str, Any]:
        params = {
            "USITE": self.site_id,
            "UID": self.user_id,
            "UNM": self.user_name,
            "UCD": self.user_code,
        }
        return {key: value for key, value in params.items() if value is not None}


@dataclass
class DataPage:
    rows: list[dict[str, Any]] = field(default_factory=list)
    total_count: int = 0


def _query_params(params: Mapping[str, Any]) -> dict[str, Any]:
    """Drop ``None`` values and stringify anything httpx cannot encode."""
    cleaned: dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            cleaned[key] = value
        else:
            cleaned[key] = json.dumps(value, ensure_ascii=False, default=str)
    return cleaned


def normalize_data_response(payload: Any) -> DataPage:
    """Normalize a data response to rows plus total count.

    Accepts ``{"data": [...], "totalCount": n}`` or a one-element array
    wrapping that object.  A missing ``totalCount`` falls back to the
    number of rows.

    Raises:
        DataFetchError: If the payload has neither shape.
    """
    if isinstance(payload, list):
        payload = payload[0] if payload else {}
    if not isinstance(payload, dict):
        raise DataFetchError(f"unexpected response type {type(payload).__name__}")
    rows = payload.get("data")
    if rows is None:
        rows = []
    if not isinstance(rows, list):
        raise DataFetchError("response 'data' is not a list")
    rows = [row for row in rows if isinstance(row, dict)]
    total = payload.get("totalCount")
    try:
        total_count = int(total) if total is not None else len(rows)
    except (TypeError, ValueError):
        total_count = len(rows)
    return DataPage(rows=rows, total_count=total_count)


def _parse_code_options(payload: Any) -> list[CodeOption]:
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        payload = payload["data"]
    if not isinstance(payload, list):
        raise OptionResolutionError(f"unexpected code list type {type(payload).__name__}")
    options: list[CodeOption] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        value = entry.get("codeVal", entry.get("value"))
        if value is None:
            continue
        label = entry.get("codeName", entry.get("label"))
        options.append(CodeOption(value=str(value), label=str(label if label is not None else value)))
    return options


class GridApiClient:
    """Thin wrapper around :class:`httpx.AsyncClient` for the grid endpoints.

    Every method translates transport failures, HTTP error statuses and
    malformed payloads into the matching :mod:`monarch_grid.errors` type.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings: GridSettings) -> "GridApiClient":
        return cls(settings.api_base_url, timeout=settings.timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get_json(self, path: str, params: Mapping[str, Any]) -> Any:
        response = await self._http.get(path, params=_query_params(params))
        response.raise_for_status()
        return response.json()

    async def fetch_schema(self, screen_id: str, site_id: int | str) -> Any:
        """Return the raw ``structureCont`` for *screen_id* (string or object)."""
        params = {
            "serviceName": SCHEMA_SERVICE,
            "methodName": SCHEMA_METHOD,
            "structureName": screen_id,
            "usiteNo": site_id,
        }
        try:
            payload = await self._get_json(EXECUTE_PATH, params)
        except httpx.HTTPError as exc:
            raise SchemaFetchError(f"schema request for {screen_id!r} failed: {exc}") from exc
        except ValueError as exc:
            raise SchemaFetchError(f"schema response for {screen_id!r} is not JSON") from exc

        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not isinstance(payload, dict) or payload.get("structureCont") is None:
            raise SchemaFetchError(f"schema response for {screen_id!r} has no 'structureCont'")
        return payload["structureCont"]

    async def fetch_rows(self, params: Mapping[str, Any]) -> DataPage:
        """Execute a data request and normalize the response."""
        operation = f"{params.get('serviceName')}/{params.get('methodName')}"
        start = time.perf_counter()
        try:
            payload = await self._get_json(EXECUTE_PATH, params)
        except httpx.HTTPError as exc:
            raise DataFetchError(f"data request {operation} failed: {exc}") from exc
        except ValueError as exc:
            raise DataFetchError(f"data response {operation} is not JSON") from exc
        page = normalize_data_response(payload)
        elapsed = (time.perf_counter() - start) * 1000
        console.debug(
            f"[GridApi] {operation} page={params.get('_page')}: "
            f"{len(page.rows)} rows / {page.total_count} total in {elapsed:.1f}ms"
        )
        return page

    async def fetch_code_list(self, group: str, site_id: int | str) -> list[CodeOption]:
        """Fetch the ``{value, label}`` options of one code group."""
        try:
            payload = await self._get_json(CODE_LIST_PATH, {"codeGrp": group, "mUsiteNo": site_id})
        except httpx.HTTPError as exc:
            raise OptionResolutionError(f"code list request failed: {exc}") from exc
        except ValueError as exc:
            raise OptionResolutionError("code list response is not JSON") from exc
        return _parse_code_options(payload)
