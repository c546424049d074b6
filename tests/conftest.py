"""Shared fixtures: sample screen schemas and an in-memory backend."""

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from monarch_grid.client import DataPage, SessionInfo
from monarch_grid.codes import CodeListCache
from monarch_grid.errors import DataFetchError, OptionResolutionError, SchemaFetchError
from monarch_grid.models import CodeOption
from monarch_grid.query import GridQuery
from monarch_grid.schema import parse_schema

CUSTOMER_SCHEMA_TEXT = """{
  // Customer list screen
  "title": "Customers",
  "service": "CUSTOMER",
  "method": "LIST",
  "keyName": "CUST_NO",
  "order": "CUST_NO DESC",
  "colgroup": [
    {"index": "Col1", "Width": "25%"},
    {"index": "Col2", "Width": "25%"},
    {"index": "Col3"},
    {"index": "Col4"},
  ],
  "colModel": [
    {"label": "Customer No", "field": "CUST_NO"},
    {"label": "Name", "field": "CUST_NAME", "mobileImp": "true"},
    {"label": "Status", "field": "STATUS", "chip": true, "mobileImp": true},
    {"label": "Joined", "field": "JOIN_DATE", "type": "date"},
    /* {"label": "Legacy", "field": "OLD_CODE"}, */
  ],
  "filterView": [
    {"TD": [
      {"label": "Name", "field": "CUST_NAME", "groupName": "keyword"},
      {"label": "Status", "field": "STATUS", "type": "select", "codeGroup": "CUST_STATUS"},
      {"label": "Phone", "field": "PHONE", "groupName": "keyword"},
      {"label": "Joined", "field": "JOIN_DATE", "type": "dateBetween", "colspan": 2},
    ]},
    {"TD": [
      {"label": "Manager", "field": "MANAGER_NO", "type": "popup",
       "structureName": "USER_POPUP", "popupKey": "USER_NO", "displayField": "USER_NAME"},
      {"label": "Memo", "field": "MEMO", "colspan": "3"}, // free text
    ]},
  ],
  "buttons": [
    {"label": "Search", "index": "List", "inComm": "List"},
    {"label": "Reset", "index": "Init", "inComm": "initialize"},
    {"label": "Excel", "index": "excelDown", "inComm": "excel", "mobileAllow": true},
    {"label": "New", "index": "New", "inComm": "create"},
  ],
}"""

USER_POPUP_SCHEMA: dict[str, Any] = {
    "title": "Users",
    "service": "USER",
    "method": "LIST",
    "keyName": "USER_NO",
    "colModel": [
        {"label": "User No", "field": "USER_NO"},
        {"label": "Name", "field": "USER_NAME"},
    ],
    "filterView": [{"label": "Name", "field": "USER_NAME"}],
}

STATUS_CODES: list[tuple[str, str]] = [("ACTIVE", "Active"), ("DORMANT", "Dormant")]


def default_responder(params: Mapping[str, Any]) -> DataPage:
    """Echo the requested page and name filter back as one row."""
    return DataPage(
        rows=[
            {
                "CUST_NO": f"C{params['_page']}",
                "CUST_NAME": params.get("CUST_NAME", "Acme"),
                "STATUS": "ACTIVE",
                "JOIN_DATE": "2024-03-05",
            }
        ],
        total_count=42,
    )


class FakeGridClient:
    """In-memory backend recording every call.

    ``schema_gates`` and ``data_gates`` hold :class:`asyncio.Event` objects
    that calls wait on, so tests control the order responses arrive in.
    Data gates are consumed in call order.
    """

    def __init__(
        self,
        schemas: dict[str, Any] | None = None,
        responder: Callable[[Mapping[str, Any]], DataPage] = default_responder,
        codes: dict[str, list[tuple[str, str]]] | None = None,
    ) -> None:
        self.schemas = dict(schemas or {})
        self.responder = responder
        self.codes = dict(codes or {})
        self.failing_groups: set[str] = set()
        self.fail_data = False
        self.schema_calls: list[str] = []
        self.data_calls: list[dict[str, Any]] = []
        self.code_calls: list[str] = []
        self.schema_gates: dict[str, asyncio.Event] = {}
        self.data_gates: list[asyncio.Event] = []

    async def fetch_schema(self, screen_id: str, site_id: int | str) -> Any:
        self.schema_calls.append(screen_id)
        gate = self.schema_gates.get(screen_id)
        if gate is not None:
            await gate.wait()
        if screen_id not in self.schemas:
            raise SchemaFetchError(f"unknown screen {screen_id}")
        return self.schemas[screen_id]

    async def fetch_rows(self, params: Mapping[str, Any]) -> DataPage:
        self.data_calls.append(dict(params))
        if self.data_gates:
            await self.data_gates.pop(0).wait()
        if self.fail_data:
            raise DataFetchError("backend unavailable")
        return self.responder(params)

    async def fetch_code_list(self, group: str, site_id: int | str) -> list[CodeOption]:
        self.code_calls.append(group)
        await asyncio.sleep(0)
        if group in self.failing_groups:
            raise OptionResolutionError(f"code group {group} failed")
        return [CodeOption(value=value, label=label) for value, label in self.codes.get(group, [])]


@pytest.fixture
def customer_schema_text() -> str:
    return CUSTOMER_SCHEMA_TEXT


@pytest.fixture
def customer_schema():
    return parse_schema(CUSTOMER_SCHEMA_TEXT).schema


@pytest.fixture
def fake_client() -> FakeGridClient:
    return FakeGridClient(
        schemas={"CUST_LIST": CUSTOMER_SCHEMA_TEXT, "USER_POPUP": USER_POPUP_SCHEMA},
        codes={"CUST_STATUS": STATUS_CODES},
    )


@pytest.fixture
def session() -> SessionInfo:
    return SessionInfo(site_id=7, user_id=42, user_name="Kim", user_code="U042")


@pytest.fixture
def make_query(fake_client: FakeGridClient, session: SessionInfo) -> Callable[..., GridQuery]:
    """Build a GridQuery on the fake backend with a private code cache."""

    def _make(**kwargs: Any) -> GridQuery:
        kwargs.setdefault("code_cache", CodeListCache())
        kwargs.setdefault("debounce_seconds", 0.01)
        return GridQuery(fake_client, session, **kwargs)

    return _make
