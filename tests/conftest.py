# Shared pytest fixtures
from __future__ import annotations

import json
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Any

import pandas as pd
import pytest
import requests

from customer_export.config.context import ContextStore, ScopeContext, reset_context, set_context_store
from customer_export.config.loader import MisaSettings, OdooSettings
from customer_export.logging.init import reset_logging

BASE_URL = "https://misa.test"

ENV_KEYS = [
    "BASE", "TOKEN", "DEVICE", "COOKIE", "DATABASE_ID", "BRANCH_ID", "USER_ID",
    "FILE_NAME", "FILE_TYPE", "POLL_MAX", "POLL_INTERVAL_MS", "WRITE_FILE", "OUTPUT_DIR",
    "MISA_CONTEXT_PATH", "CUSTOMER_EXPORT_CONFIG",
    "ODOO_BASE", "ODOO_COOKIE", "ODOO_LIMIT", "ODOO_OFFSET", "ODOO_COUNT_LIMIT", "ODOO_ORDER",
    "ODOO_REQUEST_ID", "ODOO_DOMAIN", "ODOO_ONLY_ACTIVE", "ODOO_COMPANY_IDS", "ODOO_COMPANY_ID",
    "ODOO_UID", "ODOO_LANG", "ODOO_TZ", "PORT", "HOST",
]

CONTEXT_DATA = {
    "DatabaseId": "db-001",
    "BranchId": "br-001",
    "UserId": "us-001",
    "TenantCode": "demo",
}


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch):
    """Keep the host environment and process-wide caches out of every test."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_context()
    reset_logging()
    yield
    reset_context()
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def context_data() -> dict[str, Any]:
    return dict(CONTEXT_DATA)


@pytest.fixture()
def context_store(context_data) -> ContextStore:
    store = ContextStore.preloaded(context_data)
    set_context_store(store)
    return store


@pytest.fixture()
def misa_settings(context_data, tmp_path: Path) -> MisaSettings:
    return MisaSettings(
        base_url=BASE_URL,
        token="tok",
        device="dev-1",
        cookie=None,
        database_id="db-001",
        branch_id="br-001",
        user_id="us-001",
        context=ScopeContext.from_mapping(context_data),
        poll_max=3,
        poll_interval_ms=0,
        output_dir=str(tmp_path / "out"),
    )


@pytest.fixture()
def odoo_settings() -> OdooSettings:
    return OdooSettings(base_url="https://odoo.test", cookie="session_id=abc")


def build_response(
    status: int = 200,
    json_body: Any = None,
    content: bytes | None = None,
    url: str = "",
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.url = url
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
        response.encoding = "utf-8"
    else:
        response._content = content if content is not None else b""
    return response


class FakeSession:
    """Stand-in for requests.Session with per-route scripted responses.

    Each route holds a queue; the last entry repeats once the queue is drained.
    Exceptions in the queue are raised instead of returned.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def add(self, method: str, url: str, *responses: Any) -> FakeSession:
        self.routes.setdefault((method.upper(), url), []).extend(responses)
        return self

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append((method.upper(), url, kwargs))
        queue = self.routes.get((method.upper(), url))
        if not queue:
            raise AssertionError(f"unexpected request {method.upper()} {url}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        if not item.url:
            item.url = url
        return item

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", url, **kwargs)

    def calls_to(self, url: str) -> list[tuple[str, str, dict[str, Any]]]:
        return [c for c in self.calls if c[1] == url]


@pytest.fixture()
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def respond():
    return build_response


def make_workbook_bytes(sheets: dict[str, list[list[object]]]) -> bytes:
    buf = BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for sheet, rows in sheets.items():
            df = pd.DataFrame(rows)
            df.to_excel(writer, sheet_name=sheet, header=False, index=False)
    return buf.getvalue()


@pytest.fixture()
def make_workbook():
    return make_workbook_bytes


@pytest.fixture()
def customer_workbook() -> bytes:
    return make_workbook_bytes({
        "Customers": [
            ["DANH SÁCH KHÁCH HÀNG", None, None, None],
            [None, None, None, None],
            ["Mã khách hàng", "Tên khách hàng", "Địa chỉ", "Công nợ"],
            ["KH001", "  Công ty An Bình ", "Hà Nội", 1500],
            ["KH002", "Bob Trading", None, 0],
            ["Tổng", None, None, 1500],
        ]
    })


QUEUE_URL = f"{BASE_URL}/g2/api/export/v1/export/save_param_worker_queue"
POLL_URL = f"{BASE_URL}/g2/api/export/v1/export/get_notify_export_by_pull/exp-1"
TEMP_URL = f"{BASE_URL}/g2/api/file/v1/file/download?type=Temp&file=tmp.xlsx&dbid=db-001&name=customer_list.xlsx"
EXPORT_URL = f"{BASE_URL}/g2/api/export/v1/export/download_file/tmp.xlsx"
ODOO_URL = "https://odoo.test/web/dataset/call_kw/res.partner/web_search_read"


@pytest.fixture()
def misa_env(monkeypatch, temp_workdir) -> Path:
    """Working directory with context.json and the MISA variables set."""
    (temp_workdir / "context.json").write_text(json.dumps(CONTEXT_DATA), encoding="utf-8")
    monkeypatch.setenv("BASE", BASE_URL)
    monkeypatch.setenv("TOKEN", "tok")
    monkeypatch.setenv("DEVICE", "dev-1")
    monkeypatch.setenv("POLL_MAX", "3")
    monkeypatch.setenv("POLL_INTERVAL_MS", "0")
    monkeypatch.setenv("ODOO_BASE", "https://odoo.test")
    monkeypatch.setenv("ODOO_COOKIE", "session_id=abc")
    return temp_workdir


@pytest.fixture()
def wired_session(monkeypatch, fake_session) -> FakeSession:
    """Route every client the service facade builds through ``fake_session``."""
    from customer_export.services import customers

    build_export = customers.build_export_client
    build_query = customers.build_query_client
    monkeypatch.setattr(
        customers,
        "build_export_client",
        lambda settings: build_export(settings, session=fake_session, sleep=lambda _: None),
    )
    monkeypatch.setattr(customers, "build_query_client", lambda settings: build_query(settings, session=fake_session))
    return fake_session


@pytest.fixture()
def script_export(wired_session):
    """Script queue -> poll (done + token) -> temp download answering ``status``."""
    def script(payload: bytes | None = b"", status: int = 200, poll_data: dict[str, Any] | None = None) -> FakeSession:
        wired_session.add("POST", QUEUE_URL, build_response(200, {"Data": {"export_id": "exp-1"}}))
        data = poll_data if poll_data is not None else {"Status": 3, "file_name_download": "tmp.xlsx"}
        wired_session.add("GET", POLL_URL, build_response(200, {"Data": data}))
        wired_session.add("GET", TEMP_URL, build_response(status, content=payload))
        wired_session.add("GET", EXPORT_URL, build_response(404))
        return wired_session
    return script
