from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

import requests

from ..config.loader import MisaSettings, OdooSettings
from ..excel.extractor import extract
from ..models.customer_report import CustomerReport, ExportedFile
from ..models.export_job import ExportRun
from ..models.export_request import build_customer_request
from .export_job import ExportJobClient, build_request_headers
from .query_client import OdooQueryClient, Pagination, RpcScope

"""Service facade: one call per use case, shared by the CLI and the HTTP app.

- export_customer_report  raw workbook for the attachment endpoint
- fetch_misa_customers    workbook -> normalized rows
- fetch_odoo_customers    JSON-RPC page -> normalized rows

Errors propagate unchanged; the caller maps them to exit codes / HTTP status
and records diagnostics.
"""

__all__ = [
    "CONTENT_TYPES",
    "build_export_client",
    "build_query_client",
    "run_export",
    "export_customer_report",
    "fetch_misa_customers",
    "fetch_odoo_customers",
]

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "xls": "application/vnd.ms-excel",
    "csv": "text/csv",
    "pdf": "application/pdf",
}


def build_export_client(
    settings: MisaSettings,
    session: requests.Session | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ExportJobClient:
    headers = build_request_headers(settings.token, settings.device, settings.context.serialized, settings.cookie)
    return ExportJobClient(settings.base_url, headers, session=session, sleep=sleep)


def build_query_client(settings: OdooSettings, session: requests.Session | None = None) -> OdooQueryClient:
    return OdooQueryClient(settings.base_url, cookie=settings.cookie, session=session)


def _retain(settings: MisaSettings, buffer: bytes) -> Path:
    out_dir = Path(settings.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / settings.out_file_name
    path.write_bytes(buffer)
    logger.info(f"saved {path}")
    return path


def run_export(settings: MisaSettings, client: ExportJobClient | None = None) -> ExportRun:
    client = client or build_export_client(settings)
    request = build_customer_request(settings.base_url, settings.branch_id, settings.file_type)
    run = client.run(
        request,
        db_id=settings.database_id,
        out_file_name=settings.out_file_name,
        max_attempts=settings.poll_max,
        interval_ms=settings.poll_interval_ms,
    )
    if settings.write_file and run.buffer is not None:
        _retain(settings, run.buffer)
    return run


def export_customer_report(settings: MisaSettings, client: ExportJobClient | None = None) -> ExportedFile:
    run = run_export(settings, client)
    return ExportedFile(
        buffer=run.buffer or b"",
        file_name=settings.out_file_name,
        content_type=CONTENT_TYPES.get(settings.file_type.lower(), "application/octet-stream"),
        source_url=run.source_url,
        export_id=run.export_id,
    )


def fetch_misa_customers(settings: MisaSettings, client: ExportJobClient | None = None) -> CustomerReport:
    run = run_export(settings, client)
    result = extract(run.buffer or b"")
    logger.info(f"extracted rows={result.row_count} sheet={result.sheet_name}")
    return CustomerReport(
        rows=result.rows,
        metadata={
            "databaseId": settings.database_id,
            "branchId": settings.branch_id,
            "userId": settings.user_id,
            "fileName": run.poll.file_token,
            "exportId": run.export_id,
            "sheetName": result.sheet_name,
            "rowCount": result.row_count,
            "sourceUrl": run.source_url,
        },
    )


def fetch_odoo_customers(settings: OdooSettings, client: OdooQueryClient | None = None) -> CustomerReport:
    client = client or build_query_client(settings)
    domain = list(settings.domain)
    if settings.only_active:
        domain.append(["active", "=", True])
    pagination = Pagination(
        limit=settings.limit,
        offset=settings.offset,
        order=settings.order,
        count_limit=settings.count_limit,
    )
    scope = RpcScope(
        uid=settings.uid,
        company_id=settings.company_id,
        company_ids=tuple(settings.company_ids),
        lang=settings.lang,
        tz=settings.tz,
    )
    result = client.fetch(
        domain,
        pagination,
        scope,
        only_active=settings.only_active,
        request_id=settings.request_id,
    )
    return CustomerReport(
        rows=result.rows,
        metadata={
            "total": result.total,
            "limit": settings.limit,
            "offset": settings.offset,
            "order": settings.order,
            "domain": domain,
            "baseUrl": settings.base_url,
        },
    )
