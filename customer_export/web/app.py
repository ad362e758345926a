from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import quote

import requests
from flask import Flask, Response, jsonify, make_response

from ..config.errors import ConfigurationError
from ..config.loader import MisaSettings, OdooSettings, load_config_file, load_misa_settings, load_odoo_settings
from ..excel.extractor import WorkbookError
from ..logging.diagnostics import DiagnosticLog, record_from_error
from ..services.customers import export_customer_report, fetch_misa_customers, fetch_odoo_customers
from ..services.export_job import ExportError
from ..services.query_client import RemoteQueryError

"""HTTP surface.

GET /health            liveness
GET /export            generated workbook as an attachment
GET /customers/misa    normalized rows from the export service
GET /customers/odoo    normalized rows from the CRM backend

Settings are resolved per request so a changed .env / config file is picked
up without a restart; the scope context is still read once per process.
"""

__all__ = [
    "create_app",
    "http_error",
    "status_for",
]

logger = logging.getLogger(__name__)


def http_error(status: int, msg: str, detail: str = "") -> Response:
    payload = {"message": msg}
    if detail:
        payload["detail"] = detail
    return make_response(jsonify(payload), status)


def status_for(error: BaseException) -> int:
    """Upstream HTTP status when there is one, else 502 for upstream trouble, 500 otherwise."""
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(error, requests.RequestException) and status is not None and status >= 400:
        return status
    if isinstance(error, (ExportError, WorkbookError, RemoteQueryError, requests.RequestException)):
        return 502
    return 500


def _default_misa_settings() -> MisaSettings:
    return load_misa_settings(load_config_file())


def _default_odoo_settings() -> OdooSettings:
    return load_odoo_settings(load_config_file())


def create_app(
    misa_settings: Callable[[], MisaSettings] = _default_misa_settings,
    odoo_settings: Callable[[], OdooSettings] = _default_odoo_settings,
    logs_dir: Path | None = None,
) -> Flask:
    app = Flask(__name__)

    def failure(error: Exception, msg: str) -> Response:
        logger.error(f"{msg}: {error}")
        if not isinstance(error, ConfigurationError):
            # one log per failure; requests may run on concurrent threads
            diag = DiagnosticLog(logs_dir)
            diag.append(record_from_error(error))
            path = diag.flush()
            if path is not None:
                logger.warning(f"diagnostics written to {path}")
        return http_error(status_for(error), msg, str(error))

    @app.get("/health")
    def health() -> Any:
        return jsonify({"status": "ok"})

    @app.get("/export")
    def export() -> Any:
        try:
            exported = export_customer_report(misa_settings())
        except (ConfigurationError, ExportError, requests.RequestException) as e:
            return failure(e, "Failed to generate export file.")

        response = make_response(exported.buffer)
        response.headers["Content-Type"] = exported.content_type
        response.headers["Content-Disposition"] = (
            f'attachment; filename="{exported.file_name}"; '
            f"filename*=UTF-8''{quote(exported.file_name, safe='')}"
        )
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.get("/customers/misa")
    def misa_customers() -> Any:
        try:
            report = fetch_misa_customers(misa_settings())
        except (ConfigurationError, ExportError, WorkbookError, requests.RequestException) as e:
            return failure(e, "Failed to fetch customers from export service.")
        return jsonify(report.to_dict())

    @app.get("/customers/odoo")
    def odoo_customers() -> Any:
        try:
            report = fetch_odoo_customers(odoo_settings())
        except (ConfigurationError, RemoteQueryError, requests.RequestException) as e:
            return failure(e, "Failed to fetch customers from CRM.")
        return jsonify(report.to_dict())

    return app
