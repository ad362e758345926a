from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import requests

from customer_export.config.errors import ConfigurationError
from customer_export.config.loader import (
    load_config_file,
    load_env_file,
    load_misa_settings,
    load_odoo_settings,
    load_server_settings,
)
from customer_export.excel.extractor import WorkbookError
from customer_export.logging.diagnostics import DiagnosticLog, record_from_error
from customer_export.logging.init import log_summary, set_debug, setup_logging
from customer_export.models.customer_report import RunSummary
from customer_export.services.customers import export_customer_report, fetch_misa_customers, fetch_odoo_customers
from customer_export.services.export_job import ExportDownloadError, ExportError, ExportNotReadyError
from customer_export.services.query_client import RemoteQueryError
from customer_export.services.summary import render_summary_body

"""CLI entrypoint.

    python -m customer_export.cli export        download the workbook to disk
    python -m customer_export.cli misa          print normalized rows (export service)
    python -m customer_export.cli odoo          print normalized rows (CRM backend)
    python -m customer_export.cli serve         run the HTTP server

Exit codes: 0 success, 1 configuration / fatal error, 2 export never became
ready, 3 every download candidate failed.
"""

logger = logging.getLogger("customer_export.cli")

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_NOT_READY = 2
EXIT_DOWNLOAD_FAILED = 3


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="customer-export", description="Customer list exporter (MISA / Odoo)")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    p.add_argument("--config", default=None, help="YAML config file (default: $CUSTOMER_EXPORT_CONFIG or config/export.yml)")
    sub = p.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", help="Generate and download the customer workbook")
    export.add_argument("--output", default=None, help="Target file (default: <FILE_NAME>.<FILE_TYPE> in OUTPUT_DIR)")

    for name, help_text in (("misa", "Fetch rows through the export service"), ("odoo", "Fetch rows through JSON-RPC")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--output", default=None, help="Write JSON here instead of stdout")

    sub.add_parser("serve", help="Run the HTTP server")
    return p.parse_args(argv)


def _write_json(payload: dict[str, Any], output: str | None) -> str | None:
    text = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
    if output is None:
        print(text)
        return None
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text + "\n", encoding="utf-8")
    return str(path)


def _summarize(source: str, rows: int, start: datetime, output: str | None = None) -> None:
    end = datetime.now(UTC)
    summary = RunSummary(
        source=source,
        rows=rows,
        start_time=start,
        end_time=end,
        elapsed_seconds=(end - start).total_seconds(),
        output=output,
    )
    log_summary(render_summary_body(summary))


def _run_export(args: argparse.Namespace, file_config: dict[str, Any]) -> int:
    start = datetime.now(UTC)
    settings = load_misa_settings(file_config)
    exported = export_customer_report(settings)
    target = Path(args.output) if args.output else Path(settings.output_dir) / exported.file_name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(exported.buffer)
    logger.info(f"Saved {target} from {exported.source_url}")
    _summarize("export", 0, start, str(target))
    return EXIT_SUCCESS


def _run_misa(args: argparse.Namespace, file_config: dict[str, Any]) -> int:
    start = datetime.now(UTC)
    report = fetch_misa_customers(load_misa_settings(file_config))
    written = _write_json(report.to_dict(), args.output)
    _summarize("misa", len(report.rows), start, written)
    return EXIT_SUCCESS


def _run_odoo(args: argparse.Namespace, file_config: dict[str, Any]) -> int:
    start = datetime.now(UTC)
    report = fetch_odoo_customers(load_odoo_settings(file_config))
    written = _write_json(report.to_dict(), args.output)
    _summarize("odoo", len(report.rows), start, written)
    return EXIT_SUCCESS


def _run_serve(args: argparse.Namespace, file_config: dict[str, Any]) -> int:  # pragma: no cover (blocking server)
    from customer_export.web.app import create_app

    server = load_server_settings(file_config)
    logger.info(f"Export server listening on port {server.port}")
    create_app().run(host=server.host, port=server.port)
    return EXIT_SUCCESS


COMMANDS = {
    "export": _run_export,
    "misa": _run_misa,
    "odoo": _run_odoo,
    "serve": _run_serve,
}


def _record(error: Exception) -> None:
    diag = DiagnosticLog()
    diag.append(record_from_error(error))
    path = diag.flush()
    if path is not None:
        logger.warning(f"Wrote diagnostics to {path} for inspection.")


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # an explicit [] must not fall back to sys.argv
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    load_env_file(Path(args.env_file))

    if args.debug:
        set_debug()

    try:
        file_config = load_config_file(Path(args.config) if args.config else None)
        return COMMANDS[args.command](args, file_config)
    except ConfigurationError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL
    except ExportNotReadyError as e:
        logger.warning(f"{e} Inspect the last notify response to locate the file field.")
        _record(e)
        return EXIT_NOT_READY
    except ExportDownloadError as e:
        attempted = ", ".join(f"{a.url} ({a.status})" for a in e.attempts) or "none"
        logger.warning(f"{e} Attempted endpoints: {attempted}")
        _record(e)
        return EXIT_DOWNLOAD_FAILED
    except (ExportError, WorkbookError, RemoteQueryError) as e:
        logger.error(f"{args.command}: {e}")
        _record(e)
        return EXIT_FATAL
    except requests.RequestException as e:
        status = getattr(e.response, "status_code", None)
        logger.error(f"HTTP ERROR status={status} {e}")
        _record(e)
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
