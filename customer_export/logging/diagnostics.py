from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

"""Diagnostic snapshot log.

When an export fails after the queue step, the operator needs the last poll
response and the download attempt log to see what the upstream service
actually returned. The service boundary (CLI / HTTP) appends one record per
failure and flushes them as JSON Lines to
``logs/diagnostics-YYYYMMDD-HHMMSS.log`` (UTC). The core never writes here.
"""

__all__ = [
    "DiagnosticRecord",
    "DiagnosticLog",
    "record_from_error",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"
_CASE_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


@dataclass(frozen=True)
class DiagnosticRecord:
    """Structured failure record.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        stage: workflow stage (queue / poll / download / extract / query / config)
        error_type: error class name in UPPER_SNAKE_CASE
        message: human readable message
        details: error specific payload (last snapshot, attempts, response body)
    """
    timestamp: str
    stage: str
    error_type: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def create(stage: str, error_type: str, message: str, details: dict[str, Any] | None = None) -> DiagnosticRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return DiagnosticRecord(
            timestamp=ts,
            stage=stage,
            error_type=error_type,
            message=message,
            details=dict(details or {}),
        )

    def to_json_line(self) -> str:
        # default=str keeps non-JSON upstream payloads (bytes, datetimes) loggable
        return json.dumps(asdict(self), ensure_ascii=False, default=str)


class DiagnosticLog:
    """In-memory buffer of diagnostic records. flush() appends JSON Lines."""

    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[DiagnosticRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir or LOGS_DIR

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"diagnostics-{stamp}.log"
        return self._file_path

    def append(self, record: DiagnosticRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp


def _upper_snake(name: str) -> str:
    return _CASE_BOUNDARY.sub("_", name).upper()


def record_from_error(error: BaseException) -> DiagnosticRecord:
    """Build a record from any workflow error, using its diagnostics() payload when present."""
    details: dict[str, Any] = {}
    collect = getattr(error, "diagnostics", None)
    if callable(collect):
        details.update(collect())
    response = getattr(error, "response", None)
    if response is not None:
        details["status"] = getattr(response, "status_code", None)
        details["url"] = getattr(response, "url", None)
    return DiagnosticRecord.create(
        stage=getattr(error, "stage", "transport"),
        error_type=_upper_snake(type(error).__name__),
        message=str(error),
        details=details,
    )
