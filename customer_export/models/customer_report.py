from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

"""Result models returned by the service facade.

CustomerReport carries normalized rows plus the diagnostics metadata the
HTTP surface echoes back. ExportedFile is the raw artifact for the
attachment endpoint. RunSummary feeds the SUMMARY log line.
"""

__all__ = [
    "CustomerReport",
    "ExportedFile",
    "RunSummary",
]


@dataclass(frozen=True)
class CustomerReport:
    rows: list[dict[str, Any]]  # sparse camelCase records, in source order
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"rows": self.rows, "metadata": self.metadata}


@dataclass(frozen=True)
class ExportedFile:
    buffer: bytes
    file_name: str
    content_type: str
    source_url: str | None = None
    export_id: str | None = None


@dataclass(frozen=True)
class RunSummary:
    """One CLI/HTTP run, rendered as the SUMMARY line."""
    source: str  # misa / odoo / export
    rows: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    output: str | None = None  # written file path, if any
