from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from io import BytesIO
from typing import Any
from zipfile import BadZipFile

import numpy as np
import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from ..normalizer.headers import normalize_header, to_camel_case

"""Workbook row extraction for exported customer lists.

The exported workbook starts with a title block (report name, branch, date)
of unknown height, then the header row, the data rows and a totals row. The
header row is located by content rather than position: it is the first row
holding a known customer code / name caption in either language.

Only the first sheet is read. Output rows are sparse camelCase dicts in the
source row order (the export request fixes the sort order).
"""

__all__ = [
    "WorkbookError",
    "EmptyWorkbookError",
    "MissingHeaderRowError",
    "ExtractResult",
    "HEADER_MARKERS",
    "HEADER_MAP",
    "FOOTER_MARKERS",
    "read_first_sheet",
    "map_columns",
    "extract",
    "extract_rows",
]


class WorkbookError(Exception):
    """Raised when the downloaded buffer cannot be turned into rows."""

    stage = "extract"


class EmptyWorkbookError(WorkbookError):
    """Raised when the workbook has no sheets."""


class MissingHeaderRowError(WorkbookError):
    """Raised when no row holds a known header marker."""


HEADER_MARKERS = frozenset({
    "customer_code",
    "customer_name",
    "ma_khach_hang",
    "ten_khach_hang",
})

# normalized caption -> output field; None drops the column
HEADER_MAP: dict[str, str | None] = {
    "customer_list": None,
    "stt": None,
    "customer_code": "customerCode",
    "customer_name": "customerName",
    "ma_khach_hang": "customerCode",
    "ten_khach_hang": "customerName",
    "address": "address",
    "dia_chi": "address",
    "closing_amount": "outstandingAmount",
    "outstanding_amount": "outstandingAmount",
    "cong_no": "outstandingAmount",
    "company_tax_code": "taxCode",
    "tax_code": "taxCode",
    "ma_so_thuecccd_chu_ho": "taxCode",
    "tel": "phone",
    "phone": "phone",
    "dien_thoai": "phone",
    "contact_mobile": "contactMobile",
    "dt_di_dong_nlh": "contactMobile",
    "is_local_object": "isInternal",
    "la_doi_tuong_noi_bo": "isInternal",
    "custom_field_1": "additionalField1",
    "custom_field1": "additionalField1",
    "truong_mo_rong": "additionalField1",
    "truong_mo_rong_1": "additionalField1",
    "email": "email",
    "contact_name": "contactName",
}

# totals row label written under the code column
FOOTER_MARKERS = frozenset({"Tổng", "Total"})

# a surviving row needs at least one of these
IDENTITY_FIELDS = ("customerCode", "customerName", "additionalField1")

# what pandas/openpyxl raise for bytes that are not a readable workbook
UNREADABLE_WORKBOOK = (ValueError, KeyError, OSError, BadZipFile, InvalidFileException)


@dataclass
class ExtractResult:
    rows: list[dict[str, Any]]
    sheet_name: str
    columns: list[str | None] = field(default_factory=list)  # output field per column, None = dropped
    header_row_index: int = -1

    @property
    def row_count(self) -> int:
        return len(self.rows)


def _cell(value: Any) -> Any:
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, str) and value == "":
        # empty cells arrive as "" once default NA parsing is off
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and value != value:
        return None
    return value


def read_first_sheet(buffer: bytes) -> tuple[str, list[list[Any]]]:
    """Read the first sheet as raw rows, skipping fully blank ones.

    Cell text is taken as-is: pandas' default NA strings ("NA", "N/A",
    "null", ...) are disabled so only truly empty cells come back as None.
    """
    try:
        xls = pd.ExcelFile(BytesIO(buffer))
        if not xls.sheet_names:
            raise EmptyWorkbookError("Downloaded workbook does not contain any sheets.")
        sheet_name = str(xls.sheet_names[0])
        df = xls.parse(xls.sheet_names[0], header=None, keep_default_na=False, na_values=[])
    except UNREADABLE_WORKBOOK as e:
        raise WorkbookError(f"unable to read workbook: {e}") from e
    rows: list[list[Any]] = []
    for raw in df.itertuples(index=False, name=None):
        cells = [_cell(v) for v in raw]
        if all(c is None for c in cells):
            continue
        rows.append(cells)
    return sheet_name, rows


def find_header_row(rows: list[list[Any]]) -> int:
    for index, row in enumerate(rows):
        if any(normalize_header(cell) in HEADER_MARKERS for cell in row if cell is not None):
            return index
    return -1


def map_columns(header_row: list[Any]) -> list[str | None]:
    """Map each header cell to its output field name (None = drop)."""
    columns: list[str | None] = []
    for index, header in enumerate(header_row):
        key = normalize_header(header) or f"column_{index + 1}"
        if key in HEADER_MAP:
            columns.append(HEADER_MAP[key])
        else:
            columns.append(to_camel_case(key))
    return columns


def _build_record(columns: list[str | None], row: list[Any]) -> dict[str, Any]:
    record: dict[str, Any] = {}
    for name, value in zip(columns, row, strict=False):
        if isinstance(value, str):
            value = value.strip()
        if not name or value is None or value == "":
            continue
        record[name] = value
    return record


def _keep(record: dict[str, Any]) -> bool:
    if not record:
        return False
    if record.get("customerCode") in FOOTER_MARKERS:
        return False
    return any(record.get(f) for f in IDENTITY_FIELDS)


def extract_rows(sheet_name: str, rows: list[list[Any]]) -> ExtractResult:
    """Turn a raw row matrix into customer records."""
    if not rows:
        return ExtractResult(rows=[], sheet_name=sheet_name)

    header_index = find_header_row(rows)
    if header_index == -1:
        raise MissingHeaderRowError("Unable to locate header row in exported workbook.")

    columns = map_columns(rows[header_index])
    records = [_build_record(columns, row) for row in rows[header_index + 1:]]
    return ExtractResult(
        rows=[r for r in records if _keep(r)],
        sheet_name=sheet_name,
        columns=columns,
        header_row_index=header_index,
    )


def extract(buffer: bytes) -> ExtractResult:
    sheet_name, rows = read_first_sheet(buffer)
    return extract_rows(sheet_name, rows)
