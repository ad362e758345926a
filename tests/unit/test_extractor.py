from __future__ import annotations

import zipfile
from io import BytesIO
from unittest.mock import MagicMock, patch

import pytest
from openpyxl.utils.exceptions import InvalidFileException

from customer_export.excel.extractor import (
    EmptyWorkbookError,
    MissingHeaderRowError,
    WorkbookError,
    extract,
    extract_rows,
    map_columns,
)

"""Unit tests for workbook row extraction."""


def test_extract_customer_workbook(customer_workbook):
    result = extract(customer_workbook)

    assert result.sheet_name == "Customers"
    assert result.rows == [
        {"customerCode": "KH001", "customerName": "Công ty An Bình", "address": "Hà Nội", "outstandingAmount": 1500},
        {"customerCode": "KH002", "customerName": "Bob Trading", "outstandingAmount": 0},
    ]
    assert result.row_count == 2


def test_extract_rows_title_block_and_footer():
    rows = [
        ["Customer List"],
        ["Mã khách hàng", "Tên khách hàng"],
        ["KH001", "  Alice  "],
        ["Tổng", None],
    ]

    result = extract_rows("Sheet1", rows)

    assert result.rows == [{"customerCode": "KH001", "customerName": "Alice"}]
    assert result.header_row_index == 1
    assert result.columns == ["customerCode", "customerName"]


def test_extract_rows_english_headers_and_total_label():
    rows = [
        ["STT", "Customer Code", "Customer Name", "Tel"],
        [1, "C-1", "Acme", "0901"],
        [None, "Total", None, None],
    ]

    result = extract_rows("Sheet1", rows)

    # STT column is dropped
    assert result.rows == [{"customerCode": "C-1", "customerName": "Acme", "phone": "0901"}]


def test_unknown_columns_become_camel_case():
    assert map_columns(["Mã khách hàng", "Ghi chú nội bộ", None]) == ["customerCode", "ghiChuNoiBo", "column3"]


def test_rows_without_identity_are_dropped():
    rows = [
        ["Mã khách hàng", "Tên khách hàng", "Địa chỉ"],
        [None, None, "Orphan street"],
        ["", "  ", None],
        [None, "Only name", None],
    ]

    result = extract_rows("Sheet1", rows)

    assert result.rows == [{"customerName": "Only name"}]


def test_empty_rows_give_empty_result():
    result = extract_rows("Sheet1", [])
    assert result.rows == []
    assert result.header_row_index == -1


def test_missing_header_row_raises():
    with pytest.raises(MissingHeaderRowError, match="Unable to locate header row"):
        extract_rows("Sheet1", [["foo", "bar"], ["1", "2"]])


def test_only_first_sheet_is_read(make_workbook):
    buffer = make_workbook({
        "First": [["Customer Code"], ["A1"]],
        "Second": [["Customer Code"], ["B1"]],
    })

    result = extract(buffer)

    assert result.sheet_name == "First"
    assert result.rows == [{"customerCode": "A1"}]


def test_na_like_text_is_kept(make_workbook):
    buffer = make_workbook({
        "Sheet1": [
            ["Customer Code", "Customer Name", "Tax Code", "Email"],
            ["KH001", "Acme", "N/A", "null"],
            ["NA", "None", None, None],
        ]
    })

    assert extract(buffer).rows == [
        {"customerCode": "KH001", "customerName": "Acme", "taxCode": "N/A", "email": "null"},
        {"customerCode": "NA", "customerName": "None"},
    ]


def test_empty_cells_are_absent(make_workbook):
    buffer = make_workbook({"Sheet1": [["Customer Code", "Address", "Công nợ"], ["KH001", None, None], [None, None, None]]})

    assert extract(buffer).rows == [{"customerCode": "KH001"}]


def test_invalid_buffer_raises_workbook_error():
    with pytest.raises(WorkbookError):
        extract(b"not a workbook")


def test_zip_that_is_not_a_workbook_raises_workbook_error():
    buf = BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("readme.txt", "not a spreadsheet")

    with pytest.raises(WorkbookError, match="unable to read workbook"):
        extract(buf.getvalue())


@pytest.mark.parametrize("error", [KeyError("[Content_Types].xml"), InvalidFileException("bad archive"), OSError("truncated")])
def test_reader_errors_are_wrapped(error):
    with patch("customer_export.excel.extractor.pd.ExcelFile", side_effect=error):
        with pytest.raises(WorkbookError) as exc:
            extract(b"PK\x03\x04")
    assert exc.value.__cause__ is error
    assert exc.value.stage == "extract"


def test_workbook_without_sheets_raises():
    fake = MagicMock()
    fake.sheet_names = []
    with patch("customer_export.excel.extractor.pd.ExcelFile", return_value=fake):
        with pytest.raises(EmptyWorkbookError):
            extract(b"anything")
