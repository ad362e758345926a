from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

"""ExportRequest model: the report the export service is asked to render.

The queue endpoint expects PascalCase keys at the top level and camelCase /
snake_case keys inside ``GetDataParam``. ``sort`` and ``filter`` must be sent
as JSON strings, not nested structures.
"""

__all__ = [
    "ExportColumn",
    "DataQuery",
    "ExportRequest",
    "build_customer_request",
]

# FormatType codes used by the export service
FORMAT_TEXT = 12
FORMAT_NUMBER = 2
FORMAT_BOOLEAN = 13


@dataclass(frozen=True)
class ExportColumn:
    """One output column of the generated report."""
    key: str  # data field name on the view
    caption: str  # header text written into the workbook
    format_type: int = FORMAT_TEXT
    width: int = 150
    footer_text: str | None = None  # text for the totals row under this column

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "Key": self.key,
            "Caption": self.caption,
            "Width": self.width,
            "FormatType": self.format_type,
        }
        if self.footer_text is not None:
            payload["FooterText"] = self.footer_text
        return payload


@dataclass(frozen=True)
class DataQuery:
    """Data-source query the export worker runs to fill the report."""
    view: str
    data_type: str
    current_branch: str
    sort: tuple[dict[str, Any], ...] = ()
    filter: tuple[Any, ...] = ()
    page_index: int = 1
    page_size: int = 100
    use_sp: bool = False
    is_get_total: bool = True
    is_filter_branch: bool = False
    is_multi_branch: bool = False
    is_dependent: bool = True
    load_mode: int = 1

    def to_payload(self) -> dict[str, Any]:
        return {
            "sort": json.dumps(list(self.sort), separators=(",", ":"), ensure_ascii=False),
            "filter": json.dumps(list(self.filter), separators=(",", ":"), ensure_ascii=False),
            "pageIndex": self.page_index,
            "pageSize": self.page_size,
            "useSp": self.use_sp,
            "view": self.view,
            "dataType": self.data_type,
            "isGetTotal": self.is_get_total,
            "is_filter_branch": self.is_filter_branch,
            "current_branch": self.current_branch,
            "is_multi_branch": self.is_multi_branch,
            "is_dependent": self.is_dependent,
            "loadMode": self.load_mode,
        }


@dataclass(frozen=True)
class ExportRequest:
    columns: tuple[ExportColumn, ...]
    query: DataQuery
    get_data_url: str
    file_type: str = "xlsx"
    report_title: str = "Customer List"
    data_count: int = 3
    get_data_method: str = "POST"

    def to_payload(self) -> dict[str, Any]:
        payload = {
            "Columns": [c.to_payload() for c in self.columns],
            "GetDataUrl": self.get_data_url,
            "GetDataMethod": self.get_data_method,
            "GetDataParam": self.query.to_payload(),
            "DataCount": self.data_count,
            "FileType": self.file_type,
            "ReportTitle": self.report_title,
        }
        return payload


CUSTOMER_COLUMNS: tuple[ExportColumn, ...] = (
    ExportColumn("account_object_code", "Mã khách hàng", FORMAT_TEXT, 180, footer_text="Tổng"),
    ExportColumn("account_object_name", "Tên khách hàng", FORMAT_TEXT, 360),
    ExportColumn("address", "Địa chỉ", FORMAT_TEXT, 344),
    ExportColumn("closing_amount", "Công nợ", FORMAT_NUMBER, 150),
    ExportColumn("company_tax_code", "Mã số thuế/CCCD chủ hộ", FORMAT_TEXT, 200),
    ExportColumn("tel", "Điện thoại", FORMAT_TEXT, 150),
    ExportColumn("contact_mobile", "ĐT di động NLH", FORMAT_TEXT, 150),
    ExportColumn("is_local_object", "Là Đối tượng nội bộ", FORMAT_BOOLEAN, 200),
    ExportColumn("custom_field1", "Trường mở rộng 1", FORMAT_TEXT, 120),
    ExportColumn("email", "Email", FORMAT_TEXT, 220),
    ExportColumn("contact_name", "Contact Name", FORMAT_TEXT, 220),
)


def build_customer_request(base_url: str, branch_id: str, file_type: str = "xlsx") -> ExportRequest:
    """Default customer list report: customers only, no employees, sorted by code."""
    base = base_url.rstrip("/")
    query = DataQuery(
        view="view_account_object_customer",
        data_type="di_customer",
        current_branch=branch_id,
        sort=({"property": "account_object_code", "desc": False},),
        filter=(["is_customer", "=", True], "and", ["is_employee", "=", False]),
    )
    return ExportRequest(
        columns=CUSTOMER_COLUMNS,
        query=query,
        get_data_url=f"{base}/g2/api/db/v1/list/get_data",
        file_type=file_type,
        report_title="Customer List",
    )
