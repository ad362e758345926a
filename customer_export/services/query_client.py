from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import requests

from ..normalizer.relations import map_relation

"""Odoo JSON-RPC query client for ``res.partner``.

One ``web_search_read`` call per fetch: the caller passes the domain filter,
pagination and scope context, and gets back a single page of normalized
partner rows. There is no pagination loop here.
"""

__all__ = [
    "RemoteQueryError",
    "Pagination",
    "RpcScope",
    "QueryResult",
    "PARTNER_SPECIFICATION",
    "OdooQueryClient",
    "normalize_partner",
]

logger = logging.getLogger(__name__)

MODEL = "res.partner"
METHOD = "web_search_read"
DEFAULT_TIMEOUT = 30

PARTNER_SPECIFICATION: dict[str, Any] = {
    "display_name": {},
    "customer_code": {},
    "complete_name": {},
    "phone": {},
    "mobile": {},
    "email": {},
    "user_id": {"fields": {"display_name": {}}},
    "city": {},
    "vat": {},
    "company_id": {"fields": {"display_name": {}}},
    "is_company": {},
    "active": {},
}


class RemoteQueryError(Exception):
    """The RPC endpoint answered with an explicit error object."""

    stage = "query"

    def __init__(self, message: str, response_body: Any = None) -> None:
        super().__init__(message)
        self.response_body = response_body

    def diagnostics(self) -> dict[str, Any]:
        return {"response_body": self.response_body}


@dataclass(frozen=True)
class Pagination:
    limit: int = 80
    offset: int = 0
    order: str = ""
    count_limit: int = 10001


@dataclass(frozen=True)
class RpcScope:
    """Locale and company/user scoping sent as the RPC ``context``."""
    uid: int = 2
    company_id: int = 1
    company_ids: tuple[int, ...] = (1,)
    lang: str = "en_US"
    tz: str = "UTC"

    def to_rpc(self) -> dict[str, Any]:
        return {
            "lang": self.lang,
            "tz": self.tz,
            "uid": self.uid,
            "allowed_company_ids": list(self.company_ids) or [self.company_id],
            "bin_size": True,
            "default_is_company": True,
            "current_company_id": self.company_id,
        }


@dataclass(frozen=True)
class QueryResult:
    rows: list[dict[str, Any]]
    total: int
    domain: list[Any] = field(default_factory=list)


def _value(record: Mapping[str, Any], key: str) -> Any:
    # Odoo sends False for empty scalar fields
    value = record.get(key)
    return None if value is False else value


def normalize_partner(record: Mapping[str, Any]) -> dict[str, Any]:
    phone = _value(record, "phone")
    if phone is None:
        phone = _value(record, "mobile")
    return {
        "id": record.get("id"),
        "displayName": _value(record, "display_name"),
        "customerCode": _value(record, "customer_code"),
        "completeName": _value(record, "complete_name"),
        "phone": phone,
        "email": _value(record, "email"),
        "city": _value(record, "city"),
        "taxCode": _value(record, "vat"),
        "accountManager": map_relation(record.get("user_id")),
        "company": map_relation(record.get("company_id")),
        "isCompany": bool(record.get("is_company")),
        "active": bool(record.get("active")),
    }


class OdooQueryClient:
    def __init__(
        self,
        base_url: str,
        cookie: str | None = None,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.cookie = cookie
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.base_url}/web/dataset/call_kw/{MODEL}/{METHOD}"

    def headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Referer": f"{self.base_url}/web",
        }
        if self.cookie:
            headers["Cookie"] = self.cookie
        return headers

    def build_payload(
        self,
        domain: Sequence[Any],
        pagination: Pagination,
        scope: RpcScope,
        request_id: int = 105,
    ) -> dict[str, Any]:
        return {
            "id": request_id,
            "jsonrpc": "2.0",
            "method": "call",
            "params": {
                "model": MODEL,
                "method": METHOD,
                "args": [],
                "kwargs": {
                    "specification": PARTNER_SPECIFICATION,
                    "offset": pagination.offset,
                    "order": pagination.order,
                    "limit": pagination.limit,
                    "context": scope.to_rpc(),
                    "count_limit": pagination.count_limit,
                    "domain": list(domain),
                },
            },
        }

    def fetch(
        self,
        domain: Sequence[Any] | None = None,
        pagination: Pagination | None = None,
        scope: RpcScope | None = None,
        *,
        only_active: bool = False,
        request_id: int = 105,
    ) -> QueryResult:
        """Fetch one page of partners.

        Raises:
            RemoteQueryError: response carries an ``error`` object
            requests.HTTPError: endpoint answered non-2xx
        """
        domain = list(domain or [])
        payload = self.build_payload(domain, pagination or Pagination(), scope or RpcScope(), request_id)
        response = self.session.post(self.url, json=payload, headers=self.headers(), timeout=self.timeout)
        response.raise_for_status()
        body = response.json()

        error = body.get("error") if isinstance(body, Mapping) else None
        if error:
            message = error.get("message") if isinstance(error, Mapping) else None
            raise RemoteQueryError(message or "Odoo request failed", response_body=body)

        result = body.get("result") if isinstance(body, Mapping) else None
        records = (result or {}).get("records") or []
        rows = [normalize_partner(r) for r in records]
        if only_active:
            rows = [r for r in rows if r["active"] is not False]
        total = (result or {}).get("length")
        logger.debug(f"odoo fetched records={len(rows)} total={total}")
        return QueryResult(rows=rows, total=total if total is not None else len(rows), domain=domain)
