from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from dotenv import load_dotenv
from jsonschema.exceptions import ValidationError

from .context import ContextStore, ScopeContext, get_context_store
from .errors import ConfigurationError

"""Settings for the MISA export path, the Odoo query path and the HTTP server.

Resolution order per value:
1. process environment (``.env`` is loaded into it without overriding)
2. optional YAML file (``CUSTOMER_EXPORT_CONFIG``, default ``config/export.yml``)
3. built-in default

Required values are checked with ensure_config() before any network call.
"""

__all__ = [
    "ConfigurationError",
    "MisaSettings",
    "OdooSettings",
    "ServerSettings",
    "ensure_config",
    "load_config_file",
    "load_env_file",
    "load_misa_settings",
    "load_odoo_settings",
    "load_server_settings",
    "parse_bool",
    "parse_list",
    "parse_number",
    "read_env",
]

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/export.yml")

_MISSING = object()


@dataclass(frozen=True)
class MisaSettings:
    base_url: str
    token: str
    device: str
    cookie: str | None
    database_id: str
    branch_id: str
    user_id: str
    context: ScopeContext
    file_name: str = "customer_list"
    file_type: str = "xlsx"
    poll_max: int = 20
    poll_interval_ms: int = 2000
    write_file: bool = False
    output_dir: str = "."

    @property
    def out_file_name(self) -> str:
        return f"{self.file_name}.{self.file_type}"


@dataclass(frozen=True)
class OdooSettings:
    base_url: str
    cookie: str
    limit: int = 80
    offset: int = 0
    count_limit: int = 10001
    order: str = ""
    request_id: int = 105
    domain: list[Any] = field(default_factory=list)
    only_active: bool = False
    company_ids: list[int] = field(default_factory=lambda: [1])
    company_id: int = 1
    uid: int = 2
    lang: str = "en_US"
    tz: str = "UTC"


@dataclass(frozen=True)
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = 3000


def load_env_file(path: Path = Path(".env")) -> None:
    """Load ``.env`` into the process environment without overriding it."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=False)


def read_env(key: str, default: Any = None) -> Any:
    value = os.environ.get(key)
    return default if value is None else value


def ensure_config(configs: Iterable[tuple[str, Any]]) -> None:
    """Fail fast naming every required value that is None or empty."""
    missing = [name for name, value in configs if value is None or value == ""]
    if missing:
        raise ConfigurationError(
            f"Missing required configuration values: {', '.join(missing)}. "
            "Update .env or context.json.",
            missing=missing,
        )


def parse_number(value: Any, fallback: Any) -> Any:
    if value is None or value == "" or isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        return value
    try:
        num = float(str(value).strip())
    except ValueError:
        return fallback
    if num != num or num in (float("inf"), float("-inf")):
        return fallback
    return int(num) if num.is_integer() else num


def parse_list(value: Any, fallback: list[Any] | None = None) -> list[Any]:
    if not value:
        return list(fallback or [])
    if isinstance(value, (list, tuple)):
        return list(value)
    return [item.strip() for item in str(value).split(",") if item.strip()]


def parse_bool(value: Any, fallback: bool = False) -> bool:
    if value is None or value == "":
        return fallback
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _validate_config_schema(data: dict[str, Any]) -> None:
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"invalid schema file: {e}") from e
    try:
        jsonschema.validate(data, schema)
    except ValidationError as e:
        raise ConfigurationError(f"config validation failed: {e.message}") from e


def load_config_file(path: Path | None = None) -> dict[str, Any]:
    """Read and validate the optional YAML config file.

    A missing file is not an error; every setting can come from the environment.
    """
    if path is None:
        path = Path(read_env("CUSTOMER_EXPORT_CONFIG", str(DEFAULT_CONFIG_PATH)))
    if not path.exists():
        logger.debug(f"config file not found, using environment only: {path}")
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file must hold a mapping: {path}")
    _validate_config_schema(data)
    return data


def _setting(env_key: str, section: Mapping[str, Any], file_key: str, default: Any = None) -> Any:
    value = os.environ.get(env_key)
    if value is not None:
        return value
    value = section.get(file_key, _MISSING)
    if value is _MISSING or value is None:
        return default
    return value


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def load_misa_settings(
    file_config: Mapping[str, Any] | None = None,
    context_store: ContextStore | None = None,
) -> MisaSettings:
    section = (file_config or {}).get("misa") or {}
    store = context_store or get_context_store(section.get("context_path"))
    context = store.get()

    base_url = str(_setting("BASE", section, "base_url", "https://actapp.misa.vn")).rstrip("/")
    token = _setting("TOKEN", section, "token")
    device = _setting("DEVICE", section, "device")
    cookie = _setting("COOKIE", section, "cookie") or None

    # context.json wins over the environment for tenant ids
    database_id = _as_text(context.database_id or _setting("DATABASE_ID", section, "database_id"))
    branch_id = _as_text(context.branch_id or _setting("BRANCH_ID", section, "branch_id"))
    user_id = _as_text(context.user_id or _setting("USER_ID", section, "user_id"))

    ensure_config([
        ("TOKEN", token),
        ("DEVICE", device),
        ("DATABASE_ID", database_id),
        ("BRANCH_ID", branch_id),
        ("USER_ID", user_id),
    ])

    return MisaSettings(
        base_url=base_url,
        token=str(token),
        device=str(device),
        cookie=cookie,
        database_id=str(database_id),
        branch_id=str(branch_id),
        user_id=str(user_id),
        context=context,
        file_name=str(_setting("FILE_NAME", section, "file_name", "customer_list")),
        file_type=str(_setting("FILE_TYPE", section, "file_type", "xlsx")),
        poll_max=int(parse_number(_setting("POLL_MAX", section, "poll_max"), 20)),
        poll_interval_ms=int(parse_number(_setting("POLL_INTERVAL_MS", section, "poll_interval_ms"), 2000)),
        write_file=parse_bool(_setting("WRITE_FILE", section, "write_file"), False),
        output_dir=str(_setting("OUTPUT_DIR", section, "output_dir", ".")),
    )


def _parse_domain(raw: Any) -> list[Any]:
    if not raw:
        return []
    if isinstance(raw, list):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning("Unable to parse ODOO_DOMAIN; using default []")
        return []
    if not isinstance(parsed, list):
        logger.warning("ODOO_DOMAIN is not a JSON list; using default []")
        return []
    return parsed


def load_odoo_settings(file_config: Mapping[str, Any] | None = None) -> OdooSettings:
    section = (file_config or {}).get("odoo") or {}
    base_url = str(_setting("ODOO_BASE", section, "base_url", "http://localhost:8069")).rstrip("/")
    cookie = _setting("ODOO_COOKIE", section, "cookie")
    ensure_config([("ODOO_COOKIE", cookie)])

    company_ids = [
        cid for cid in (parse_number(c, None) for c in parse_list(_setting("ODOO_COMPANY_IDS", section, "company_ids", "1")))
        if cid is not None
    ]
    company_id = parse_number(_setting("ODOO_COMPANY_ID", section, "company_id"), company_ids[0] if company_ids else 1)

    return OdooSettings(
        base_url=base_url,
        cookie=str(cookie),
        limit=int(parse_number(_setting("ODOO_LIMIT", section, "limit"), 80)),
        offset=int(parse_number(_setting("ODOO_OFFSET", section, "offset"), 0)),
        count_limit=int(parse_number(_setting("ODOO_COUNT_LIMIT", section, "count_limit"), 10001)),
        order=str(_setting("ODOO_ORDER", section, "order", "")),
        request_id=int(parse_number(_setting("ODOO_REQUEST_ID", section, "request_id"), 105)),
        domain=_parse_domain(_setting("ODOO_DOMAIN", section, "domain")),
        only_active=parse_bool(_setting("ODOO_ONLY_ACTIVE", section, "only_active"), False),
        company_ids=company_ids or [company_id],
        company_id=company_id,
        uid=int(parse_number(_setting("ODOO_UID", section, "uid"), 2)),
        lang=str(_setting("ODOO_LANG", section, "lang", "en_US")),
        tz=str(_setting("ODOO_TZ", section, "tz", "UTC")),
    )


def load_server_settings(file_config: Mapping[str, Any] | None = None) -> ServerSettings:
    section = (file_config or {}).get("server") or {}
    return ServerSettings(
        host=str(_setting("HOST", section, "host", "0.0.0.0")),
        port=int(parse_number(_setting("PORT", section, "port"), 3000)),
    )
