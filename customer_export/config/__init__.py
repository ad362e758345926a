from .context import ContextStore, ScopeContext, get_context_store, load_context, reset_context, set_context_store
from .errors import ConfigurationError
from .loader import (
    MisaSettings,
    OdooSettings,
    ServerSettings,
    ensure_config,
    load_config_file,
    load_env_file,
    load_misa_settings,
    load_odoo_settings,
    load_server_settings,
)

__all__ = [
    "ConfigurationError",
    "ContextStore",
    "ScopeContext",
    "get_context_store",
    "load_context",
    "reset_context",
    "set_context_store",
    "MisaSettings",
    "OdooSettings",
    "ServerSettings",
    "ensure_config",
    "load_config_file",
    "load_env_file",
    "load_misa_settings",
    "load_odoo_settings",
    "load_server_settings",
]
