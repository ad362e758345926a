from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

from .errors import ConfigurationError

"""Scope context (tenant/session identifiers) loaded from ``context.json``.

The export service expects the same context blob on every call, both as the
``X-MISA-Context`` header and as the source of the database/branch/user ids.
The file is static for a deployment, so it is read once per process and kept
read-only afterwards. Tests swap the store with set_context_store().
"""

__all__ = [
    "ScopeContext",
    "ContextStore",
    "get_context_store",
    "set_context_store",
    "reset_context",
    "load_context",
]

DEFAULT_CONTEXT_PATH = Path("context.json")

_DATABASE_KEYS = ("DatabaseId", "database_id", "databaseId")
_BRANCH_KEYS = ("BranchId", "branch_id", "branchId")
_USER_KEYS = ("UserId", "user_id", "userId")


@dataclass(frozen=True)
class ScopeContext:
    """Parsed context blob plus its compact serialized form for headers."""
    data: Mapping[str, Any]
    serialized: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ScopeContext:
        # ensure_ascii keeps the header value latin-1 safe
        serialized = json.dumps(dict(data), separators=(",", ":"), ensure_ascii=True)
        return cls(data=MappingProxyType(dict(data)), serialized=serialized)

    def first(self, *keys: str) -> Any:
        for key in keys:
            value = self.data.get(key)
            if value not in (None, ""):
                return value
        return None

    @property
    def database_id(self) -> Any:
        return self.first(*_DATABASE_KEYS)

    @property
    def branch_id(self) -> Any:
        return self.first(*_BRANCH_KEYS)

    @property
    def user_id(self) -> Any:
        return self.first(*_USER_KEYS)


class ContextStore:
    """Load-once holder for a ScopeContext read from a JSON file."""

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path) if path is not None else _default_path()
        self._context: ScopeContext | None = None

    @classmethod
    def preloaded(cls, data: Mapping[str, Any]) -> ContextStore:
        store = cls(path=Path("<memory>"))
        store._context = ScopeContext.from_mapping(data)
        return store

    @property
    def loaded(self) -> bool:
        return self._context is not None

    def get(self) -> ScopeContext:
        if self._context is None:
            self._context = self._read()
        return self._context

    def _read(self) -> ScopeContext:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"unable to read context file at {self.path}: {e}") from e
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"context file is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"context file must hold a JSON object: {self.path}")
        return ScopeContext.from_mapping(data)


def _default_path() -> Path:
    env_path = os.environ.get("MISA_CONTEXT_PATH")
    return Path(env_path) if env_path else DEFAULT_CONTEXT_PATH


_store: ContextStore | None = None


def get_context_store(path: Path | str | None = None) -> ContextStore:
    """Return the process-wide store, creating it on first use.

    ``path`` only applies when the store is created; MISA_CONTEXT_PATH wins.
    """
    global _store
    if _store is None:
        _store = ContextStore(os.environ.get("MISA_CONTEXT_PATH") or path)
    return _store


def set_context_store(store: ContextStore | None) -> None:
    global _store
    _store = store


def reset_context() -> None:
    """Forget the process-wide store. Mainly for testing purposes."""
    set_context_store(None)


def load_context() -> ScopeContext:
    return get_context_store().get()
