from __future__ import annotations

__all__ = [
    "ConfigurationError",
]


class ConfigurationError(Exception):
    """Raised when a required setting is missing or a config source is invalid."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = list(missing or [])
