from __future__ import annotations

import re
import unicodedata
from typing import Any

"""Column caption normalization.

Workbook captions arrive in either English or Vietnamese, with or without
diacritics and with inconsistent spacing. normalize_header folds them into a
stable snake_case key so the extractor can look them up in its synonym table.
"""

__all__ = [
    "normalize_header",
    "to_camel_case",
]

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^\w ]", re.ASCII)
_CAMEL_SPLIT = re.compile(r"[_\s]+(.)?")


def _strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    # đ/Đ are base letters, not combining marks
    return stripped.replace("đ", "d").replace("Đ", "D")


def normalize_header(header: Any) -> str | None:
    """Return the canonical key for a raw column caption.

    >>> normalize_header("  Mã khách   hàng ")
    'ma_khach_hang'
    >>> normalize_header("Customer Code")
    'customer_code'
    """
    if header is None:
        return None
    text = _NON_WORD.sub("", _WHITESPACE.sub(" ", _strip_diacritics(str(header))))
    text = _WHITESPACE.sub("_", text.strip())
    return text.lower()


def to_camel_case(key: Any) -> str:
    """Convert a snake/space separated key into camelCase."""
    text = _CAMEL_SPLIT.sub(lambda m: m.group(1).upper() if m.group(1) else "", str(key or ""))
    if text[:1].isupper():
        text = text[0].lower() + text[1:]
    return text
