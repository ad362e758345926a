from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

"""Relation mapping for CRM many2one values.

The RPC backend returns related records in several shapes depending on the
call and the server version:

- ``[5, "Acme"]``                    positional (id, display name) pair
- ``{"id": 5, "display_name": ...}`` record read through a field specification
- ``"Acme"``                         bare scalar
- ``False`` / ``None`` / ``[]``      no relation

classify_relation inspects the runtime shape once; map_relation turns every
shape into ``{"id": ..., "name": ...}`` or ``None``.
"""

__all__ = [
    "RelationShape",
    "classify_relation",
    "map_relation",
]


class RelationShape(Enum):
    PAIR = "pair"
    RECORD = "record"
    SCALAR = "scalar"
    ABSENT = "absent"


def classify_relation(value: Any) -> RelationShape:
    if value is None or value is False:
        return RelationShape.ABSENT
    if isinstance(value, (list, tuple)):
        return RelationShape.PAIR if value else RelationShape.ABSENT
    if isinstance(value, Mapping):
        return RelationShape.RECORD if value else RelationShape.ABSENT
    if isinstance(value, str) and value == "":
        return RelationShape.ABSENT
    return RelationShape.SCALAR


def map_relation(value: Any) -> dict[str, Any] | None:
    """Normalize a related-entity value into ``{"id", "name"}``.

    >>> map_relation([5, "Acme"])
    {'id': 5, 'name': 'Acme'}
    >>> map_relation("Acme")
    {'id': None, 'name': 'Acme'}
    >>> map_relation(None) is None
    True
    """
    shape = classify_relation(value)
    if shape is RelationShape.ABSENT:
        return None
    if shape is RelationShape.PAIR:
        rel_id = value[0] if len(value) > 0 else None
        name = value[1] if len(value) > 1 else None
        return {"id": rel_id, "name": name}
    if shape is RelationShape.RECORD:
        name = value.get("display_name")
        if name is None:
            name = value.get("name")
        return {"id": value.get("id"), "name": name}
    return {"id": None, "name": str(value)}
