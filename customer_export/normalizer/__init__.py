"""Text and relation normalizers shared by the export and query paths."""

from .headers import normalize_header, to_camel_case
from .relations import RelationShape, classify_relation, map_relation

__all__ = [
    "normalize_header",
    "to_camel_case",
    "RelationShape",
    "classify_relation",
    "map_relation",
]
