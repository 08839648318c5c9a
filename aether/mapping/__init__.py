"""Column mapping for uploaded spreadsheets."""

from aether.mapping.columns import (
    ColumnMapping,
    get_mapped_header,
    get_mapped_headers,
    normalize_mapping,
)

__all__ = [
    "ColumnMapping",
    "normalize_mapping",
    "get_mapped_header",
    "get_mapped_headers",
]
