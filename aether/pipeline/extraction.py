"""Per-row metric extraction.

Turns one raw spreadsheet row into a sparse MetricRecord using three
cascading strategies. The first strategy that yields any field wins; results
are never merged across strategies.

1. Mapping-driven: headers with a mapped metric role, summed per role.
2. Keyword heuristic: well-known column names, first non-zero match wins.
3. Declared data type: a few column variants per upload type.

Strategies 2 and 3 treat a numeric zero as "absent". A genuine zero-revenue
row is therefore indistinguishable from a row without a revenue column.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from aether.mapping.columns import (
    ROLE_ATTENDANCE,
    ROLE_COST,
    ROLE_LABOR_HOURS,
    ROLE_REVENUE,
    ROLE_UTILIZATION,
    ColumnMapping,
)
from aether.pipeline.dates import get_mapped_value
from aether.pipeline.types import (
    ATTENDANCE,
    LABOR_COST,
    LABOR_HOURS,
    REVENUE,
    UTILIZATION,
    MetricRecord,
)

ROLE_TO_FIELD = {
    ROLE_REVENUE: REVENUE,
    ROLE_COST: LABOR_COST,
    ROLE_LABOR_HOURS: LABOR_HOURS,
    ROLE_ATTENDANCE: ATTENDANCE,
    ROLE_UTILIZATION: UTILIZATION,
}

# Priority-ordered candidates for the keyword heuristic (lowercased keys).
HEURISTIC_KEYS: dict[str, tuple[str, ...]] = {
    REVENUE: (
        "revenue",
        "amount",
        "total",
        "net",
        "gross",
        "sales",
        "income",
        "price",
        "revenue_per_class",
        "total_revenue",
    ),
    LABOR_COST: ("cost", "labor_cost", "labour_cost", "staff_cost", "wages"),
    LABOR_HOURS: ("hours", "labor_hours", "labour_hours", "hours_worked"),
    ATTENDANCE: ("attendance", "count", "check_ins", "headcount", "visits"),
    UTILIZATION: ("utilization", "occupancy", "utilisation"),
}

# Exact (case-sensitive) column variants per declared data type.
DECLARED_TYPE_KEYS: dict[str, dict[str, tuple[str, ...]]] = {
    "revenue": {
        REVENUE: ("revenue", "amount", "total", "net", "gross", "Revenue"),
    },
    "labor": {
        LABOR_HOURS: ("hours", "labor_hours", "Hours"),
        LABOR_COST: ("cost", "labor_cost", "Cost"),
    },
    "attendance": {
        ATTENDANCE: ("attendance", "count", "check_ins", "Attendance"),
        UTILIZATION: ("utilization", "Utilization"),
    },
}

_NUMBER_NOISE = str.maketrans("", "", "$,% \t")


def parse_number(value: Any, default: float | None = None) -> float | None:
    """Parse a spreadsheet cell as a number.

    Strips ``$``, ``,``, ``%`` and whitespace. Returns ``default`` for blanks,
    booleans, non-numeric text and non-finite values.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).translate(_NUMBER_NOISE)
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
    if not math.isfinite(number):
        return default
    return number


def _lookup(fields: Mapping[str, Any], header: str) -> Any:
    if header in fields:
        return fields[header]
    return get_mapped_value(fields, header)


def extract_by_mapping(fields: Mapping[str, Any], mapping: ColumnMapping) -> MetricRecord:
    """Sum every mapped metric column into its field."""
    metrics: MetricRecord = {}
    for header, role in mapping.items():
        field_name = ROLE_TO_FIELD.get(role)
        if field_name is None:
            continue
        number = parse_number(_lookup(fields, header))
        if number is None:
            continue
        metrics[field_name] = metrics.get(field_name, 0.0) + number
    return metrics


def extract_by_keywords(fields: Mapping[str, Any]) -> MetricRecord:
    """First non-zero value among each field's candidate column names."""
    lowered = {str(key).strip().lower(): value for key, value in fields.items()}
    metrics: MetricRecord = {}
    for field_name, candidates in HEURISTIC_KEYS.items():
        for key in candidates:
            number = parse_number(lowered.get(key))
            if number is not None and number != 0:
                metrics[field_name] = number
                break
    return metrics


def _first_present(fields: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = fields.get(key)
        if value is not None:
            return value
    return None


def extract_by_data_type(fields: Mapping[str, Any], data_type: str | None) -> MetricRecord:
    """Fallback on the upload's declared type (revenue / labor / attendance)."""
    declared = (data_type or "").strip().lower()
    variants = DECLARED_TYPE_KEYS.get(declared)
    if variants is None:
        return {}

    metrics: MetricRecord = {}
    for field_name, keys in variants.items():
        candidate = _first_present(fields, keys)
        if field_name == ATTENDANCE and (
            candidate is None or (isinstance(candidate, str) and not candidate.strip())
        ):
            # Check-in style exports: one row is one attendee.
            candidate = 1
        number = parse_number(candidate)
        if number is not None and number != 0:
            metrics[field_name] = number
    return metrics


def extract_metrics(
    fields: Mapping[str, Any] | None,
    mapping: ColumnMapping | None,
    declared_data_type: str | None,
) -> MetricRecord:
    """Extract a sparse metric record from one row.

    Args:
        fields: Raw column -> value map of the row
        mapping: Canonical header -> role mapping (may be empty)
        declared_data_type: The upload's declared type label

    Returns:
        Sparse MetricRecord; fields that were not found are omitted
    """
    fields = fields or {}

    if mapping:
        metrics = extract_by_mapping(fields, mapping)
        if metrics:
            return metrics

    metrics = extract_by_keywords(fields)
    if metrics:
        return metrics

    return extract_by_data_type(fields, declared_data_type)
