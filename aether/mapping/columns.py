"""Column role resolution for uploaded spreadsheets.

A column mapping assigns a semantic role (date, revenue, cost, labor_hours,
attendance, utilization, dimension, expected) to raw column headers. Mappings
arrive in two shapes depending on where they were saved:

    {"Date Column": "date", "Amount": "revenue"}   # header -> role
    {"date": "Date Column", "revenue": "Amount"}   # role -> header

``normalize_mapping`` folds both into the canonical header -> role dict.
Anything that cannot be classified is dropped without raising.
"""

from __future__ import annotations

from typing import Any

ColumnMapping = dict[str, str]

ROLE_DATE = "date"
ROLE_REVENUE = "revenue"
ROLE_EXPECTED = "expected"
ROLE_DIMENSION = "dimension"
ROLE_COST = "cost"
ROLE_LABOR_HOURS = "labor_hours"
ROLE_ATTENDANCE = "attendance"
ROLE_UTILIZATION = "utilization"

ALL_ROLES = (
    ROLE_DATE,
    ROLE_REVENUE,
    ROLE_COST,
    ROLE_LABOR_HOURS,
    ROLE_ATTENDANCE,
    ROLE_UTILIZATION,
    ROLE_DIMENSION,
    ROLE_EXPECTED,
)

# Roles used to detect orientation. utilization is not one of them, so it is
# only kept when the mapping is already header -> role.
KNOWN_ROLES = frozenset({
    ROLE_DATE,
    ROLE_REVENUE,
    ROLE_EXPECTED,
    ROLE_DIMENSION,
    ROLE_COST,
    ROLE_LABOR_HOURS,
    ROLE_ATTENDANCE,
})


def normalize_mapping(raw: Any) -> ColumnMapping:
    """Return the canonical header -> role mapping for ``raw``.

    If any value of ``raw`` is a known role the input is taken as header ->
    role and every string value is kept. Otherwise it is read as role ->
    header and inverted, keeping only keys that are known roles. Empty or
    non-dict input yields ``{}``.
    """
    if not raw or not isinstance(raw, dict):
        return {}

    values = [v for v in raw.values() if isinstance(v, str)]
    looks_header_to_role = any(v in KNOWN_ROLES for v in values)

    if looks_header_to_role:
        return {k: v for k, v in raw.items() if isinstance(k, str) and isinstance(v, str)}

    inverted: ColumnMapping = {}
    for key, value in raw.items():
        if isinstance(key, str) and isinstance(value, str) and key in KNOWN_ROLES:
            inverted[value] = key
    return inverted


def get_mapped_header(mapping: ColumnMapping, role: str) -> str | None:
    """First header (in mapping order) assigned to ``role``, or None."""
    for header, mapped_role in mapping.items():
        if mapped_role == role:
            return header
    return None


def get_mapped_headers(mapping: ColumnMapping, role: str) -> list[str]:
    """Every header assigned to ``role``, in mapping order."""
    return [header for header, mapped_role in mapping.items() if mapped_role == role]
