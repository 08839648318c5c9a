"""Calendar date resolution for raw spreadsheet rows.

Shared by ingestion, aggregation, the gap engine and the date backfill.

Timezone policy: every value goes through ``pandas.to_datetime(utc=True)``.
Naive strings are read as UTC midnight; offset-aware values are converted to
UTC before truncation to the calendar day. Week and month starts are computed
from that UTC day.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any

import pandas as pd

# Checked in order; first pattern with a matching header wins.
FALLBACK_DATE_PATTERNS = (
    "week_start",
    "period_start",
    "start_date",
    "date",
    "time",
    "timestamp",
    "week",
)

_HEADER_SEPARATORS = re.compile(r"[\s_\-]+")


def normalize_header(value: str) -> str:
    """Lowercase, trim and collapse whitespace / ``_`` / ``-`` runs to one space.

    ``"Week Start"``, ``"week_start"`` and ``" WEEK-start "`` all normalize to
    ``"week start"``.
    """
    return _HEADER_SEPARATORS.sub(" ", str(value).strip().lower()).strip()


_NORMALIZED_PATTERNS = tuple(normalize_header(p) for p in FALLBACK_DATE_PATTERNS)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def parse_date(raw: Any) -> date | None:
    """Permissively parse ``raw`` into a UTC calendar date, or None."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        if raw.tzinfo is not None:
            raw = raw.astimezone(timezone.utc)
        return raw.date()
    if isinstance(raw, date):
        return raw

    text = str(raw).strip()
    if not text:
        return None

    try:
        parsed = pd.to_datetime(text, utc=True, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.date()


def get_mapped_value(fields: Mapping[str, Any], header: str | None) -> Any:
    """Value under ``header`` using normalized header comparison."""
    if not header:
        return None
    target = normalize_header(header)
    for key, value in fields.items():
        if normalize_header(key) == target:
            return value
    return None


def find_fallback_date_value(fields: Mapping[str, Any]) -> Any:
    """Value of the first header matching the fallback patterns, or None."""
    normalized_keys = [(normalize_header(key), key) for key in fields]
    for pattern in _NORMALIZED_PATTERNS:
        for normalized, key in normalized_keys:
            if pattern in normalized:
                return fields[key]
    return None


def resolve_date(
    row_date: Any,
    fields: Mapping[str, Any] | None,
    mapped_date_header: str | None,
) -> date | None:
    """Resolve the canonical date of one row.

    Order, first success wins:
    1. the row's pre-resolved date, used as-is
    2. the value under the header mapped to ``date``
    3. the first header matching FALLBACK_DATE_PATTERNS
    4. permissive parse of whatever was found (None if unparseable)
    """
    if row_date is not None:
        return parse_date(row_date)

    fields = fields or {}
    value = get_mapped_value(fields, mapped_date_header)
    if _is_blank(value):
        value = find_fallback_date_value(fields)
    return parse_date(value)


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.weekday())


def month_start(day: date) -> date:
    return day.replace(day=1)
