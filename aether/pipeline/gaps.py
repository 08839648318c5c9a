"""Weekly revenue gap engine.

Computes actual vs expected revenue per (ISO week, dimension value) for one
upload and upserts the result into ``performance_gaps``.

When no ``expected`` column is mapped, or a group's summed expected value is
exactly zero, the best performer of that week becomes the baseline. Gaps are
clipped at zero: outperforming the baseline is not a negative gap.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from aether.db.models import Period
from aether.db.repository import fetch_data_rows, get_upload, upsert_performance_gaps
from aether.mapping.columns import (
    ROLE_DATE,
    ROLE_DIMENSION,
    ROLE_EXPECTED,
    ROLE_REVENUE,
    get_mapped_header,
    get_mapped_headers,
    normalize_mapping,
)
from aether.pipeline.dates import get_mapped_value, resolve_date, week_start
from aether.pipeline.extraction import parse_number
from aether.pipeline.types import REVENUE, GapResult

logger = logging.getLogger(__name__)

BLANK_DIMENSION = "(blank)"


@dataclass
class GapGroup:
    actual: float = 0.0
    expected: float = 0.0


def _cell(fields: Mapping[str, Any], header: str) -> Any:
    if header in fields:
        return fields[header]
    return get_mapped_value(fields, header)


def dimension_value(raw: Any) -> str:
    """Trimmed dimension value; blanks become the ``(blank)`` placeholder."""
    if raw is None:
        return BLANK_DIMENSION
    text = str(raw).strip()
    return text or BLANK_DIMENSION


def gap_percentage(gap: float, expected: float) -> float:
    """Gap as a percentage of ``expected``, two decimals, halves rounded up."""
    return math.floor(gap / expected * 10000 + 0.5) / 100


def compute_gap(actual: float, expected: float) -> tuple[float, float | None]:
    """Return ``(gap_value, gap_pct)`` for one group against its baseline."""
    gap = max(expected - actual, 0.0)
    if expected > 0:
        return gap, gap_percentage(gap, expected)
    return gap, None


def build_gap_rows(
    org_id: str,
    upload_id: Any,
    dimension_field: str,
    groups: dict[date, dict[str, GapGroup]],
    has_expected: bool,
) -> list[dict[str, Any]]:
    rows = []
    for period_start in sorted(groups):
        week = groups[period_start]
        max_actual = max([group.actual for group in week.values()] + [0.0])

        for value in sorted(week):
            group = week[value]
            expected = group.expected
            if not has_expected or expected == 0:
                expected = max_actual

            gap, gap_pct = compute_gap(group.actual, expected)
            rows.append({
                "org_id": org_id,
                "upload_id": upload_id,
                "metric": REVENUE,
                "period": Period.WEEKLY.value,
                "period_start": period_start,
                "dimension_field": dimension_field,
                "dimension_value": value,
                "actual_value": group.actual,
                "expected_value": expected,
                "gap_value": gap,
                "gap_pct": gap_pct,
            })
    return rows


async def compute_gaps(session: AsyncSession, org_id: str, upload_id: Any) -> GapResult:
    """Compute and upsert weekly revenue gaps for one upload.

    Gated on the upload's mapping holding exactly one ``revenue`` header and
    exactly one ``dimension`` header; otherwise nothing is written and
    ``skipped_reason`` says why.

    Args:
        session: Database session
        org_id: Organization ID
        upload_id: Upload ID

    Returns:
        GapResult with counters

    Raises:
        SQLAlchemyError: If reading rows or writing gaps fails
    """
    result = GapResult()

    upload = await get_upload(session, org_id, upload_id)
    if upload is None:
        result.skipped_reason = "upload not found"
        logger.info(f"Gap computation skipped: upload {upload_id} not found for org {org_id}")
        return result

    mapping = normalize_mapping(upload.column_mapping)
    revenue_headers = get_mapped_headers(mapping, ROLE_REVENUE)
    dimension_headers = get_mapped_headers(mapping, ROLE_DIMENSION)

    if len(revenue_headers) != 1 or len(dimension_headers) != 1:
        result.skipped_reason = (
            f"needs exactly one revenue and one dimension column "
            f"(found {len(revenue_headers)} and {len(dimension_headers)})"
        )
        logger.info(f"Gap computation skipped for upload {upload_id}: {result.skipped_reason}")
        return result

    revenue_header = revenue_headers[0]
    dimension_header = dimension_headers[0]
    expected_header = get_mapped_header(mapping, ROLE_EXPECTED)
    date_header = get_mapped_header(mapping, ROLE_DATE)

    rows = await fetch_data_rows(session, org_id, upload.id)
    if not rows:
        result.skipped_reason = "upload has no rows"
        logger.info(f"Gap computation skipped: upload {upload_id} has no rows")
        return result

    groups: dict[date, dict[str, GapGroup]] = {}
    for row in rows:
        result.rows_processed += 1
        fields = row.data or {}

        day = resolve_date(row.date, fields, date_header)
        if day is None:
            result.rows_without_date += 1
            continue

        week = groups.setdefault(week_start(day), {})
        group = week.setdefault(dimension_value(_cell(fields, dimension_header)), GapGroup())
        group.actual += parse_number(_cell(fields, revenue_header), default=0.0)
        if expected_header:
            group.expected += parse_number(_cell(fields, expected_header), default=0.0)

    gap_rows = build_gap_rows(
        org_id, upload.id, dimension_header, groups, has_expected=expected_header is not None
    )
    result.gaps_written = await upsert_performance_gaps(session, gap_rows)

    logger.info(
        f"Computed gaps for upload {upload_id}: {result.gaps_written} rows over "
        f"{len(groups)} weeks, {result.rows_without_date} rows without date"
    )
    return result
