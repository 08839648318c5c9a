"""KPI snapshot builder.

Buckets row metrics into daily, ISO-weekly and monthly sums and upserts them
as ``kpi_snapshots`` keyed by (org_id, period, date).

Every bucket touched by the upload is recomputed from all rows of the
organization present at call time (each row read with its own upload's
mapping and declared type) and the stored metrics are replaced. Running it
twice over the same rows yields the same snapshots; there are no deltas
against prior snapshot state. All accumulation happens in memory before the
single upsert, so a failure mid-pass leaves the previous snapshots untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from aether.db.models import DataRowModel, Period, UploadModel
from aether.db.repository import (
    fetch_data_rows,
    fetch_org_rows,
    fetch_org_uploads,
    get_upload,
    upsert_kpi_snapshots,
)
from aether.mapping.columns import (
    ROLE_DATE,
    ColumnMapping,
    get_mapped_header,
    normalize_mapping,
)
from aether.pipeline.dates import month_start, resolve_date, week_start
from aether.pipeline.extraction import extract_metrics
from aether.pipeline.types import AggregationResult, MetricRecord

logger = logging.getLogger(__name__)

MetricAccumulator = dict[date, MetricRecord]


@dataclass(frozen=True)
class UploadContext:
    """What a row needs from its upload to be read."""

    mapping: ColumnMapping
    date_header: str | None
    data_type: str

    @classmethod
    def from_upload(cls, upload: UploadModel) -> UploadContext:
        mapping = normalize_mapping(upload.column_mapping)
        return cls(
            mapping=mapping,
            date_header=get_mapped_header(mapping, ROLE_DATE),
            data_type=(upload.data_type or "").lower(),
        )


def accumulate(bucket: MetricAccumulator, key: date, delta: MetricRecord) -> None:
    """Add every field of ``delta`` into ``bucket[key]`` independently."""
    totals = bucket.setdefault(key, {})
    for field_name, value in delta.items():
        totals[field_name] = totals.get(field_name, 0.0) + value


def build_snapshot_rows(
    org_id: str, buckets: dict[Period, MetricAccumulator]
) -> list[dict[str, Any]]:
    rows = []
    for period, bucket in buckets.items():
        for bucket_date in sorted(bucket):
            rows.append({
                "org_id": org_id,
                "period": period.value,
                "date": bucket_date,
                "metrics": dict(bucket[bucket_date]),
            })
    return rows


def _row_date(row: DataRowModel, context: UploadContext) -> date | None:
    return resolve_date(row.date, row.data, context.date_header)


async def aggregate(
    session: AsyncSession, org_id: str, upload_id: Any
) -> AggregationResult:
    """Rebuild the KPI snapshots touched by one upload.

    A missing upload or an upload without rows is a silent no-op: nothing to
    aggregate yet is a normal state during ingestion.

    Args:
        session: Database session
        org_id: Organization ID
        upload_id: Upload ID

    Returns:
        AggregationResult with counters for the upload's rows

    Raises:
        SQLAlchemyError: If reading rows or writing snapshots fails
    """
    result = AggregationResult()

    upload = await get_upload(session, org_id, upload_id)
    if upload is None:
        logger.info(f"Aggregation skipped: upload {upload_id} not found for org {org_id}")
        return result

    upload_rows = await fetch_data_rows(session, org_id, upload.id)
    if not upload_rows:
        logger.info(f"Aggregation skipped: upload {upload_id} has no rows")
        return result

    context = UploadContext.from_upload(upload)

    touched_days: set[date] = set()
    touched_weeks: set[date] = set()
    touched_months: set[date] = set()

    for row in upload_rows:
        result.rows_processed += 1

        day = _row_date(row, context)
        if day is None:
            result.rows_without_date += 1
            continue

        if not extract_metrics(row.data, context.mapping, context.data_type):
            result.rows_without_metrics += 1
            continue

        touched_days.add(day)
        touched_weeks.add(week_start(day))
        touched_months.add(month_start(day))

    if not touched_days:
        logger.info(f"Aggregation of upload {upload_id} touched no buckets")
        return result

    contexts = {
        org_upload.id: UploadContext.from_upload(org_upload)
        for org_upload in await fetch_org_uploads(session, org_id)
    }

    daily: MetricAccumulator = {}
    weekly: MetricAccumulator = {}
    monthly: MetricAccumulator = {}

    for row in await fetch_org_rows(session, org_id):
        row_context = contexts.get(row.upload_id)
        if row_context is None:
            continue

        day = _row_date(row, row_context)
        if day is None:
            continue

        week_key = week_start(day)
        month_key = month_start(day)
        if (
            day not in touched_days
            and week_key not in touched_weeks
            and month_key not in touched_months
        ):
            continue

        metrics = extract_metrics(row.data, row_context.mapping, row_context.data_type)
        if not metrics:
            continue

        if day in touched_days:
            accumulate(daily, day, metrics)
        if week_key in touched_weeks:
            accumulate(weekly, week_key, metrics)
        if month_key in touched_months:
            accumulate(monthly, month_key, metrics)

    snapshot_rows = build_snapshot_rows(
        org_id,
        {Period.DAILY: daily, Period.WEEKLY: weekly, Period.MONTHLY: monthly},
    )
    result.snapshots_written = await upsert_kpi_snapshots(session, snapshot_rows)

    logger.info(
        f"Aggregated upload {upload_id}: {result.rows_processed} rows, "
        f"{result.rows_without_date} without date, "
        f"{result.rows_without_metrics} without metrics, "
        f"{result.snapshots_written} snapshots written"
    )
    return result
