"""Date backfill for raw rows ingested before their date column was mapped.

Only ``data_rows.date`` is ever written; the raw ``data`` stays untouched.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aether.config import get_config
from aether.db.models import DataRowModel, UploadModel
from aether.mapping.columns import ROLE_DATE, get_mapped_header, normalize_mapping
from aether.pipeline.dates import resolve_date
from aether.pipeline.types import BackfillResult

logger = logging.getLogger(__name__)

BACKFILL_BATCH_SIZE = 200


async def backfill_dates(
    session: AsyncSession, since: datetime | None = None
) -> BackfillResult:
    """Resolve and store dates for rows whose ``date`` is still null.

    Args:
        session: Database session
        since: Only uploads created at or after this instant
            (default: now minus the configured lookback window)

    Returns:
        BackfillResult with upload and row counters
    """
    if since is None:
        lookback = get_config().ingestion.backfill_lookback_days
        since = datetime.now(timezone.utc) - timedelta(days=lookback)

    result = BackfillResult()

    uploads = (
        await session.execute(
            select(UploadModel)
            .where(UploadModel.created_at >= since)
            .order_by(UploadModel.created_at)
        )
    ).scalars().all()

    for upload in uploads:
        if not upload.column_mapping:
            result.uploads_skipped += 1
            continue

        result.uploads_processed += 1
        date_header = get_mapped_header(normalize_mapping(upload.column_mapping), ROLE_DATE)

        rows = (
            await session.execute(
                select(DataRowModel).where(
                    DataRowModel.upload_id == upload.id,
                    DataRowModel.date.is_(None),
                )
            )
        ).scalars().all()

        pending = 0
        for row in rows:
            resolved = resolve_date(None, row.data, date_header)
            if resolved is None:
                result.rows_still_null += 1
                continue

            row.date = resolved
            result.rows_updated += 1
            pending += 1
            if pending >= BACKFILL_BATCH_SIZE:
                await session.flush()
                pending = 0

        await session.flush()

    logger.info(
        f"Date backfill since {since.isoformat()}: "
        f"{result.uploads_processed} uploads processed, "
        f"{result.uploads_skipped} skipped, {result.rows_updated} rows updated, "
        f"{result.rows_still_null} rows still without date"
    )
    return result
