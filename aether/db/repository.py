"""Reads and upserts used by the pipeline.

Upserts compile to ``INSERT ... ON CONFLICT DO UPDATE`` for PostgreSQL and
SQLite. Conflicting rows have their values replaced, never incremented.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from aether.db.models import (
    DataRowModel,
    KPISnapshotModel,
    PerformanceGapModel,
    UploadModel,
)

logger = logging.getLogger(__name__)

UPSERT_BATCH_SIZE = 500

KPI_SNAPSHOT_KEY = ("org_id", "period", "date")
PERFORMANCE_GAP_KEY = (
    "org_id",
    "upload_id",
    "metric",
    "period",
    "period_start",
    "dimension_field",
    "dimension_value",
)


def as_uuid(value: Any) -> UUID | None:
    """Coerce an id to UUID; None when it is not a valid UUID."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return None


def _dialect_insert(session: AsyncSession):
    dialect = session.bind.dialect.name if session.bind else "sqlite"

    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")
    return insert


def _chunks(rows: Sequence[dict], size: int) -> Iterable[Sequence[dict]]:
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


async def _upsert(
    session: AsyncSession,
    model: type,
    rows: Sequence[dict],
    key: tuple[str, ...],
    replace: tuple[str, ...],
) -> int:
    if not rows:
        return 0

    insert = _dialect_insert(session)
    written = 0
    for batch in _chunks(rows, UPSERT_BATCH_SIZE):
        values = [{"id": uuid4(), **row} for row in batch]
        stmt = insert(model).values(values)
        update = {column: stmt.excluded[column] for column in replace}
        update["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(index_elements=list(key), set_=update)
        await session.execute(stmt)
        written += len(batch)
    return written


async def upsert_kpi_snapshots(session: AsyncSession, rows: Sequence[dict]) -> int:
    """Upsert snapshot rows on (org_id, period, date), replacing ``metrics``.

    Args:
        session: Database session
        rows: Dicts with org_id, period, date and metrics

    Returns:
        Number of rows written
    """
    written = await _upsert(
        session, KPISnapshotModel, rows, KPI_SNAPSHOT_KEY, ("metrics",)
    )
    logger.debug(f"Upserted {written} KPI snapshot rows")
    return written


async def upsert_performance_gaps(session: AsyncSession, rows: Sequence[dict]) -> int:
    """Upsert gap rows on their composite key, replacing the computed values."""
    written = await _upsert(
        session,
        PerformanceGapModel,
        rows,
        PERFORMANCE_GAP_KEY,
        ("actual_value", "expected_value", "gap_value", "gap_pct"),
    )
    logger.debug(f"Upserted {written} performance gap rows")
    return written


async def get_upload(
    session: AsyncSession, org_id: str, upload_id: Any
) -> UploadModel | None:
    """Fetch an upload scoped to its organization."""
    upload_uuid = as_uuid(upload_id)
    if upload_uuid is None:
        return None

    result = await session.execute(
        select(UploadModel).where(
            UploadModel.id == upload_uuid,
            UploadModel.org_id == org_id,
        )
    )
    return result.scalar_one_or_none()


async def fetch_data_rows(
    session: AsyncSession, org_id: str, upload_id: Any
) -> list[DataRowModel]:
    """All raw rows of one upload."""
    upload_uuid = as_uuid(upload_id)
    if upload_uuid is None:
        return []

    result = await session.execute(
        select(DataRowModel)
        .where(
            DataRowModel.org_id == org_id,
            DataRowModel.upload_id == upload_uuid,
        )
        .order_by(DataRowModel.created_at, DataRowModel.id)
    )
    return list(result.scalars().all())


async def fetch_org_uploads(session: AsyncSession, org_id: str) -> list[UploadModel]:
    result = await session.execute(
        select(UploadModel)
        .where(UploadModel.org_id == org_id)
        .order_by(UploadModel.created_at)
    )
    return list(result.scalars().all())


async def fetch_org_rows(session: AsyncSession, org_id: str) -> list[DataRowModel]:
    """Every raw row of an organization, across uploads."""
    result = await session.execute(
        select(DataRowModel)
        .where(DataRowModel.org_id == org_id)
        .order_by(DataRowModel.created_at, DataRowModel.id)
    )
    return list(result.scalars().all())


async def fetch_snapshots(
    session: AsyncSession,
    org_id: str,
    period: str,
    start: date,
    end: date,
) -> list[KPISnapshotModel]:
    """Snapshots of one granularity with ``start <= date <= end``, by date."""
    result = await session.execute(
        select(KPISnapshotModel)
        .where(
            KPISnapshotModel.org_id == org_id,
            KPISnapshotModel.period == period,
            KPISnapshotModel.date >= start,
            KPISnapshotModel.date <= end,
        )
        .order_by(KPISnapshotModel.date)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
