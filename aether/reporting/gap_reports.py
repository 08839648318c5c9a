"""Read-side reports over stored performance gaps.

- weekly_gap_summary: leakage of the most recent week with gap data
- gap_matrix: every week x dimension value, with per-entity totals and trends
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aether.db.models import PerformanceGapModel, Period
from aether.pipeline.dates import week_start
from aether.pipeline.gaps import gap_percentage


@dataclass
class GapCell:
    actual: float
    expected: float
    gap: float
    pct: Optional[float]


@dataclass
class LeakageRow:
    dimension_field: str
    dimension_value: str
    gap_value: float
    gap_pct: Optional[float]
    actual_value: float
    expected_value: float


@dataclass
class WeeklyGapSummary:
    week_start: date
    total_leakage: float = 0.0
    top_leakage: list[LeakageRow] = field(default_factory=list)


@dataclass
class DimensionValues:
    field: str
    values: list[str]


@dataclass
class EntityGap:
    field: str
    value: str
    total_actual: float = 0.0
    total_expected: float = 0.0
    total_gap: float = 0.0
    week_count: int = 0
    avg_gap_pct: Optional[float] = None
    trend: list[float] = field(default_factory=list)


@dataclass
class Performer:
    field: str
    value: str
    gap: float


@dataclass
class GapMatrixSummary:
    total_leakage: float = 0.0
    dimension_count: int = 0
    entity_count: int = 0
    week_count: int = 0
    best_performer: Optional[Performer] = None
    worst_performer: Optional[Performer] = None


@dataclass
class GapMatrix:
    weeks: list[date] = field(default_factory=list)
    dimensions: list[DimensionValues] = field(default_factory=list)
    # field -> value -> week -> cell
    matrix: dict[str, dict[str, dict[date, GapCell]]] = field(default_factory=dict)
    entities: list[EntityGap] = field(default_factory=list)
    summary: GapMatrixSummary = field(default_factory=GapMatrixSummary)


async def weekly_gap_summary(
    session: AsyncSession,
    org_id: str,
    top_n: int = 5,
    today: date | None = None,
) -> WeeklyGapSummary:
    """Leakage for the latest week that has gap data.

    Falls back to the current ISO week (empty) when the org has no gaps.
    """
    latest = (
        await session.execute(
            select(PerformanceGapModel.period_start)
            .where(
                PerformanceGapModel.org_id == org_id,
                PerformanceGapModel.period == Period.WEEKLY.value,
            )
            .order_by(PerformanceGapModel.period_start.desc())
            .limit(1)
        )
    ).scalar_one_or_none()

    if latest is None:
        return WeeklyGapSummary(week_start=week_start(today or date.today()))

    rows = (
        await session.execute(
            select(PerformanceGapModel)
            .where(
                PerformanceGapModel.org_id == org_id,
                PerformanceGapModel.period == Period.WEEKLY.value,
                PerformanceGapModel.period_start == latest,
            )
            .order_by(PerformanceGapModel.gap_value.desc())
            .execution_options(populate_existing=True)
        )
    ).scalars().all()

    return WeeklyGapSummary(
        week_start=latest,
        total_leakage=sum(row.gap_value or 0.0 for row in rows),
        top_leakage=[
            LeakageRow(
                dimension_field=row.dimension_field,
                dimension_value=row.dimension_value,
                gap_value=row.gap_value,
                gap_pct=row.gap_pct,
                actual_value=row.actual_value,
                expected_value=row.expected_value,
            )
            for row in rows[:top_n]
        ],
    )


async def gap_matrix(session: AsyncSession, org_id: str) -> GapMatrix:
    """Every weekly gap of an organization as a dimension x week matrix."""
    rows = (
        await session.execute(
            select(PerformanceGapModel)
            .where(
                PerformanceGapModel.org_id == org_id,
                PerformanceGapModel.period == Period.WEEKLY.value,
            )
            .order_by(PerformanceGapModel.period_start)
            .execution_options(populate_existing=True)
        )
    ).scalars().all()

    if not rows:
        return GapMatrix()

    weeks = sorted({row.period_start for row in rows})

    values_by_field: dict[str, set[str]] = {}
    matrix: dict[str, dict[str, dict[date, GapCell]]] = {}
    entities: dict[tuple[str, str], EntityGap] = {}

    for row in rows:
        values_by_field.setdefault(row.dimension_field, set()).add(row.dimension_value)
        matrix.setdefault(row.dimension_field, {}).setdefault(row.dimension_value, {})[
            row.period_start
        ] = GapCell(
            actual=row.actual_value,
            expected=row.expected_value,
            gap=row.gap_value,
            pct=row.gap_pct,
        )

        entity = entities.setdefault(
            (row.dimension_field, row.dimension_value),
            EntityGap(field=row.dimension_field, value=row.dimension_value),
        )
        entity.total_actual += row.actual_value
        entity.total_expected += row.expected_value
        entity.total_gap += row.gap_value
        entity.week_count += 1

    for entity in entities.values():
        if entity.total_expected > 0:
            entity.avg_gap_pct = gap_percentage(entity.total_gap, entity.total_expected)
        cells = matrix[entity.field][entity.value]
        entity.trend = [cells[week].gap if week in cells else 0.0 for week in weeks]

    ranked = sorted(entities.values(), key=lambda e: e.total_gap, reverse=True)
    dimensions = [
        DimensionValues(field=name, values=sorted(values))
        for name, values in values_by_field.items()
    ]

    best, worst = ranked[-1], ranked[0]
    return GapMatrix(
        weeks=weeks,
        dimensions=dimensions,
        matrix=matrix,
        entities=ranked,
        summary=GapMatrixSummary(
            total_leakage=round(sum(e.total_gap for e in ranked), 2),
            dimension_count=len(dimensions),
            entity_count=len(ranked),
            week_count=len(weeks),
            best_performer=Performer(field=best.field, value=best.value, gap=best.total_gap),
            worst_performer=Performer(field=worst.field, value=worst.value, gap=worst.total_gap),
        ),
    )
