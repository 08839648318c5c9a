"""KPI query and rollup over stored snapshots.

Sums a date range of snapshots at one granularity, compares against the
immediately preceding range of equal calendar length and adds a naive
revenue forecast.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from aether.db.models import KPISnapshotModel, Period
from aether.db.repository import fetch_snapshots
from aether.pipeline.types import LABOR_COST, REVENUE, UTILIZATION
from aether.utils.cache import KPICache, kpi_cache_key

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range."""

    start: date
    end: date

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"Date range end {self.end} is before start {self.start}")

    @property
    def length_days(self) -> int:
        return (self.end - self.start).days + 1

    def previous(self) -> DateRange:
        """Range of equal length ending the day before ``start``."""
        previous_end = self.start - timedelta(days=1)
        return DateRange(previous_end - timedelta(days=self.length_days - 1), previous_end)


@dataclass
class KPIPoint:
    date: date
    revenue: Optional[float] = None
    labor_cost: Optional[float] = None
    utilization: Optional[float] = None


@dataclass
class KPIChanges:
    """Percentage change per metric; None when the previous total is 0."""

    revenue_pct: Optional[float] = None
    labor_cost_pct: Optional[float] = None
    utilization_pct: Optional[float] = None


@dataclass
class KPIData:
    revenue: float = 0.0
    labor_cost: float = 0.0
    utilization: float = 0.0
    forecast: Optional[float] = None
    changes: KPIChanges = field(default_factory=KPIChanges)
    series: list[KPIPoint] = field(default_factory=list)


def compute_change(current: float, previous: float) -> float | None:
    """``(current - previous) / |previous| * 100``, or None when previous is 0."""
    if previous == 0:
        return None
    return (current - previous) / abs(previous) * 100


def sum_metrics(snapshots: Iterable[KPISnapshotModel]) -> dict[str, float]:
    totals = {REVENUE: 0.0, LABOR_COST: 0.0, UTILIZATION: 0.0}
    for snapshot in snapshots:
        metrics = snapshot.metrics or {}
        for name in totals:
            totals[name] += float(metrics.get(name) or 0.0)
    return totals


def build_series(snapshots: Iterable[KPISnapshotModel]) -> list[KPIPoint]:
    series = []
    for snapshot in snapshots:
        metrics = snapshot.metrics or {}
        series.append(
            KPIPoint(
                date=snapshot.date,
                revenue=metrics.get(REVENUE),
                labor_cost=metrics.get(LABOR_COST),
                utilization=metrics.get(UTILIZATION),
            )
        )
    return series


def forecast_revenue(series: list[KPIPoint]) -> float | None:
    """Average revenue per series point times the number of points."""
    if not series:
        return None
    average = sum(point.revenue or 0.0 for point in series) / len(series)
    if average == 0:
        return None
    return average * len(series)


async def get_kpis(
    session: AsyncSession,
    org_id: str,
    period: Period | str,
    date_range: DateRange,
    cache: KPICache | None = None,
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
) -> KPIData:
    """Roll up KPI snapshots for one organization.

    Args:
        session: Database session
        org_id: Organization ID
        period: Snapshot granularity to read (daily, weekly or monthly)
        date_range: Inclusive range of snapshot dates
        cache: Optional cache collaborator
        cache_ttl_seconds: TTL for values written to ``cache``

    Returns:
        KPIData with totals, changes, series and forecast
    """
    period_value = Period(period).value

    cache_key = kpi_cache_key(org_id, period_value, date_range.start, date_range.end)
    if cache is not None:
        cached = await cache.get(cache_key)
        if cached is not None:
            logger.debug(f"KPI cache hit: {cache_key}")
            return cached

    current = await fetch_snapshots(
        session, org_id, period_value, date_range.start, date_range.end
    )
    previous_range = date_range.previous()
    previous = await fetch_snapshots(
        session, org_id, period_value, previous_range.start, previous_range.end
    )

    current_totals = sum_metrics(current)
    previous_totals = sum_metrics(previous)
    series = build_series(current)

    data = KPIData(
        revenue=current_totals[REVENUE],
        labor_cost=current_totals[LABOR_COST],
        utilization=current_totals[UTILIZATION],
        forecast=forecast_revenue(series),
        changes=KPIChanges(
            revenue_pct=compute_change(current_totals[REVENUE], previous_totals[REVENUE]),
            labor_cost_pct=compute_change(
                current_totals[LABOR_COST], previous_totals[LABOR_COST]
            ),
            utilization_pct=compute_change(
                current_totals[UTILIZATION], previous_totals[UTILIZATION]
            ),
        ),
        series=series,
    )

    if cache is not None:
        await cache.set(cache_key, data, cache_ttl_seconds)

    return data
