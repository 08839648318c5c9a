"""Integration tests for KPI rollups over stored snapshots."""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from aether.db.repository import upsert_kpi_snapshots
from aether.pipeline.aggregator import aggregate
from aether.reporting.kpis import DateRange, KPIData, get_kpis
from aether.utils.cache import InMemoryKPICache, kpi_cache_key


async def _snapshot(session: AsyncSession, org_id: str, day: date, period: str = "daily", **metrics):
    await upsert_kpi_snapshots(
        session, [{"org_id": org_id, "period": period, "date": day, "metrics": metrics}]
    )


@pytest.mark.asyncio
async def test_totals_series_and_forecast(db_session: AsyncSession, test_org_id: str):
    await _snapshot(db_session, test_org_id, date(2024, 3, 1), revenue=100.0, laborCost=40.0)
    await _snapshot(db_session, test_org_id, date(2024, 3, 2), revenue=50.0, utilization=0.5)
    await _snapshot(db_session, test_org_id, date(2024, 3, 5), revenue=999.0)

    data = await get_kpis(
        db_session, test_org_id, "daily", DateRange(date(2024, 3, 1), date(2024, 3, 3))
    )

    assert data.revenue == 150.0
    assert data.labor_cost == 40.0
    assert data.utilization == 0.5
    assert [point.date for point in data.series] == [date(2024, 3, 1), date(2024, 3, 2)]
    assert data.series[1].labor_cost is None
    assert data.forecast == 150.0


@pytest.mark.asyncio
async def test_change_against_previous_range(db_session: AsyncSession, test_org_id: str):
    # Previous range of a 3-day window ending 2024-03-06 is 03-01..03-03
    await _snapshot(db_session, test_org_id, date(2024, 3, 2), revenue=100.0, laborCost=50.0)
    await _snapshot(db_session, test_org_id, date(2024, 3, 5), revenue=150.0, laborCost=25.0)
    await _snapshot(db_session, test_org_id, date(2024, 3, 6), utilization=0.8)

    data = await get_kpis(
        db_session, test_org_id, "daily", DateRange(date(2024, 3, 4), date(2024, 3, 6))
    )

    assert data.changes.revenue_pct == pytest.approx(50.0)
    assert data.changes.labor_cost_pct == pytest.approx(-50.0)
    # Previous utilization total is 0
    assert data.changes.utilization_pct is None


@pytest.mark.asyncio
async def test_change_is_none_only_for_metric_without_history(
    db_session: AsyncSession, test_org_id: str
):
    await _snapshot(db_session, test_org_id, date(2024, 3, 2), revenue=200.0, utilization=0.4)
    await _snapshot(
        db_session, test_org_id, date(2024, 3, 5), revenue=100.0, laborCost=30.0, utilization=0.6
    )

    data = await get_kpis(
        db_session, test_org_id, "daily", DateRange(date(2024, 3, 4), date(2024, 3, 6))
    )

    assert data.changes.labor_cost_pct is None
    assert data.changes.revenue_pct == pytest.approx(-50.0)
    assert data.changes.utilization_pct == pytest.approx(50.0)


@pytest.mark.asyncio
async def test_empty_range(db_session: AsyncSession, test_org_id: str):
    data = await get_kpis(
        db_session, test_org_id, "weekly", DateRange(date(2024, 1, 1), date(2024, 1, 31))
    )

    assert data.revenue == 0.0
    assert data.series == []
    assert data.forecast is None
    assert data.changes.revenue_pct is None


@pytest.mark.asyncio
async def test_reads_only_requested_period_and_org(db_session: AsyncSession, test_org_id: str):
    await _snapshot(db_session, test_org_id, date(2024, 3, 4), period="weekly", revenue=70.0)
    await _snapshot(db_session, test_org_id, date(2024, 3, 4), revenue=10.0)
    await _snapshot(db_session, "other-org", date(2024, 3, 4), period="weekly", revenue=5.0)

    data = await get_kpis(
        db_session, test_org_id, "weekly", DateRange(date(2024, 3, 1), date(2024, 3, 31))
    )

    assert data.revenue == 70.0


@pytest.mark.asyncio
async def test_unknown_period_raises(db_session: AsyncSession, test_org_id: str):
    with pytest.raises(ValueError):
        await get_kpis(
            db_session, test_org_id, "hourly", DateRange(date(2024, 3, 1), date(2024, 3, 2))
        )


@pytest.mark.asyncio
async def test_cached_value_is_returned(db_session: AsyncSession, test_org_id: str):
    cache = InMemoryKPICache()
    date_range = DateRange(date(2024, 3, 1), date(2024, 3, 7))
    await _snapshot(db_session, test_org_id, date(2024, 3, 1), revenue=10.0)

    first = await get_kpis(db_session, test_org_id, "daily", date_range, cache=cache)
    await _snapshot(db_session, test_org_id, date(2024, 3, 1), revenue=999.0)
    second = await get_kpis(db_session, test_org_id, "daily", date_range, cache=cache)

    assert first.revenue == 10.0
    assert second.revenue == 10.0
    assert isinstance(
        await cache.get(kpi_cache_key(test_org_id, "daily", date_range.start, date_range.end)),
        KPIData,
    )

    await cache.clear_prefix(f"kpis:{test_org_id}:")
    third = await get_kpis(db_session, test_org_id, "daily", date_range, cache=cache)
    assert third.revenue == 999.0


@pytest.mark.asyncio
async def test_rollup_after_aggregation(db_session: AsyncSession, seed_upload, test_org_id: str):
    upload = await seed_upload(
        test_org_id,
        [
            {"Day": "2024-03-11", "Sales": "100", "Wages": "30"},
            {"Day": "2024-03-12", "Sales": "60"},
        ],
        column_mapping={"Day": "date", "Sales": "revenue", "Wages": "cost"},
    )
    await aggregate(db_session, test_org_id, upload.id)

    daily = await get_kpis(
        db_session, test_org_id, "daily", DateRange(date(2024, 3, 11), date(2024, 3, 12))
    )
    monthly = await get_kpis(
        db_session, test_org_id, "monthly", DateRange(date(2024, 3, 1), date(2024, 3, 31))
    )

    assert daily.revenue == 160.0
    assert daily.labor_cost == 30.0
    assert daily.forecast == 160.0
    assert monthly.revenue == 160.0
