"""KPI routes for Aether.

Routes:
- GET /api/kpis - KPI totals, changes, series and forecast for a date range
"""

from __future__ import annotations

from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query

from aether.config import get_config
from aether.db.connection import get_session
from aether.db.models import Period
from aether.reporting.kpis import DateRange, KPIData, get_kpis
from aether.utils.cache import KPICache
from aether.web.dependencies import get_kpi_cache, get_org

router = APIRouter(tags=["kpis"])

DEFAULT_RANGE_DAYS = 30


@router.get("/api/kpis", response_model=KPIData)
async def read_kpis(
    org: str | None = None,
    period: Period = Query(default=Period.DAILY),
    start: date | None = None,
    end: date | None = None,
    cache: KPICache | None = Depends(get_kpi_cache),
):
    """KPI rollup for one organization.

    Defaults to the last 30 days ending today.
    """
    org_id = get_org(org)
    end = end or date.today()
    start = start or end - timedelta(days=DEFAULT_RANGE_DAYS - 1)

    try:
        date_range = DateRange(start, end)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    async with get_session() as session:
        return await get_kpis(
            session,
            org_id,
            period,
            date_range,
            cache=cache,
            cache_ttl_seconds=get_config().cache.kpi_ttl_seconds,
        )
