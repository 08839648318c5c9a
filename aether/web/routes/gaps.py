"""Performance gap routes for Aether.

Routes:
- GET /api/metrics/gaps/weekly - Leakage of the latest week with gap data
- GET /api/metrics/gaps/matrix - All weekly gaps as a dimension x week matrix
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from aether.db.connection import get_session
from aether.reporting.gap_reports import (
    GapMatrix,
    WeeklyGapSummary,
    gap_matrix,
    weekly_gap_summary,
)
from aether.web.dependencies import get_org

router = APIRouter(prefix="/api/metrics/gaps", tags=["gaps"])


@router.get("/weekly", response_model=WeeklyGapSummary)
async def read_weekly_gaps(
    org: str | None = None,
    top: int = Query(default=5, ge=1, le=50),
):
    """Total leakage and top leaking dimension values for the latest week."""
    async with get_session() as session:
        return await weekly_gap_summary(session, get_org(org), top_n=top)


@router.get("/matrix", response_model=GapMatrix)
async def read_gap_matrix(org: str | None = None):
    async with get_session() as session:
        return await gap_matrix(session, get_org(org))
