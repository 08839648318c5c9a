"""Admin routes for Aether.

Routes:
- POST /api/admin/backfill-dates - Resolve dates for rows ingested without one
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query

from aether.db.connection import get_session
from aether.pipeline.backfill import backfill_dates
from aether.web.dependencies import require_admin_key
from aether.web.models import BackfillResponse

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_key)],
)


@router.post("/backfill-dates", response_model=BackfillResponse)
async def run_backfill_dates(days: int | None = Query(default=None, ge=1, le=3650)):
    """Patch null row dates for recent uploads (default lookback from config)."""
    since = None
    if days is not None:
        since = datetime.now(timezone.utc) - timedelta(days=days)

    async with get_session() as session:
        result = await backfill_dates(session, since=since)

    return BackfillResponse.from_result(result)
