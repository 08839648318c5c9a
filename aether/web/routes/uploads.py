"""Upload routes for Aether.

Routes:
- POST /api/upload         - Upload a CSV/XLSX export, ingest it and run the pipeline
- POST /api/upload/process - Re-run the pipeline for an existing upload
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from aether.db.connection import get_session
from aether.ingestion.uploads import ingest_upload
from aether.pipeline.processor import process_upload
from aether.utils.cache import KPICache, org_cache_prefix
from aether.web.dependencies import get_kpi_cache, get_org, require_internal_secret
from aether.web.models import ProcessResponse, ProcessUploadRequest, UploadResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/upload", tags=["uploads"])


def parse_column_mapping(raw: str | None) -> dict | None:
    """Decode the optional JSON mapping form field.

    Raises:
        HTTPException: 400 if the value is not a JSON object
    """
    if raw is None or not raw.strip():
        return None
    try:
        mapping = json.loads(raw)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid column_mapping JSON: {e}")
    if not isinstance(mapping, dict):
        raise HTTPException(status_code=400, detail="column_mapping must be a JSON object")
    return mapping


async def _invalidate_kpis(cache: KPICache | None, org_id: str) -> None:
    if cache is not None:
        await cache.clear_prefix(org_cache_prefix(org_id))


@router.post("", response_model=UploadResponse)
async def upload_file(
    file: UploadFile = File(...),
    org: str | None = Form(default=None),
    data_type: str = Form(default="custom"),
    column_mapping: str | None = Form(default=None),
    cache: KPICache | None = Depends(get_kpi_cache),
):
    """Ingest an uploaded spreadsheet and run aggregation, gaps and detection."""
    org_id = get_org(org)
    mapping = parse_column_mapping(column_mapping)

    # Keep the suffix so the reader can pick CSV vs XLSX
    suffix = Path(file.filename or "upload.csv").suffix or ".csv"
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
        tmp.write(await file.read())
        temp_path = Path(tmp.name)

    try:
        async with get_session() as session:
            ingested = await ingest_upload(
                session,
                temp_path,
                org_id,
                data_type=data_type,
                column_mapping=mapping,
            )
            processed = await process_upload(session, org_id, ingested.upload_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Upload of {file.filename} failed for org {org_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process upload")
    finally:
        temp_path.unlink(missing_ok=True)

    await _invalidate_kpis(cache, org_id)
    return UploadResponse.from_results(ingested, processed)


@router.post(
    "/process",
    response_model=ProcessResponse,
    dependencies=[Depends(require_internal_secret)],
)
async def process_existing_upload(
    request: ProcessUploadRequest,
    cache: KPICache | None = Depends(get_kpi_cache),
):
    """Re-run the pipeline stages for an upload that is already stored."""
    org_id = get_org(request.org_id)

    async with get_session() as session:
        result = await process_upload(session, org_id, request.upload_id)

    await _invalidate_kpis(cache, org_id)
    return ProcessResponse.from_result(result)
