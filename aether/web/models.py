"""Pydantic request/response models for the Aether API.

Usage:
    from aether.web.models import ProcessUploadRequest

    @router.post("/api/upload/process")
    async def process(request: ProcessUploadRequest):
        ...
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from aether.pipeline.types import BackfillResult, IngestResult, ProcessResult


class ProcessUploadRequest(BaseModel):
    """Used by: POST /api/upload/process"""

    upload_id: str
    org_id: Optional[str] = None


class StageResponse(BaseModel):
    name: str
    status: str
    message: str = ""
    error_details: Optional[dict] = None


class ProcessResponse(BaseModel):
    """Used by: POST /api/upload/process, POST /api/upload"""

    org_id: str
    upload_id: str
    success: bool
    duration_seconds: float
    stages: list[StageResponse]

    @classmethod
    def from_result(cls, result: ProcessResult) -> ProcessResponse:
        return cls(
            org_id=result.org_id,
            upload_id=result.upload_id,
            success=result.success,
            duration_seconds=round(result.duration_seconds, 3),
            stages=[
                StageResponse(
                    name=stage.name,
                    status=stage.status.value,
                    message=stage.message or "",
                    error_details=stage.error_details,
                )
                for stage in result.stages
            ],
        )


class UploadResponse(BaseModel):
    """Used by: POST /api/upload"""

    upload_id: str
    row_count: int
    rows_without_date: int
    headers: list[str]
    processing: ProcessResponse

    @classmethod
    def from_results(cls, ingested: IngestResult, processed: ProcessResult) -> UploadResponse:
        return cls(
            upload_id=ingested.upload_id,
            row_count=ingested.row_count,
            rows_without_date=ingested.rows_without_date,
            headers=ingested.headers,
            processing=ProcessResponse.from_result(processed),
        )


class BackfillResponse(BaseModel):
    """Used by: POST /api/admin/backfill-dates"""

    uploads_processed: int
    uploads_skipped: int
    rows_updated: int
    rows_still_null: int

    @classmethod
    def from_result(cls, result: BackfillResult) -> BackfillResponse:
        return cls(
            uploads_processed=result.uploads_processed,
            uploads_skipped=result.uploads_skipped,
            rows_updated=result.rows_updated,
            rows_still_null=result.rows_still_null,
        )
