"""Upload processor - runs the post-ingestion stages for one upload.

Stages run sequentially: KPI aggregation, performance gaps, and ontology
detection when a detector is injected. Each stage is isolated in its own
SAVEPOINT: a failing stage is rolled back alone, logged and recorded as
FAILED, and its siblings still run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from aether.config import get_config
from aether.db.models import UploadModel, UploadStatus
from aether.db.repository import fetch_data_rows, get_upload
from aether.pipeline.aggregator import aggregate
from aether.pipeline.gaps import compute_gaps
from aether.pipeline.types import (
    OntologyDetection,
    OntologyDetector,
    ProcessResult,
    StageResult,
    StageStatus,
)

logger = logging.getLogger(__name__)

STAGE_AGGREGATE = "aggregate"
STAGE_GAPS = "gaps"
STAGE_ONTOLOGY = "ontology"


def detection_summary(detection: OntologyDetection | None) -> str:
    """One-line stage message for a kept (or discarded) detection.

    Detections are reported, not persisted.
    """
    if detection is None:
        return "no confident detection"
    return (
        f"{len(detection.entity_types)} entity types, "
        f"{len(detection.relationships)} relationships "
        f"(confidence {detection.confidence:.2f})"
    )


class UploadProcessor:
    """Runs every pipeline stage for one upload with per-stage isolation."""

    def __init__(
        self,
        session: AsyncSession,
        detector: OntologyDetector | None = None,
        sample_rows: int | None = None,
        min_confidence: float | None = None,
    ):
        """Initialize processor.

        Args:
            session: Database session
            detector: Optional ontology detector; the stage is skipped without one
            sample_rows: Max rows passed to the detector (default from config)
            min_confidence: Detections at or below this are discarded (default from config)
        """
        self.session = session
        self.detector = detector

        if sample_rows is None or min_confidence is None:
            ingestion_config = get_config().ingestion
            if sample_rows is None:
                sample_rows = ingestion_config.ontology_sample_rows
            if min_confidence is None:
                min_confidence = ingestion_config.ontology_min_confidence

        self.sample_rows = sample_rows
        self.min_confidence = min_confidence

    async def run(self, org_id: str, upload_id: Any) -> ProcessResult:
        """Process one upload.

        Returns:
            ProcessResult with one StageResult per stage
        """
        started = time.perf_counter()
        result = ProcessResult(org_id=org_id, upload_id=str(upload_id))

        upload = await get_upload(self.session, org_id, upload_id)
        if upload is None:
            logger.info(f"Upload {upload_id} not found for org {org_id}; nothing to process")
            result.stages.append(
                StageResult(STAGE_AGGREGATE, StageStatus.SKIPPED, "upload not found")
            )
            return result

        logger.info(f"Processing upload {upload_id} for org {org_id}")

        aggregate_stage = await self._run_stage(
            STAGE_AGGREGATE, lambda: aggregate(self.session, org_id, upload.id)
        )
        result.stages.append(aggregate_stage)

        gaps_stage = await self._run_stage(
            STAGE_GAPS, lambda: compute_gaps(self.session, org_id, upload.id)
        )
        if gaps_stage.success and gaps_stage.detail is not None and gaps_stage.detail.skipped:
            gaps_stage.status = StageStatus.SKIPPED
            gaps_stage.message = gaps_stage.detail.skipped_reason
        result.stages.append(gaps_stage)

        if self.detector is None:
            result.stages.append(
                StageResult(STAGE_ONTOLOGY, StageStatus.SKIPPED, "no detector configured")
            )
        else:
            ontology_stage = await self._run_stage(STAGE_ONTOLOGY, lambda: self._detect(upload))
            if ontology_stage.success:
                ontology_stage.message = detection_summary(ontology_stage.detail)
            result.stages.append(ontology_stage)

        await self._finish_upload(upload, aggregate_stage)

        result.duration_seconds = time.perf_counter() - started
        logger.info(
            f"Processed upload {upload_id}: "
            + ", ".join(f"{stage.name}={stage.status.value}" for stage in result.stages)
            + f" in {result.duration_seconds:.2f}s"
        )
        return result

    async def _run_stage(
        self, name: str, stage: Callable[[], Awaitable[Any]]
    ) -> StageResult:
        """Run one stage inside a SAVEPOINT, turning any failure into a FAILED result."""
        try:
            async with self.session.begin_nested():
                detail = await stage()
        except Exception as e:
            logger.error(f"Stage {name} failed: {e}", exc_info=True)
            return StageResult(
                name=name,
                status=StageStatus.FAILED,
                message=f"{name} failed: {e}",
                error_details={
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )

        return StageResult(name=name, status=StageStatus.SUCCESS, detail=detail)

    async def _detect(self, upload: UploadModel) -> OntologyDetection | None:
        rows = await fetch_data_rows(self.session, upload.org_id, upload.id)
        sample = [dict(row.data or {}) for row in rows[: self.sample_rows]]
        if not sample:
            logger.debug(f"Upload {upload.id} has no rows for ontology detection")
            return None

        headers = list(sample[0].keys())
        detection = await self.detector.detect(headers, sample, upload.org_id)

        if (
            detection is None
            or detection.confidence <= self.min_confidence
            or not detection.entity_types
        ):
            logger.info(
                f"Discarding ontology detection for upload {upload.id} "
                f"(confidence={getattr(detection, 'confidence', None)})"
            )
            return None
        return detection

    async def _finish_upload(self, upload: UploadModel, aggregate_stage: StageResult) -> None:
        if aggregate_stage.success:
            upload.status = UploadStatus.READY.value
            upload.error_message = None
        else:
            upload.status = UploadStatus.ERROR.value
            upload.error_message = aggregate_stage.message
        await self.session.flush()


async def process_upload(
    session: AsyncSession,
    org_id: str,
    upload_id: Any,
    detector: OntologyDetector | None = None,
) -> ProcessResult:
    """Run aggregation, gap computation and ontology detection for one upload."""
    return await UploadProcessor(session, detector=detector).run(org_id, upload_id)
