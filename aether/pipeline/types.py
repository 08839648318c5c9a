"""Type definitions for pipeline operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

# Sparse per-row / per-bucket metrics. Keys are a subset of METRIC_FIELDS;
# absent keys mean "not found", never zero.
MetricRecord = dict[str, float]

REVENUE = "revenue"
LABOR_COST = "laborCost"
LABOR_HOURS = "laborHours"
ATTENDANCE = "attendance"
UTILIZATION = "utilization"

METRIC_FIELDS = (REVENUE, LABOR_COST, LABOR_HOURS, ATTENDANCE, UTILIZATION)


class StageStatus(str, Enum):
    """Outcome of one pipeline stage."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class AggregationResult:
    """Counters from one aggregate() run."""

    rows_processed: int = 0
    rows_without_date: int = 0
    rows_without_metrics: int = 0
    snapshots_written: int = 0


@dataclass
class GapResult:
    """Counters from one compute_gaps() run."""

    rows_processed: int = 0
    rows_without_date: int = 0
    gaps_written: int = 0
    skipped_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


@dataclass
class OntologyDetection:
    """Structured entity/relationship guess returned by an ontology detector."""

    entity_types: list[dict[str, Any]] = field(default_factory=list)
    relationships: list[dict[str, Any]] = field(default_factory=list)
    confidence: float = 0.0
    reasoning: str = ""


class OntologyDetector(Protocol):
    """Opaque capability: given headers and rows, guess the ontology."""

    async def detect(
        self, headers: list[str], rows: list[dict[str, Any]], org_id: str
    ) -> OntologyDetection:
        ...


@dataclass
class StageResult:
    """Result of a single isolated stage inside process_upload()."""

    name: str
    status: StageStatus
    message: str = ""
    detail: Any = None
    error_details: Optional[dict] = None

    @property
    def success(self) -> bool:
        return self.status != StageStatus.FAILED


@dataclass
class ProcessResult:
    """Summary of one process_upload() run."""

    org_id: str
    upload_id: str
    stages: list[StageResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return all(stage.success for stage in self.stages)

    def stage(self, name: str) -> StageResult | None:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None


@dataclass
class BackfillResult:
    """Counters from one date backfill run."""

    uploads_processed: int = 0
    uploads_skipped: int = 0
    rows_updated: int = 0
    rows_still_null: int = 0


@dataclass
class IngestResult:
    """Result of ingesting one spreadsheet file."""

    upload_id: str
    row_count: int = 0
    rows_with_date: int = 0
    headers: list[str] = field(default_factory=list)

    @property
    def rows_without_date(self) -> int:
        return self.row_count - self.rows_with_date
