"""Ingestion-to-KPI pipeline for Aether.

Raw spreadsheet rows are resolved to calendar dates, reduced to sparse metric
records, bucketed into KPI snapshots and analysed for weekly revenue gaps.
"""

from aether.pipeline.aggregator import aggregate
from aether.pipeline.backfill import backfill_dates
from aether.pipeline.gaps import compute_gaps
from aether.pipeline.processor import UploadProcessor, process_upload

__all__ = [
    "aggregate",
    "backfill_dates",
    "compute_gaps",
    "process_upload",
    "UploadProcessor",
]
