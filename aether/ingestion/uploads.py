"""Spreadsheet upload ingestion for Aether.

Parses CSV/XLSX exports into an Upload plus one DataRow per non-blank record.
Every value is stored as a trimmed string; dates are resolved once here and
may be patched later by the date backfill.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from uuid import uuid4

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from aether.config import get_config
from aether.db.models import DataRowModel, UploadModel, UploadStatus
from aether.mapping.columns import ROLE_DATE, get_mapped_header, normalize_mapping
from aether.pipeline.dates import resolve_date
from aether.pipeline.types import IngestResult

logger = logging.getLogger(__name__)

CSV_DELIMITERS = (",", "\t", ";")
CSV_SUFFIXES = (".csv", ".tsv", ".txt")
EXCEL_SUFFIXES = (".xlsx", ".xls")


def detect_delimiter(header_line: str) -> str:
    """Pick the candidate delimiter that splits the header line into most fields.

    Ties go to the earlier candidate (comma, then tab, then semicolon).
    """
    best, best_count = ",", -1
    for delimiter in CSV_DELIMITERS:
        count = len(header_line.split(delimiter))
        if count > best_count:
            best, best_count = delimiter, count
    return best


def _first_line(file_path: Path) -> str:
    with open(file_path, encoding="utf-8-sig", errors="replace") as f:
        for line in f:
            if line.strip():
                return line.strip()
    return ""


def read_table(file_path: Path) -> pd.DataFrame:
    """Read a CSV or XLSX file with every cell as a trimmed string.

    Raises:
        ValueError: If the file format is not supported
    """
    suffix = file_path.suffix.lower()

    if suffix in CSV_SUFFIXES:
        header_line = _first_line(file_path)
        if not header_line:
            return pd.DataFrame()
        df = pd.read_csv(
            file_path,
            sep=detect_delimiter(header_line),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    elif suffix in EXCEL_SUFFIXES:
        df = pd.read_excel(file_path, dtype=str, keep_default_na=False)
    else:
        raise ValueError(f"Unsupported file format: {suffix}. Use CSV or XLSX.")

    df.columns = [str(column).strip() for column in df.columns]
    df = df.fillna("")
    for column in df.columns:
        df[column] = df[column].astype(str).str.strip()

    # Drop records where every cell is blank
    return df[(df != "").any(axis=1)].reset_index(drop=True)


async def ingest_upload(
    session: AsyncSession,
    file_path: Path,
    org_id: str,
    data_type: str = "custom",
    column_mapping: dict[str, Any] | None = None,
) -> IngestResult:
    """Ingest a spreadsheet export as a new upload.

    Args:
        session: Database session
        file_path: Path to CSV or XLSX file
        org_id: Organization identifier
        data_type: Declared type ("revenue", "labor", "attendance", "custom")
        column_mapping: Optional mapping in either orientation

    Returns:
        IngestResult with the new upload id and row counts

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file format is invalid or exceeds the configured limits
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Upload file not found: {file_path}")

    limits = get_config().ingestion

    file_size_mb = file_path.stat().st_size / (1024 * 1024)
    if file_size_mb > limits.max_upload_mb:
        raise ValueError(
            f"File too large ({file_size_mb:.1f}MB). Maximum allowed: {limits.max_upload_mb}MB"
        )

    df = read_table(file_path)

    if len(df) > limits.max_upload_rows:
        raise ValueError(
            f"Too many rows ({len(df):,}). Maximum allowed: {limits.max_upload_rows:,}"
        )

    mapping = normalize_mapping(column_mapping)
    date_header = get_mapped_header(mapping, ROLE_DATE)
    declared_type = (data_type or "custom").strip() or "custom"

    upload = UploadModel(
        id=uuid4(),
        org_id=org_id,
        file_name=file_path.name,
        data_type=declared_type,
        column_mapping=mapping or None,
        status=UploadStatus.PROCESSING.value,
    )
    session.add(upload)
    await session.flush()

    result = IngestResult(upload_id=str(upload.id), headers=list(df.columns))

    for record in df.to_dict(orient="records"):
        row_date = resolve_date(None, record, date_header)
        if row_date is not None:
            result.rows_with_date += 1

        session.add(
            DataRowModel(
                org_id=org_id,
                upload_id=upload.id,
                data_type=declared_type,
                data=record,
                date=row_date,
            )
        )
        result.row_count += 1

    upload.status = UploadStatus.READY.value
    upload.row_count = result.row_count
    await session.flush()

    logger.info(
        f"Ingested {file_path.name} for org {org_id}: {result.row_count} rows, "
        f"{result.rows_without_date} without date"
    )
    return result
