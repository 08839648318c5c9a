"""Spreadsheet ingestion for Aether."""

from aether.ingestion.uploads import detect_delimiter, ingest_upload, read_table

__all__ = ["detect_delimiter", "ingest_upload", "read_table"]
