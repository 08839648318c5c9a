"""Aether: spreadsheet ingestion, KPI snapshots and revenue leakage analytics."""

__version__ = "0.4.0"
