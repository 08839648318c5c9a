"""Reporting over KPI snapshots and performance gaps."""

from aether.reporting.gap_reports import gap_matrix, weekly_gap_summary
from aether.reporting.kpis import DateRange, KPIData, compute_change, get_kpis

__all__ = [
    "DateRange",
    "KPIData",
    "compute_change",
    "gap_matrix",
    "get_kpis",
    "weekly_gap_summary",
]
