"""Database layer for Aether with async SQLAlchemy."""

from aether.db.connection import get_session, init_db
from aether.db.models import (
    Base,
    DataRowModel,
    KPISnapshotModel,
    PerformanceGapModel,
    Period,
    UploadModel,
    UploadStatus,
)

__all__ = [
    "Base",
    "UploadModel",
    "DataRowModel",
    "KPISnapshotModel",
    "PerformanceGapModel",
    "Period",
    "UploadStatus",
    "get_session",
    "init_db",
]
