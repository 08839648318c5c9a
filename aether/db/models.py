"""SQLAlchemy async database models for Aether.

Every table is scoped by ``org_id`` (the tenant). Raw spreadsheet rows live in
``data_rows``; ``kpi_snapshots`` and ``performance_gaps`` are derived tables
rebuilt by the pipeline through upserts on their unique constraints.
"""

from __future__ import annotations

import datetime as dt
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

KPI_SNAPSHOT_CONSTRAINT = "uq_kpi_snapshots_org_period_date"
PERFORMANCE_GAP_CONSTRAINT = "uq_performance_gaps_upsert"


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class UploadStatus(str, Enum):
    """Lifecycle of an ingestion batch."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class Period(str, Enum):
    """Snapshot bucket granularity."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class UploadModel(Base):
    """One ingestion batch (a spreadsheet export submitted by a user)."""

    __tablename__ = "uploads"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    # Free-text declared type ("revenue", "labor", "attendance", "custom")
    data_type: Mapped[str] = mapped_column(Text, nullable=False, default="custom")
    # header -> role, normalized on write
    column_mapping: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=UploadStatus.PENDING.value
    )
    row_count: Mapped[int | None] = mapped_column(Integer)
    error_message: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    rows: Mapped[list[DataRowModel]] = relationship(
        back_populates="upload", cascade="all, delete-orphan"
    )
    gaps: Mapped[list[PerformanceGapModel]] = relationship(cascade="all, delete-orphan")

    __table_args__ = (Index("idx_uploads_org_created", "org_id", "created_at"),)


class DataRowModel(Base):
    """One raw spreadsheet record.

    ``data`` holds the original column values. Only ``date`` may change after
    ingestion (date backfill).
    """

    __tablename__ = "data_rows"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    upload_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("uploads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    data_type: Mapped[str] = mapped_column(Text, nullable=False, default="custom")
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    upload: Mapped[UploadModel] = relationship(back_populates="rows")

    __table_args__ = (
        Index("idx_data_rows_org_type_date", "org_id", "data_type", "date"),
    )


class KPISnapshotModel(Base):
    """Pre-aggregated metric sums for one org / period / bucket date.

    ``metrics`` carries the optional numeric fields revenue, laborCost,
    laborHours, attendance and utilization.
    """

    __tablename__ = "kpi_snapshots"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id: Mapped[str] = mapped_column(Text, nullable=False)
    period: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    metrics: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("org_id", "period", "date", name=KPI_SNAPSHOT_CONSTRAINT),
    )


class PerformanceGapModel(Base):
    """Expected vs actual revenue for one dimension value in one week."""

    __tablename__ = "performance_gaps"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id: Mapped[str] = mapped_column(Text, nullable=False)
    upload_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("uploads.id", ondelete="CASCADE"),
        nullable=False,
    )

    metric: Mapped[str] = mapped_column(Text, nullable=False, default="revenue")
    period: Mapped[str] = mapped_column(Text, nullable=False, default=Period.WEEKLY.value)
    period_start: Mapped[dt.date] = mapped_column(Date, nullable=False)
    dimension_field: Mapped[str] = mapped_column(Text, nullable=False)
    dimension_value: Mapped[str] = mapped_column(Text, nullable=False)

    actual_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    expected_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    gap_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)  # >= 0
    gap_pct: Mapped[float | None] = mapped_column(Float)  # None when expected == 0

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "org_id",
            "upload_id",
            "metric",
            "period",
            "period_start",
            "dimension_field",
            "dimension_value",
            name=PERFORMANCE_GAP_CONSTRAINT,
        ),
        Index("idx_performance_gaps_org_period", "org_id", "period", "period_start"),
        Index("idx_performance_gaps_org_dimension", "org_id", "dimension_field"),
    )
