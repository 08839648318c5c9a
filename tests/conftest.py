"""Pytest configuration and fixtures for Aether tests.

Provides an in-memory database session and helpers for seeding uploads.
"""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from aether.config import reset_config
from aether.db.connection import create_engine_for_url
from aether.db.models import Base, DataRowModel, UploadModel, UploadStatus


@pytest.fixture
def test_org_id() -> str:
    """Test organization ID."""
    return "test-org"


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("DEFAULT_ORG_ID", "test-org")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("INTERNAL_API_SECRET", raising=False)
    monkeypatch.delenv("ADMIN_KEY", raising=False)
    monkeypatch.delenv("KPI_CACHE_ENABLED", raising=False)
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = create_engine_for_url("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


async def _seed_upload(
    session: AsyncSession,
    org_id: str,
    rows: list[dict[str, Any]],
    column_mapping: dict[str, str] | None = None,
    data_type: str = "custom",
    row_dates: list[date | None] | None = None,
) -> UploadModel:
    """Insert an upload with one DataRow per dict in ``rows``.

    ``row_dates`` pre-resolves the stored ``date`` column per row; rows default
    to a null date so the resolver reads it from the raw values.
    """
    upload = UploadModel(
        id=uuid4(),
        org_id=org_id,
        file_name="export.csv",
        data_type=data_type,
        column_mapping=column_mapping,
        status=UploadStatus.READY.value,
        row_count=len(rows),
    )
    session.add(upload)
    await session.flush()

    for index, data in enumerate(rows):
        session.add(
            DataRowModel(
                org_id=org_id,
                upload_id=upload.id,
                data_type=data_type,
                data=data,
                date=row_dates[index] if row_dates else None,
            )
        )
    await session.flush()
    return upload


@pytest.fixture
def seed_upload(db_session: AsyncSession):
    """Seeder bound to the test session: ``await seed_upload(org_id, rows, ...)``."""

    async def _seed(org_id: str, rows: list[dict[str, Any]], **kwargs) -> UploadModel:
        return await _seed_upload(db_session, org_id, rows, **kwargs)

    return _seed
