"""Tests for aether.web.routes.kpis - KPI rollup route."""

from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from aether.db.models import Period
from aether.reporting.kpis import KPIChanges, KPIData, KPIPoint
from aether.web.routes import kpis


@pytest.fixture
def app():
    """Create test FastAPI app with kpis router."""
    test_app = FastAPI()
    test_app.include_router(kpis.router)
    return test_app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def mock_db_session():
    """Mock database session with async context manager."""
    session = AsyncMock()

    async_cm = AsyncMock()
    async_cm.__aenter__.return_value = session
    async_cm.__aexit__.return_value = None

    return async_cm


@pytest.fixture
def kpi_data():
    return KPIData(
        revenue=150.0,
        labor_cost=40.0,
        utilization=0.5,
        forecast=150.0,
        changes=KPIChanges(revenue_pct=50.0),
        series=[KPIPoint(date=date(2024, 3, 1), revenue=100.0, labor_cost=40.0)],
    )


class TestReadKpis:
    """Tests for GET /api/kpis."""

    @patch("aether.web.routes.kpis.get_kpis")
    @patch("aether.web.routes.kpis.get_session")
    def test_returns_rollup(self, mock_get_session, mock_get_kpis, client, mock_db_session, kpi_data):
        mock_get_session.return_value = mock_db_session
        mock_get_kpis.return_value = kpi_data

        response = client.get(
            "/api/kpis",
            params={"org": "acme", "period": "weekly", "start": "2024-03-01", "end": "2024-03-31"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["revenue"] == 150.0
        assert body["forecast"] == 150.0
        assert body["changes"]["revenue_pct"] == 50.0
        assert body["changes"]["labor_cost_pct"] is None
        assert body["series"][0]["date"] == "2024-03-01"
        assert body["series"][0]["utilization"] is None

        args, kwargs = mock_get_kpis.call_args
        assert args[1] == "acme"
        assert args[2] == Period.WEEKLY
        assert args[3].start == date(2024, 3, 1)
        assert args[3].end == date(2024, 3, 31)
        assert kwargs["cache"] is None

    @patch("aether.web.routes.kpis.get_kpis")
    @patch("aether.web.routes.kpis.get_session")
    def test_defaults_to_last_30_days_daily(
        self, mock_get_session, mock_get_kpis, client, mock_db_session, kpi_data
    ):
        mock_get_session.return_value = mock_db_session
        mock_get_kpis.return_value = kpi_data

        response = client.get("/api/kpis")

        assert response.status_code == 200
        args, _ = mock_get_kpis.call_args
        assert args[1] == "test-org"
        assert args[2] == Period.DAILY
        assert args[3].end == date.today()
        assert args[3].start == date.today() - timedelta(days=29)

    def test_inverted_range_is_rejected(self, client):
        response = client.get("/api/kpis", params={"start": "2024-03-10", "end": "2024-03-01"})

        assert response.status_code == 400
        assert "before start" in response.json()["detail"]

    def test_unknown_period_is_rejected(self, client):
        response = client.get("/api/kpis", params={"period": "hourly"})

        assert response.status_code == 422
