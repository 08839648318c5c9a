"""Tests for aether.web.routes.gaps - Performance gap report routes."""

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from aether.reporting.gap_reports import (
    DimensionValues,
    EntityGap,
    GapCell,
    GapMatrix,
    GapMatrixSummary,
    LeakageRow,
    Performer,
    WeeklyGapSummary,
)
from aether.web.routes import gaps


@pytest.fixture
def app():
    """Create test FastAPI app with gaps router."""
    test_app = FastAPI()
    test_app.include_router(gaps.router)
    return test_app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def mock_db_session():
    session = AsyncMock()

    async_cm = AsyncMock()
    async_cm.__aenter__.return_value = session
    async_cm.__aexit__.return_value = None

    return async_cm


class TestWeeklyGaps:
    """Tests for GET /api/metrics/gaps/weekly."""

    @patch("aether.web.routes.gaps.weekly_gap_summary")
    @patch("aether.web.routes.gaps.get_session")
    def test_weekly_summary(self, mock_get_session, mock_summary, client, mock_db_session):
        mock_get_session.return_value = mock_db_session
        mock_summary.return_value = WeeklyGapSummary(
            week_start=date(2024, 3, 11),
            total_leakage=70.0,
            top_leakage=[
                LeakageRow(
                    dimension_field="Coach",
                    dimension_value="C",
                    gap_value=70.0,
                    gap_pct=87.5,
                    actual_value=10.0,
                    expected_value=80.0,
                )
            ],
        )

        response = client.get("/api/metrics/gaps/weekly", params={"org": "acme", "top": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["week_start"] == "2024-03-11"
        assert body["total_leakage"] == 70.0
        assert body["top_leakage"][0]["dimension_value"] == "C"

        args, kwargs = mock_summary.call_args
        assert args[1] == "acme"
        assert kwargs["top_n"] == 3

    @pytest.mark.parametrize("top", [0, 51])
    def test_top_out_of_bounds(self, client, top):
        response = client.get("/api/metrics/gaps/weekly", params={"top": top})

        assert response.status_code == 422


class TestGapMatrix:
    """Tests for GET /api/metrics/gaps/matrix."""

    @patch("aether.web.routes.gaps.gap_matrix")
    @patch("aether.web.routes.gaps.get_session")
    def test_matrix(self, mock_get_session, mock_matrix, client, mock_db_session):
        mock_get_session.return_value = mock_db_session
        week = date(2024, 3, 11)
        mock_matrix.return_value = GapMatrix(
            weeks=[week],
            dimensions=[DimensionValues(field="Coach", values=["A"])],
            matrix={"Coach": {"A": {week: GapCell(actual=50.0, expected=80.0, gap=30.0, pct=37.5)}}},
            entities=[
                EntityGap(
                    field="Coach",
                    value="A",
                    total_actual=50.0,
                    total_expected=80.0,
                    total_gap=30.0,
                    week_count=1,
                    avg_gap_pct=37.5,
                    trend=[30.0],
                )
            ],
            summary=GapMatrixSummary(
                total_leakage=30.0,
                dimension_count=1,
                entity_count=1,
                week_count=1,
                best_performer=Performer(field="Coach", value="A", gap=30.0),
                worst_performer=Performer(field="Coach", value="A", gap=30.0),
            ),
        )

        response = client.get("/api/metrics/gaps/matrix")

        assert response.status_code == 200
        body = response.json()
        assert body["weeks"] == ["2024-03-11"]
        assert body["matrix"]["Coach"]["A"]["2024-03-11"]["gap"] == 30.0
        assert body["entities"][0]["trend"] == [30.0]
        assert body["summary"]["worst_performer"]["value"] == "A"
        assert mock_matrix.call_args.args[1] == "test-org"

    @patch("aether.web.routes.gaps.gap_matrix")
    @patch("aether.web.routes.gaps.get_session")
    def test_empty_matrix(self, mock_get_session, mock_matrix, client, mock_db_session):
        mock_get_session.return_value = mock_db_session
        mock_matrix.return_value = GapMatrix()

        response = client.get("/api/metrics/gaps/matrix", params={"org": "acme"})

        assert response.status_code == 200
        assert response.json()["summary"]["best_performer"] is None
