"""Unit tests for gap arithmetic and baseline substitution."""

from __future__ import annotations

from datetime import date

from aether.pipeline.gaps import (
    GapGroup,
    build_gap_rows,
    compute_gap,
    dimension_value,
    gap_percentage,
)

WEEK = date(2024, 3, 11)


def _by_value(rows):
    return {row["dimension_value"]: row for row in rows}


class TestComputeGap:
    def test_underperformer_has_positive_gap(self):
        assert compute_gap(80.0, 100.0) == (20.0, 20.0)

    def test_outperformer_is_clipped_to_zero(self):
        assert compute_gap(120.0, 100.0) == (0.0, 0.0)

    def test_zero_expected_has_no_percentage(self):
        assert compute_gap(0.0, 0.0) == (0.0, None)

    def test_percentage_is_rounded_to_two_places(self):
        gap, pct = compute_gap(2.0, 3.0)

        assert gap == 1.0
        assert pct == 33.33

    def test_exact_half_rounds_up(self):
        assert compute_gap(799.0, 800.0) == (1.0, 0.13)
        assert compute_gap(7.0, 8.0) == (1.0, 12.5)


class TestGapPercentage:
    def test_half_rounds_up(self):
        assert gap_percentage(1.0, 800.0) == 0.13

    def test_below_half_rounds_down(self):
        assert gap_percentage(1.0, 801.0) == 0.12


class TestDimensionValue:
    def test_trimmed(self):
        assert dimension_value("  Ana ") == "Ana"

    def test_blank_placeholder(self):
        assert dimension_value("   ") == "(blank)"
        assert dimension_value(None) == "(blank)"

    def test_numbers_are_stringified(self):
        assert dimension_value(3) == "3"


class TestBuildGapRows:
    def test_best_performer_is_baseline_without_expected_column(self):
        groups = {WEEK: {"A": GapGroup(actual=100.0), "B": GapGroup(actual=80.0)}}

        rows = _by_value(build_gap_rows("org", "upload", "Coach", groups, has_expected=False))

        assert rows["A"]["expected_value"] == 100.0
        assert rows["A"]["gap_value"] == 0.0
        assert rows["B"]["expected_value"] == 100.0
        assert rows["B"]["gap_value"] == 20.0
        assert rows["B"]["gap_pct"] == 20.0

    def test_mapped_expected_is_used(self):
        groups = {WEEK: {"A": GapGroup(actual=90.0, expected=120.0)}}

        rows = build_gap_rows("org", "upload", "Coach", groups, has_expected=True)

        assert rows[0]["expected_value"] == 120.0
        assert rows[0]["gap_value"] == 30.0
        assert rows[0]["gap_pct"] == 25.0

    def test_zero_expected_falls_back_to_week_max(self):
        groups = {
            WEEK: {
                "A": GapGroup(actual=100.0, expected=150.0),
                "B": GapGroup(actual=60.0, expected=0.0),
            }
        }

        rows = _by_value(build_gap_rows("org", "upload", "Coach", groups, has_expected=True))

        assert rows["A"]["expected_value"] == 150.0
        assert rows["B"]["expected_value"] == 100.0
        assert rows["B"]["gap_value"] == 40.0

    def test_all_negative_week_uses_zero_floor(self):
        groups = {WEEK: {"A": GapGroup(actual=-5.0), "B": GapGroup(actual=-10.0)}}

        rows = _by_value(build_gap_rows("org", "upload", "Coach", groups, has_expected=False))

        assert rows["B"]["expected_value"] == 0.0
        assert rows["B"]["gap_value"] == 10.0
        assert rows["B"]["gap_pct"] is None

    def test_row_keys(self):
        groups = {WEEK: {"A": GapGroup(actual=1.0)}}

        row = build_gap_rows("org", "upload", "Coach", groups, has_expected=False)[0]

        assert row["metric"] == "revenue"
        assert row["period"] == "weekly"
        assert row["period_start"] == WEEK
        assert row["dimension_field"] == "Coach"

    def test_gaps_are_never_negative(self):
        groups = {
            WEEK: {
                "A": GapGroup(actual=500.0, expected=100.0),
                "B": GapGroup(actual=20.0, expected=10.0),
            }
        }

        rows = build_gap_rows("org", "upload", "Coach", groups, has_expected=True)

        assert all(row["gap_value"] >= 0 for row in rows)
