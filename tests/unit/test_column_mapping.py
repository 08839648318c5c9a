"""Unit tests for column mapping normalization and role lookup."""

from __future__ import annotations

import pytest

from aether.mapping.columns import (
    ROLE_DATE,
    ROLE_DIMENSION,
    ROLE_REVENUE,
    get_mapped_header,
    get_mapped_headers,
    normalize_mapping,
)


class TestNormalizeMapping:
    def test_header_to_role_is_kept(self):
        raw = {"Date Column": "date", "Amount": "revenue"}

        assert normalize_mapping(raw) == {"Date Column": "date", "Amount": "revenue"}

    def test_role_to_header_is_inverted(self):
        raw = {"date": "Date Column", "revenue": "Amount"}

        assert normalize_mapping(raw) == {"Date Column": "date", "Amount": "revenue"}

    def test_both_orientations_normalize_to_same_mapping(self):
        header_to_role = {"Week": "date", "Sales": "revenue", "Coach": "dimension"}
        role_to_header = {"date": "Week", "revenue": "Sales", "dimension": "Coach"}

        assert normalize_mapping(header_to_role) == normalize_mapping(role_to_header)

    def test_inverted_mapping_drops_unknown_roles(self):
        raw = {"date": "Week", "notes": "Comments"}

        assert normalize_mapping(raw) == {"Week": "date"}

    def test_header_to_role_keeps_utilization(self):
        raw = {"Occupancy": "utilization", "Week": "date"}

        assert normalize_mapping(raw) == {"Occupancy": "utilization", "Week": "date"}

    def test_utilization_only_is_not_header_to_role(self):
        # utilization does not mark a mapping as header -> role
        assert normalize_mapping({"Occupancy": "utilization"}) == {}

    @pytest.mark.parametrize("raw", [None, {}, [], "date", 42])
    def test_empty_or_non_dict_yields_empty(self, raw):
        assert normalize_mapping(raw) == {}

    def test_non_string_values_are_ignored(self):
        raw = {"Amount": "revenue", "Extra": 3}

        assert normalize_mapping(raw) == {"Amount": "revenue"}


class TestRoleLookup:
    def test_first_header_wins(self):
        mapping = {"Gross": "revenue", "Net": "revenue", "Day": "date"}

        assert get_mapped_header(mapping, ROLE_REVENUE) == "Gross"
        assert get_mapped_header(mapping, ROLE_DATE) == "Day"
        assert get_mapped_header(mapping, ROLE_DIMENSION) is None

    def test_all_headers_in_order(self):
        mapping = {"Gross": "revenue", "Coach": "dimension", "Net": "revenue"}

        assert get_mapped_headers(mapping, ROLE_REVENUE) == ["Gross", "Net"]
        assert get_mapped_headers(mapping, ROLE_DATE) == []
