"""Unit tests for spreadsheet reading and delimiter detection."""

from __future__ import annotations

import pandas as pd
import pytest

from aether.ingestion.uploads import detect_delimiter, read_table


class TestDetectDelimiter:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("date,revenue,coach", ","),
            ("date\trevenue\tcoach", "\t"),
            ("date;revenue;coach", ";"),
            ("single", ","),
        ],
    )
    def test_picks_delimiter_with_most_fields(self, header, expected):
        assert detect_delimiter(header) == expected


class TestReadTable:
    def test_semicolon_csv_with_trimming_and_blank_rows(self, tmp_path):
        path = tmp_path / "export.csv"
        path.write_text(
            " Date ; Revenue ;Coach\n"
            "2024-03-11; 1,200 ; Ana \n"
            " ; ; \n"
            "2024-03-12;900;\n"
        )

        df = read_table(path)

        assert list(df.columns) == ["Date", "Revenue", "Coach"]
        assert df.to_dict(orient="records") == [
            {"Date": "2024-03-11", "Revenue": "1,200", "Coach": "Ana"},
            {"Date": "2024-03-12", "Revenue": "900", "Coach": ""},
        ]

    def test_tab_separated(self, tmp_path):
        path = tmp_path / "export.tsv"
        path.write_text("day\tsales\n2024-01-01\t10\n")

        assert read_table(path).to_dict(orient="records") == [
            {"day": "2024-01-01", "sales": "10"}
        ]

    def test_values_stay_strings(self, tmp_path):
        path = tmp_path / "export.csv"
        path.write_text("code,amount\n007,10.50\n")

        assert read_table(path).to_dict(orient="records") == [
            {"code": "007", "amount": "10.50"}
        ]

    def test_xlsx(self, tmp_path):
        path = tmp_path / "export.xlsx"
        pd.DataFrame({"Week": ["2024-03-11"], "Sales": ["500"]}).to_excel(path, index=False)

        assert read_table(path).to_dict(orient="records") == [
            {"Week": "2024-03-11", "Sales": "500"}
        ]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("\n\n")

        assert read_table(path).empty

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "export.json"
        path.write_text("{}")

        with pytest.raises(ValueError, match="Unsupported file format"):
            read_table(path)
