"""
Tests for odata_explorer.odata.types.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from odata_explorer.odata.types import (
    ColumnType,
    ColumnTypeMap,
    classify,
    extract_columns,
    infer_column_types,
)


class TestClassify:
    """Tests for single value classification."""

    @pytest.mark.parametrize("value,expected", [
        (True, ColumnType.BOOLEAN),
        (False, ColumnType.BOOLEAN),
        (0, ColumnType.NUMBER),
        (1.5, ColumnType.NUMBER),
        (Decimal("2.50"), ColumnType.NUMBER),
        ("2024-01-31T10:15:00", ColumnType.DATE),
        ("2024-01-31T10:15", ColumnType.DATE),
        (datetime(2024, 1, 31), ColumnType.DATE),
        (date(2024, 1, 31), ColumnType.DATE),
        ("2024-01-31", ColumnType.STRING),
        ("/Date(0)/", ColumnType.STRING),
        ("hello", ColumnType.STRING),
        ({"City": "Berlin"}, ColumnType.OBJECT),
        ([1, 2], ColumnType.OBJECT),
    ])
    def test_classify(self, value, expected):
        assert classify(value) is expected

    def test_null_has_no_type(self):
        assert classify(None) is None


class TestInference:
    """Tests for column extraction and inference."""

    def test_extract_columns_keeps_first_seen_order(self):
        rows = [{"B": 1, "A": 2}, {"A": 3, "C": 4}, "not a row"]
        assert extract_columns(rows) == ["B", "A", "C"]

    def test_first_non_null_value_wins(self):
        rows = [
            {"ID": 1, "Note": None, "Created": None},
            {"ID": 2, "Note": "x", "Created": "2024-01-31T10:15:00"},
            {"ID": 3, "Note": 5, "Created": "later"},
        ]
        assert infer_column_types(rows) == {
            "ID": ColumnType.NUMBER,
            "Note": ColumnType.STRING,
            "Created": ColumnType.DATE,
        }

    def test_all_null_column_is_left_out(self):
        assert infer_column_types([{"A": None}, {"A": None}]) == {}

    def test_known_columns(self):
        rows = [{"A": 1}, {"A": 2, "B": True}]
        assert infer_column_types(rows, ["B", "Missing"]) == {
            "B": ColumnType.BOOLEAN,
            "A": ColumnType.NUMBER,
        }

    def test_sample_response_rows(self, sample_odata_response):
        rows = sample_odata_response["d"]["results"]
        assert infer_column_types(rows) == {
            "ID": ColumnType.NUMBER,
            "Name": ColumnType.STRING,
            "Active": ColumnType.BOOLEAN,
            "CreatedAt": ColumnType.DATE,
        }


class TestColumnTypeMap:
    """Tests for the per-resource type map."""

    def test_observe_only_adds(self):
        types = ColumnTypeMap()
        types.observe([{"Price": 10, "Name": None}])
        assert dict(types) == {"Price": ColumnType.NUMBER}

        # later pages never retype a known column
        types.observe([{"Price": "ten", "Name": "x"}])
        assert types["Price"] is ColumnType.NUMBER
        assert types["Name"] is ColumnType.STRING
        assert len(types) == 2

    def test_merge_keeps_existing(self):
        types = ColumnTypeMap()
        types.merge({"A": ColumnType.STRING})
        types.merge({"A": ColumnType.NUMBER, "B": ColumnType.DATE})
        assert dict(types) == {"A": ColumnType.STRING, "B": ColumnType.DATE}

    def test_clear(self):
        types = ColumnTypeMap()
        types.observe([{"A": 1}])
        types.clear()
        assert len(types) == 0
        assert "A" not in types

    def test_mapping_interface(self):
        types = ColumnTypeMap()
        types.observe([{"A": 1}])
        assert types.get("A") is ColumnType.NUMBER
        assert types.get("Z") is None
        assert list(types) == ["A"]
