"""Tests for data module.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import math

import numpy as np
import pytest

from mlstage_core.data import ColumnType, Dataset, RecordValidator, Schema
from mlstage_core.data.dataset import vector_width
from mlstage_core.data.schema import Field
from mlstage_core.errors import DimensionMismatch, SchemaError


class TestDataset:
    """Test Dataset class."""

    def test_from_records_infers_types(self, small_data):
        """Test type inference."""
        assert small_data.num_rows == 6
        assert small_data.columns == ["cat", "x", "v"]
        assert small_data.field("cat").dtype == ColumnType.STRING
        assert small_data.field("x").dtype == ColumnType.NUMERIC
        assert small_data.field("v").dtype == ColumnType.VECTOR
        assert small_data.field("v").metadata["size"] == 2

    def test_missing_keys_are_null(self):
        """Test absent record keys."""
        ds = Dataset.from_records([{"a": 1.0, "b": "x"}, {"a": 2.0}])
        assert ds.to_records()[1] == {"a": 2.0, "b": None}

    def test_numeric_nulls_round_trip(self):
        """Test NaN is exported as None."""
        ds = Dataset.from_columns({"a": [1.0, None]})
        assert math.isnan(ds.column("a")[1])
        assert ds.to_columns() == {"a": [1.0, None]}

    def test_ragged_vectors(self):
        """Test vectors of differing length."""
        ds = Dataset.from_records([{"v": [1.0, 2.0]}, {"v": [3.0]}])
        assert ds.field("v").dtype == ColumnType.VECTOR
        assert vector_width(ds.column("v")) is None
        assert "size" not in ds.field("v").metadata

    def test_columns_read_only(self, small_data):
        """Test immutability of column arrays."""
        with pytest.raises(ValueError):
            small_data.column("x")[0] = 100.0

    def test_with_column_returns_new(self, small_data):
        """Test with_column leaves the receiver alone."""
        doubled = small_data.with_column("x2", small_data.column("x") * 2, ColumnType.NUMERIC)
        assert "x2" in doubled.schema
        assert "x2" not in small_data.schema
        assert doubled.column("x2")[5] == 12.0

    def test_with_column_existing(self, small_data):
        """Test duplicate output columns."""
        with pytest.raises(SchemaError):
            small_data.with_column("x", np.zeros(6), ColumnType.NUMERIC)

        replaced = small_data.with_column("x", np.zeros(6), ColumnType.NUMERIC, replace=True)
        assert replaced.columns == small_data.columns
        assert replaced.column("x").sum() == 0.0

    def test_with_column_wrong_length(self, small_data):
        """Test row-count mismatch."""
        with pytest.raises(DimensionMismatch):
            small_data.with_column("y", [1.0, 2.0], ColumnType.NUMERIC)

    def test_take_and_filter(self, small_data):
        """Test row selection."""
        taken = small_data.take([5, 0])
        assert taken.column("x").tolist() == [6.0, 1.0]

        filtered = small_data.filter(small_data.column("x") > 4)
        assert filtered.num_rows == 2
        assert filtered.column("cat").tolist() == ["c", "c"]

    def test_filter_mask_length(self, small_data):
        """Test mask validation."""
        with pytest.raises(DimensionMismatch):
            small_data.filter([True, False])

    def test_select_and_drop(self, small_data):
        """Test column projection."""
        assert small_data.select(["v", "cat"]).columns == ["v", "cat"]
        assert small_data.drop("v").columns == ["cat", "x"]

    def test_string_values_not_numeric(self):
        """Test explicit numeric types reject strings."""
        with pytest.raises(SchemaError):
            Dataset.from_columns({"a": ["1", "x"]}, types={"a": ColumnType.NUMERIC})

    def test_head(self, small_data):
        """Test leading rows as records."""
        assert small_data.head(1) == [{"cat": "a", "x": 1.0, "v": [1.0, 2.0]}]
        assert len(small_data.head(10)) == 6

    def test_unknown_column(self, small_data):
        """Test missing column lookup."""
        with pytest.raises(SchemaError) as exc:
            small_data.column("nope")
        assert exc.value.column == "nope"


class TestSchema:
    """Test Schema class."""

    def test_require(self):
        """Test column requirements."""
        schema = Schema([Field("a", ColumnType.NUMERIC), Field("s", ColumnType.STRING)])
        assert schema.require("a", ColumnType.NUMERIC).name == "a"

        with pytest.raises(SchemaError):
            schema.require("missing", ColumnType.NUMERIC)
        with pytest.raises(SchemaError):
            schema.require("s", ColumnType.NUMERIC)

    def test_duplicate_names(self):
        """Test duplicate fields."""
        with pytest.raises(SchemaError):
            Schema([Field("a", ColumnType.NUMERIC), Field("a", ColumnType.STRING)])

    def test_equality_ignores_metadata(self):
        """Test schema comparison."""
        left = Schema([Field("v", ColumnType.VECTOR, {"size": 2})])
        right = Schema([Field("v", ColumnType.VECTOR)])
        assert left == right

    def test_to_list(self, small_data):
        """Test plain field descriptions."""
        fields = small_data.schema.to_list()
        assert [f["name"] for f in fields] == ["cat", "x", "v"]
        assert fields[2] == {"name": "v", "type": "vector", "metadata": {"size": 2}}


class TestRecordValidator:
    """Test RecordValidator class."""

    def test_missing_field(self):
        """Test missing fields are reported."""
        validator = RecordValidator({"sex": ColumnType.STRING, "age": None})
        result = validator.validate([{"sex": "f"}])

        assert not result.valid
        with pytest.raises(SchemaError) as exc:
            result.raise_for_errors()
        assert exc.value.column == "age"

    def test_type_check(self):
        """Test coarse type checks."""
        validator = RecordValidator({"age": ColumnType.NUMERIC})
        result = validator.validate([{"age": 3.0}, {"age": "old"}])
        assert result.errors[0].row_indices == [1]

    def test_untyped_fields_accept_anything(self):
        """Test fields without a declared type."""
        validator = RecordValidator({"age": None})
        assert validator.validate([{"age": "old"}]).valid

    def test_column_lengths(self):
        """Test field arrays of unequal length."""
        validator = RecordValidator({"a": None})
        result = validator.validate_columns({"a": [1, 2], "b": [1]})
        assert not result.valid
