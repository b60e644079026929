"""Tests for params module.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import pytest

from mlstage_core.errors import (
    InvalidParameter,
    MissingRequiredParameter,
    TypeMismatch,
    UnknownStageKind,
)
from mlstage_core.params import StageRegistry, default_registry
from mlstage_core.params.param import ParamKind, ParamType, behavior_param, resolve_params
from mlstage_core.params.validators import distinct, gt, in_range, non_empty, one_of
from mlstage_core.stages import LogisticRegression, StandardScaler, VectorAssembler


class TestParam:
    """Test Param checking."""

    def test_int_accepted_for_float(self):
        """Test ints are widened for float params."""
        lr = LogisticRegression(reg_param=1)
        assert lr.get("reg_param") == 1.0
        assert isinstance(lr.get("reg_param"), float)

    def test_bool_rejected_as_number(self):
        """Test booleans are not numbers."""
        with pytest.raises(TypeMismatch):
            LogisticRegression(max_iter=True)

    def test_string_rejected_for_float(self):
        """Test wrong value type."""
        with pytest.raises(TypeMismatch) as exc:
            LogisticRegression(reg_param="0.1")
        assert exc.value.param == "reg_param"
        assert exc.value.stage_kind == "logistic_regression"

    def test_validator_failure(self):
        """Test out-of-domain values."""
        with pytest.raises(InvalidParameter):
            LogisticRegression(max_iter=0)
        with pytest.raises(InvalidParameter):
            LogisticRegression(threshold=1.5)

    def test_unknown_param(self):
        """Test unknown parameter names."""
        with pytest.raises(InvalidParameter) as exc:
            StandardScaler(input_col="a", output_col="b", with_median=True)
        assert exc.value.param == "with_median"

    def test_missing_required(self):
        """Test required parameters."""
        with pytest.raises(MissingRequiredParameter):
            StandardScaler(input_col="a")

    def test_string_list_becomes_tuple(self):
        """Test list params are stored immutably."""
        assembler = VectorAssembler(input_cols=["a", "b"], output_col="v")
        assert assembler.get("input_cols") == ("a", "b")

    def test_defaults_filled(self):
        """Test omitted params take defaults."""
        declared = {"n": behavior_param("n", ParamType.INT, default=3)}
        assert resolve_params("demo", declared, {}) == {"n": 3}


class TestValidators:
    """Test value validators."""

    def test_gt(self):
        """Test strict lower bound."""
        check = gt(0)
        assert check(1) is None
        assert check(0) == "must be > 0"

    def test_in_range(self):
        """Test closed range."""
        check = in_range(0.0, 1.0)
        assert check(0.0) is None
        assert check(1.0) is None
        assert check(1.01) is not None

    def test_one_of(self):
        """Test choices."""
        assert one_of(["a", "b"])("c") is not None

    def test_sequence_validators(self):
        """Test non-empty and distinct."""
        assert non_empty()(()) == "must not be empty"
        assert distinct()(("a", "a")) == "must not contain duplicates"
        assert distinct()(("a", "b")) is None


class TestStageParams:
    """Test stage parameter handling."""

    def test_column_behavior_partition(self):
        """Test column and behavior params are disjoint."""
        lr = LogisticRegression()
        columns = lr.column_params()
        behavior = lr.behavior_params()

        assert "features_col" in columns
        assert "label_col" in columns
        assert "reg_param" in behavior
        assert not set(columns) & set(behavior)
        assert set(columns) | set(behavior) == set(lr.params)

    def test_param_kinds_declared(self):
        """Test declared kinds."""
        declared = LogisticRegression.declared_params()
        assert declared["features_col"].kind == ParamKind.COLUMN
        assert declared["max_iter"].kind == ParamKind.BEHAVIOR

    def test_copy_keeps_uid(self):
        """Test copies keep identity and leave the original alone."""
        lr = LogisticRegression(reg_param=0.1)
        other = lr.copy({"reg_param": 0.5})

        assert other.uid == lr.uid
        assert other.get("reg_param") == 0.5
        assert lr.get("reg_param") == 0.1

    def test_copy_validates(self):
        """Test overrides are checked."""
        with pytest.raises(InvalidParameter):
            LogisticRegression().copy({"elastic_net_param": 2.0})

    def test_uid_format(self):
        """Test generated UIDs."""
        uid = StandardScaler(input_col="a", output_col="b").uid
        prefix, suffix = uid.rsplit("_", 1)
        assert prefix == "standard_scaler"
        assert len(suffix) == 12


class TestStageRegistry:
    """Test StageRegistry class."""

    def test_build(self):
        """Test building from configuration."""
        stage = default_registry.build(
            "standard_scaler", {"input_col": "a", "output_col": "b"}, uid="scaler_1"
        )
        assert isinstance(stage, StandardScaler)
        assert stage.uid == "scaler_1"

    def test_unknown_kind(self):
        """Test unknown kinds."""
        with pytest.raises(UnknownStageKind):
            default_registry.build("random_forest")

    def test_uid_in_config(self):
        """Test the UID is not accepted as a parameter."""
        with pytest.raises(InvalidParameter) as exc:
            default_registry.build(
                "standard_scaler", {"input_col": "a", "output_col": "b", "uid": "scaler_1"}
            )
        assert exc.value.param == "uid"

    def test_builtin_kinds(self):
        """Test the built-in kinds are registered."""
        kinds = default_registry.kinds()
        for kind in (
            "string_indexer",
            "string_indexer_model",
            "one_hot_encoder",
            "vector_assembler",
            "standard_scaler",
            "min_max_scaler",
            "logistic_regression",
            "pipeline",
            "pipeline_model",
        ):
            assert kind in kinds

    def test_describe(self):
        """Test kind descriptions."""
        info = default_registry.describe("logistic_regression")
        assert info["capabilities"] == ["estimator"]
        names = [p["name"] for p in info["params"]]
        assert "reg_param" in names

        info = default_registry.describe("vector_assembler")
        assert info["capabilities"] == ["transformer"]

    def test_duplicate_kind(self):
        """Test conflicting registrations."""
        registry = StageRegistry()
        registry.register(StandardScaler)
        registry.register(StandardScaler)

        class Impostor(StandardScaler):
            pass

        with pytest.raises(ValueError):
            registry.register(Impostor)
        assert "standard_scaler" in registry
