"""Tests for pipeline module.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import numpy as np
import pytest

from mlstage_core import CancellationToken
from mlstage_core.data import ColumnType, Dataset
from mlstage_core.errors import (
    AmbiguousStageReference,
    InvalidParameter,
    OperationCancelled,
    StageFitError,
    StageNotFound,
    TypeMismatch,
)
from mlstage_core.pipeline import (
    Pipeline,
    PipelineModel,
    StageAction,
    find_stage,
    formula_pipeline,
    parse_formula,
)
from mlstage_core.stages import (
    LogisticRegression,
    OneHotEncoder,
    StandardScaler,
    StringIndexer,
    VectorAssembler,
)


class TestPipeline:
    """Test Pipeline class."""

    def test_create_pipeline(self):
        """Test pipeline creation."""
        pipeline = Pipeline()
        assert len(pipeline) == 0
        assert pipeline.kind == "pipeline"

    def test_append_is_immutable(self):
        """Test append returns a new pipeline."""
        base = Pipeline([StringIndexer(input_col="sex", output_col="sex_idx")])
        longer = base.append(OneHotEncoder(input_col="sex_idx", output_col="sex_vec"))

        assert len(base) == 1
        assert len(longer) == 2
        assert longer.stages[0] is base.stages[0]

    def test_duplicate_uid(self):
        """Test a stage instance cannot appear twice."""
        lr = LogisticRegression()
        with pytest.raises(InvalidParameter):
            Pipeline([lr, lr])

    def test_non_stage_element(self):
        """Test pipeline elements must be stages."""
        with pytest.raises(TypeMismatch):
            Pipeline(["not a stage"])

    def test_fit(self, survival_data, survival_pipeline):
        """Test fitting produces a model with the same structure."""
        model = survival_pipeline.fit(survival_data)

        assert isinstance(model, PipelineModel)
        assert model.uid == survival_pipeline.uid
        assert [s.uid for s in model.stages] == [s.uid for s in survival_pipeline.stages]
        assert [s.kind for s in model.stages] == [
            "string_indexer_model",
            "one_hot_encoder_model",
            "vector_assembler",
            "standard_scaler_model",
            "logistic_regression_model",
        ]

        actions = [r.action for r in model.fit_summary.stage_results]
        assert actions == [
            StageAction.FITTED,
            StageAction.FITTED,
            StageAction.APPLIED,
            StageAction.FITTED,
            StageAction.FITTED,
        ]

    def test_trailing_transformers_deferred(self, small_data):
        """Test stages after the last estimator are not run during fit."""
        pipeline = Pipeline([
            StringIndexer(input_col="cat", output_col="cat_idx"),
            VectorAssembler(input_cols=["cat_idx", "x"], output_col="f"),
        ])
        model = pipeline.fit(small_data)

        assert model.fit_summary.stage_results[-1].action == StageAction.DEFERRED
        assert model.transform(small_data).column("f").shape == (6, 2)

    def test_fit_summary_is_read_only(self, small_data):
        """Test the fit record is fixed at construction."""
        model = Pipeline([StringIndexer(input_col="cat", output_col="cat_idx")]).fit(small_data)
        assert model.fit_summary.rows == 6
        with pytest.raises(AttributeError):
            model.fit_summary = None
        assert PipelineModel(model.stages).fit_summary is None

    def test_transform_is_pure(self, survival_data, survival_pipeline):
        """Test transform leaves its input untouched."""
        model = survival_pipeline.fit(survival_data)
        before = list(survival_data.columns)
        scored = model.transform(survival_data)

        assert survival_data.columns == before
        assert "prediction" in scored.columns

    def test_stage_fit_error(self, small_data):
        """Test a failing stage is reported with its position."""
        pipeline = Pipeline([
            StringIndexer(input_col="cat", output_col="cat_idx"),
            VectorAssembler(input_cols=["cat_idx"], output_col="features"),
            LogisticRegression(label_col="x"),
        ])
        with pytest.raises(StageFitError) as exc:
            pipeline.fit(small_data)

        assert exc.value.index == 2
        assert exc.value.stage_kind == "logistic_regression"

    def test_schema_checked_before_fitting(self, small_data):
        """Test a missing column fails before any stage is fitted."""
        pipeline = Pipeline([
            StringIndexer(input_col="cat", output_col="cat_idx"),
            VectorAssembler(input_cols=["missing"], output_col="features"),
        ])
        with pytest.raises(StageFitError) as exc:
            pipeline.fit(small_data)
        assert exc.value.index == 1

    def test_cancellation(self, survival_data, survival_pipeline):
        """Test a cancelled token stops the fit."""
        token = CancellationToken()
        token.cancel("stop")

        with pytest.raises(OperationCancelled):
            survival_pipeline.fit(survival_data, cancel_token=token)

    def test_nested_pipeline(self, small_data):
        """Test pipelines nest as stages."""
        inner = Pipeline([StringIndexer(input_col="cat", output_col="cat_idx")])
        outer = Pipeline([inner, VectorAssembler(input_cols=["cat_idx", "x"], output_col="f")])

        model = outer.fit(small_data)
        assert isinstance(model.stages[0], PipelineModel)
        assert model.input_columns() == ["cat", "x"]

    def test_with_params(self, survival_pipeline):
        """Test overrides reach the addressed stage only."""
        lr = survival_pipeline.stages[-1]
        tuned = survival_pipeline.with_params({lr.uid: {"reg_param": 0.3}})

        assert tuned.uid == survival_pipeline.uid
        assert tuned.stages[-1].get("reg_param") == 0.3
        assert lr.get("reg_param") == 0.0


class TestPipelineModel:
    """Test PipelineModel class."""

    def test_input_columns(self, survival_data, survival_pipeline):
        """Test columns callers must supply."""
        model = survival_pipeline.fit(survival_data)
        assert model.input_columns() == ["sex", "age"]
        assert "prediction" in model.output_columns()

    def test_rejects_estimators(self):
        """Test a model holds only transformers."""
        with pytest.raises(TypeMismatch):
            PipelineModel([LogisticRegression()])


class TestFindStage:
    """Test find_stage lookup."""

    @pytest.fixture
    def pipeline(self):
        return Pipeline([
            StringIndexer(input_col="sex", output_col="sex_idx", uid="indexer_sex"),
            StandardScaler(input_col="v", output_col="s", uid="scaler_main"),
            LogisticRegression(uid="lr_main"),
        ])

    def test_exact_uid(self, pipeline):
        """Test exact UID matches."""
        assert find_stage(pipeline, "lr_main").kind == "logistic_regression"

    def test_prefix(self, pipeline):
        """Test UID and kind prefixes."""
        assert find_stage(pipeline, "scaler").uid == "scaler_main"
        assert find_stage(pipeline, "logistic").uid == "lr_main"

    def test_ambiguous(self, pipeline):
        """Test prefixes matching several stages."""
        with pytest.raises(AmbiguousStageReference) as exc:
            find_stage(pipeline, "s")
        assert set(exc.value.matches) == {"indexer_sex", "scaler_main"}

    def test_not_found(self, pipeline):
        """Test unknown references."""
        with pytest.raises(StageNotFound):
            find_stage(pipeline, "random_forest")

    def test_nested(self, pipeline):
        """Test nested stages are searched."""
        outer = Pipeline([pipeline])
        assert find_stage(outer, "lr_main").uid == "lr_main"


class TestFormula:
    """Test formula parsing and pipelines."""

    def test_parse_terms(self):
        """Test explicit predictors."""
        parsed = parse_formula("survived ~ sex + age")
        assert parsed.label == "survived"
        assert parsed.terms == ["sex", "age"]
        assert not parsed.include_all

    def test_parse_dot(self):
        """Test '.' with exclusions."""
        parsed = parse_formula("y ~ . - id")
        assert parsed.include_all
        assert parsed.excluded == ["id"]

    @pytest.mark.parametrize("formula", ["y", "y ~", "a ~ b ~ c", "y ~ 1x", "~ a"])
    def test_invalid(self, formula):
        """Test malformed formulas."""
        with pytest.raises(InvalidParameter):
            parse_formula(formula)

    def test_resolve_dot(self, survival_data):
        """Test '.' expands to every other column."""
        parsed = parse_formula("label ~ . - age")
        assert parsed.resolve(survival_data.schema) == ["sex"]

    def test_formula_pipeline(self, survival_data):
        """Test string terms are indexed and encoded."""
        pipeline = formula_pipeline(
            "label ~ sex + age", survival_data.schema, LogisticRegression(max_iter=2000)
        )
        kinds = [s.kind for s in pipeline.stages]
        assert kinds == [
            "string_indexer",
            "one_hot_encoder",
            "vector_assembler",
            "logistic_regression",
        ]

        model = pipeline.fit(survival_data)
        scored = model.transform(survival_data)
        accuracy = np.mean(scored.column("prediction") == survival_data.column("label"))
        assert accuracy > 0.6

    def test_string_label_indexed(self):
        """Test string responses get their own indexer."""
        ds = Dataset.from_columns(
            {"outcome": ["yes", "no"], "x": [1.0, 2.0]},
            types={"outcome": ColumnType.STRING},
        )
        pipeline = formula_pipeline("outcome ~ x", ds.schema, LogisticRegression())
        assert pipeline.stages[-1].get("label_col") == "outcome_idx"


class TestCancellationToken:
    """Test CancellationToken class."""

    def test_parent_propagates(self):
        """Test child tokens see parent cancellation."""
        parent = CancellationToken()
        child = CancellationToken(parent=parent)
        assert not child.cancelled

        parent.cancel("shutdown")
        assert child.cancelled
        assert child.reason == "shutdown"

    def test_child_does_not_propagate_up(self):
        """Test cancelling a child leaves the parent alone."""
        parent = CancellationToken()
        child = CancellationToken(parent=parent)
        child.cancel()
        assert not parent.cancelled
        with pytest.raises(OperationCancelled):
            child.raise_if_cancelled("test")
