"""Tests for tuning module.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import numpy as np
import pytest

from mlstage_core import CancellationToken
from mlstage_core.data import ColumnType, Dataset
from mlstage_core.errors import (
    InsufficientData,
    InvalidParameter,
    OperationCancelled,
    SchemaError,
    TuningTrialError,
    TypeMismatch,
)
from mlstage_core.params import ParamType, behavior_param
from mlstage_core.pipeline import PipelineModel
from mlstage_core.stages import Estimator, MinMaxScaler, Model
from mlstage_core.tuning import (
    BinaryClassificationEvaluator,
    CrossValidator,
    ModelMetrics,
    MulticlassClassificationEvaluator,
    ParamGrid,
    ParamGridBuilder,
    RegressionEvaluator,
    kfold_assignment,
    kfold_splits,
)

from conftest import make_survival_data, make_survival_pipeline


class CopyLabelModel(Model):
    """Predicts the label itself."""

    kind = "copy_label_model"

    def transform_schema(self, schema):
        schema.require("label", ColumnType.NUMERIC, stage=self)
        return schema.add("prediction", ColumnType.NUMERIC)

    def _transform(self, dataset):
        return dataset.with_column("prediction", dataset.column("label"), ColumnType.NUMERIC)


class FailingEstimator(Estimator):
    """Fails when `level` equals `fail_at`."""

    kind = "failing_estimator"
    PARAMS = (
        behavior_param("level", ParamType.INT, default=0),
        behavior_param("fail_at", ParamType.INT, default=-1),
    )

    def transform_schema(self, schema):
        schema.require("label", ColumnType.NUMERIC, stage=self)
        return schema.add("prediction", ColumnType.NUMERIC)

    def _fit(self, dataset, cancel_token=None):
        if self.get("level") == self.get("fail_at"):
            raise RuntimeError("level rejected")
        return CopyLabelModel(uid=self.uid)


@pytest.fixture
def labels():
    return Dataset.from_columns({"label": [0.0, 1.0] * 10})


class TestParamGrid:
    """Test ParamGrid class."""

    def test_size(self):
        """Test size is the product of candidate counts."""
        grid = (
            ParamGridBuilder()
            .add_grid("logistic", "reg_param", [0.0, 0.1])
            .add_grid("logistic", "elastic_net_param", [0.0, 0.5, 1.0])
            .build()
        )
        assert grid.size == 6
        assert len(grid) == 6

    def test_empty_grid(self):
        """Test an empty grid has one combination."""
        assert ParamGrid().size == 1
        combos = ParamGrid().resolve(make_survival_pipeline()).combinations()
        assert len(combos) == 1
        assert combos[0].overrides == {}

    def test_expansion_order(self):
        """Test the last entry varies fastest."""
        pipeline = make_survival_pipeline()
        lr = pipeline.stages[-1]
        grid = ParamGrid.from_dict({
            "logistic": {"reg_param": [0.0, 0.1], "elastic_net_param": [0.0, 1.0]},
        })
        combos = grid.resolve(pipeline).combinations()

        assert [c.index for c in combos] == [0, 1, 2, 3]
        assert [c.values[f"{lr.uid}.elastic_net_param"] for c in combos] == [0.0, 1.0, 0.0, 1.0]
        assert [c.overrides[lr.uid]["reg_param"] for c in combos] == [0.0, 0.0, 0.1, 0.1]

    def test_duplicate_values_collapse(self):
        """Test repeated candidates are dropped."""
        grid = ParamGridBuilder().add_grid("logistic", "reg_param", [0.1, 0.1, 0.2]).build()
        assert grid.size == 2

    def test_equal_after_coercion_collapse(self):
        """Test an int and a float candidate of the same value are one combination."""
        pipeline = make_survival_pipeline()
        lr = pipeline.stages[-1]
        grid = ParamGrid.from_dict({"logistic": {"reg_param": [0, 0.0, 1, 1.0]}})
        combos = grid.resolve(pipeline).combinations()

        assert [c.overrides[lr.uid]["reg_param"] for c in combos] == [0.0, 1.0]

    def test_empty_candidates(self):
        """Test a parameter needs candidates."""
        with pytest.raises(InvalidParameter):
            ParamGridBuilder().add_grid("logistic", "reg_param", []).build()

    def test_duplicate_entry(self):
        """Test a parameter listed twice."""
        with pytest.raises(InvalidParameter):
            (
                ParamGridBuilder()
                .add_grid("logistic", "reg_param", [0.1])
                .add_grid("logistic", "reg_param", [0.2])
                .build()
            )

    def test_column_param_rejected(self):
        """Test column parameters are not tunable."""
        grid = ParamGridBuilder().add_grid("logistic", "features_col", ["other"]).build()
        with pytest.raises(InvalidParameter) as exc:
            grid.resolve(make_survival_pipeline())
        assert exc.value.param == "features_col"

    def test_unknown_param(self):
        """Test unknown parameter names."""
        grid = ParamGridBuilder().add_grid("logistic", "learning_rate", [0.1]).build()
        with pytest.raises(InvalidParameter):
            grid.resolve(make_survival_pipeline())

    def test_candidate_type_checked(self):
        """Test candidates are checked against the parameter type."""
        grid = ParamGridBuilder().add_grid("logistic", "max_iter", ["many"]).build()
        with pytest.raises(TypeMismatch):
            grid.resolve(make_survival_pipeline())


class TestFolds:
    """Test k-fold assignment."""

    def test_reproducible(self):
        """Test the same seed gives the same folds."""
        first = kfold_assignment(50, 5, seed=11)
        second = kfold_assignment(50, 5, seed=11)
        assert first.tolist() == second.tolist()
        assert kfold_assignment(50, 5, seed=12).tolist() != first.tolist()

    def test_balanced(self):
        """Test fold sizes differ by at most one."""
        counts = np.bincount(kfold_assignment(10, 3, seed=0))
        assert sorted(counts.tolist()) == [3, 3, 4]

    def test_splits_partition_rows(self):
        """Test validation folds are disjoint and cover every row."""
        ds = Dataset.from_columns({"id": np.arange(20, dtype=float)})
        splits = kfold_splits(ds, 4, seed=3)

        seen = []
        for train, validation in splits:
            assert train.num_rows + validation.num_rows == 20
            assert not set(train.column("id")) & set(validation.column("id"))
            seen.extend(validation.column("id").tolist())
        assert sorted(seen) == list(range(20))

    def test_too_few_rows(self):
        """Test more folds than rows."""
        with pytest.raises(InsufficientData):
            kfold_assignment(2, 3, seed=0)

    def test_one_fold(self):
        """Test folds must be at least two."""
        with pytest.raises(InvalidParameter):
            kfold_assignment(10, 1, seed=0)


class TestModelMetrics:
    """Test ModelMetrics class."""

    def test_auc_roc(self):
        """Test area under ROC on a hand-computed case."""
        y = np.array([0.0, 0.0, 1.0, 1.0])
        scores = np.array([0.1, 0.4, 0.35, 0.8])
        assert ModelMetrics.auc_roc(y, scores) == pytest.approx(0.75)

    def test_auc_roc_ties(self):
        """Test tied scores count half."""
        assert ModelMetrics.auc_roc(np.array([0.0, 1.0]), np.array([0.5, 0.5])) == pytest.approx(0.5)

    def test_auc_roc_single_class(self):
        """Test a single class has no ROC curve."""
        with pytest.raises(InsufficientData):
            ModelMetrics.auc_roc(np.array([1.0, 1.0]), np.array([0.2, 0.3]))

    def test_auc_pr_perfect(self):
        """Test a perfect ranking."""
        y = np.array([0.0, 0.0, 1.0, 1.0])
        assert ModelMetrics.auc_pr(y, np.array([0.1, 0.2, 0.8, 0.9])) == pytest.approx(1.0)

    def test_accuracy(self):
        """Test accuracy computation."""
        acc = ModelMetrics.accuracy(np.array([0, 1, 1, 0, 1]), np.array([0, 1, 0, 0, 1]))
        assert acc == 0.8

    def test_weighted_scores(self):
        """Test weighted precision, recall and F1."""
        scores = ModelMetrics.weighted_scores(
            np.array([0, 1, 1, 0, 1, 1]), np.array([1, 1, 1, 0, 0, 1])
        )
        # class 0: p=1/2 r=1/2; class 1: p=3/4 r=3/4
        assert scores["weighted_precision"] == pytest.approx(2 / 6 * 0.5 + 4 / 6 * 0.75)
        assert scores["f1"] == pytest.approx(2 / 6 * 0.5 + 4 / 6 * 0.75)

    def test_regression_metrics(self):
        """Test MSE, RMSE, MAE and R2."""
        y_true = np.array([1.0, 2.0, 3.0, 4.0])
        y_pred = np.array([1.1, 2.1, 2.9, 4.2])

        assert ModelMetrics.mse(y_true, y_pred) == pytest.approx(0.0175)
        assert ModelMetrics.rmse(y_true, y_pred) == pytest.approx(0.0175 ** 0.5)
        assert ModelMetrics.mae(y_true, y_pred) == pytest.approx(0.125)
        assert ModelMetrics.r2_score(y_true, y_pred) == pytest.approx(1 - 0.07 / 5.0)


class TestEvaluators:
    """Test Evaluator classes."""

    def test_unknown_metric(self):
        """Test metric names are validated."""
        with pytest.raises(InvalidParameter):
            MulticlassClassificationEvaluator("area_under_roc")

    def test_direction(self):
        """Test larger-is-better flags."""
        assert BinaryClassificationEvaluator().larger_is_better
        assert not RegressionEvaluator("rmse").larger_is_better
        assert RegressionEvaluator("r2").larger_is_better

    def test_binary_uses_last_element(self):
        """Test vector scores use the positive-class element."""
        ds = Dataset.from_columns({
            "label": [0.0, 1.0, 1.0],
            "raw_prediction": [[0.9, -0.9], [-0.5, 0.5], [-0.1, 0.1]],
        })
        assert BinaryClassificationEvaluator().evaluate(ds) == pytest.approx(1.0)

    def test_skips_null_rows(self):
        """Test rows with null labels are ignored."""
        ds = Dataset.from_columns({"label": [1.0, None, 0.0], "prediction": [1.0, 0.0, 1.0]})
        assert MulticlassClassificationEvaluator("accuracy").evaluate(ds) == pytest.approx(0.5)

    def test_missing_column(self):
        """Test evaluation without predictions."""
        ds = Dataset.from_columns({"label": [1.0, 0.0]})
        with pytest.raises(SchemaError):
            RegressionEvaluator().evaluate(ds)

    def test_empty(self):
        """Test evaluation of no rows."""
        ds = Dataset.from_columns({"label": np.empty(0), "prediction": np.empty(0)})
        with pytest.raises(InsufficientData):
            RegressionEvaluator().evaluate(ds)


class TestCrossValidator:
    """Test CrossValidator class."""

    def test_report_covers_grid(self):
        """Test one report row per combination."""
        data = make_survival_data(n=300, seed=1)
        pipeline = make_survival_pipeline()
        grid = (
            ParamGridBuilder()
            .add_grid("logistic", "reg_param", [0.0, 0.01])
            .add_grid("logistic", "elastic_net_param", [0.0, 1.0])
            .build()
        )
        cv = CrossValidator(
            pipeline, grid, BinaryClassificationEvaluator(), num_folds=3, seed=5, parallelism=2
        )
        result = cv.fit(data)

        assert len(result.report) == 4
        assert [row.index for row in result.report] == [0, 1, 2, 3]
        for row in result.report:
            assert len(row.fold_scores) == 3
            assert 0.5 < row.score <= 1.0

        best = result.report.best()
        assert result.best_index == best.index
        assert result.report.sorted()[0].index == best.index
        assert isinstance(result.best_model, PipelineModel)
        assert result.best_model.uid == pipeline.uid

        lr_uid = pipeline.stages[-1].uid
        assert set(result.best_params) == {lr_uid}
        assert len(result.report.filter(reg_param=0.01)) == 2

    def test_deterministic(self):
        """Test identical inputs give identical scores."""
        data = make_survival_data(n=200, seed=2)
        grid = ParamGridBuilder().add_grid("logistic", "reg_param", [0.0, 0.5]).build()

        scores = []
        for parallelism in (1, 3):
            cv = CrossValidator(
                make_survival_pipeline(), grid, BinaryClassificationEvaluator(),
                num_folds=3, seed=9, parallelism=parallelism,
            )
            scores.append([row.fold_scores for row in cv.fit(data).report])
        assert scores[0] == scores[1]

    def test_ties_pick_lowest_index(self, labels):
        """Test equal scores keep the first combination."""
        estimator = FailingEstimator()
        grid = ParamGridBuilder().add_grid(estimator, "level", [2, 1, 0]).build()
        cv = CrossValidator(estimator, grid, MulticlassClassificationEvaluator("accuracy"))

        result = cv.fit(labels)
        assert [row.score for row in result.report] == [1.0, 1.0, 1.0]
        assert result.best_index == 0
        assert result.best_model.uid == estimator.uid

    def test_trial_failure(self, labels):
        """Test a failing trial aborts the run with its position."""
        estimator = FailingEstimator(fail_at=1)
        grid = ParamGridBuilder().add_grid(estimator, "level", [0, 1, 2]).build()
        cv = CrossValidator(
            estimator, grid, MulticlassClassificationEvaluator("accuracy"), parallelism=2
        )

        with pytest.raises(TuningTrialError) as exc:
            cv.fit(labels)
        assert exc.value.combination_index == 1
        assert exc.value.fold in (0, 1, 2)
        assert isinstance(exc.value.__cause__, RuntimeError)

    def test_invalid_combination(self):
        """Test combinations failing cross-parameter checks."""
        data = Dataset.from_columns({
            "v": [[float(i)] for i in range(6)],
            "label": [float(i) for i in range(6)],
        })
        scaler = MinMaxScaler(input_col="v", output_col="prediction_vec")
        grid = ParamGridBuilder().add_grid(scaler, "min", [0.0, 2.0]).build()
        cv = CrossValidator(scaler, grid, RegressionEvaluator())

        with pytest.raises(TuningTrialError) as exc:
            cv.fit(data)
        assert exc.value.combination_index == 1
        assert exc.value.fold is None

    def test_cancelled(self, labels):
        """Test a cancelled token stops tuning."""
        token = CancellationToken()
        token.cancel()
        cv = CrossValidator(FailingEstimator(), None, MulticlassClassificationEvaluator("accuracy"))

        with pytest.raises(OperationCancelled):
            cv.fit(labels, cancel_token=token)

    def test_requires_estimator(self, labels):
        """Test fitted models cannot be tuned."""
        with pytest.raises(TypeMismatch):
            CrossValidator(CopyLabelModel(), None, MulticlassClassificationEvaluator())

    def test_fold_count_checked(self):
        """Test fold count validation."""
        with pytest.raises(InvalidParameter):
            CrossValidator(FailingEstimator(), None, MulticlassClassificationEvaluator(), num_folds=1)
