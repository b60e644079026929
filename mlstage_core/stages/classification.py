"""Linear classification stages.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from mlstage_core.data.dataset import Dataset
from mlstage_core.data.schema import NUMERIC_LIKE, ColumnType, Schema
from mlstage_core.errors import DimensionMismatch, InsufficientData, SchemaError
from mlstage_core.params.param import ParamType, behavior_param, column_param
from mlstage_core.params.registry import register_stage
from mlstage_core.params.validators import gt, gt_eq, in_range
from mlstage_core.stages.base import Estimator, Model
from mlstage_core.stages.solvers import SOLVERS, LogisticProblem, get_solver, sigmoid
from mlstage_core.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)


def _registered_solver(value: Any) -> Optional[str]:
    if value is not None and value not in SOLVERS:
        return f"must be one of {sorted(SOLVERS)}"
    return None


_OUTPUT_PARAMS = (
    column_param("features_col", default="features", doc="Feature vector column"),
    column_param("prediction_col", default="prediction", doc="Predicted label column to add"),
    column_param("probability_col", default="probability", doc="Class probability vector column to add"),
    column_param("raw_prediction_col", default="raw_prediction", doc="Margin vector column to add"),
    behavior_param(
        "threshold",
        ParamType.FLOAT,
        default=0.5,
        doc="Probability above which the positive class is predicted",
        validators=[in_range(0.0, 1.0)],
    ),
)


@register_stage
class LogisticRegression(Estimator):
    """Binary logistic regression with elastic-net regularization.

    Labels must be 0/1. Coefficients are fitted by a pluggable solver
    (see mlstage_core.stages.solvers).

    Example:
        lr = LogisticRegression(reg_param=0.01, elastic_net_param=0.5)
        model = lr.fit(ds)
    """

    kind = "logistic_regression"
    PARAMS = (
        *_OUTPUT_PARAMS,
        column_param("label_col", default="label", doc="Label column (0/1)"),
        behavior_param("max_iter", ParamType.INT, default=100, validators=[gt(0)]),
        behavior_param(
            "reg_param", ParamType.FLOAT, default=0.0,
            doc="Regularization strength (lambda)", validators=[gt_eq(0.0)],
        ),
        behavior_param(
            "elastic_net_param", ParamType.FLOAT, default=0.0,
            doc="L1/L2 mix (alpha): 0 is ridge, 1 is lasso", validators=[in_range(0.0, 1.0)],
        ),
        behavior_param("tol", ParamType.FLOAT, default=1e-6, validators=[gt(0.0)]),
        behavior_param("fit_intercept", ParamType.BOOL, default=True),
        behavior_param(
            "solver", ParamType.STRING, default="proximal_gradient",
            doc="Registered solver name", validators=[_registered_solver],
        ),
    )
    INPUT_PARAMS = ("features_col", "label_col")
    OUTPUT_PARAMS = ("prediction_col", "probability_col", "raw_prediction_col")

    def transform_schema(self, schema: Schema) -> Schema:
        schema.require(self.get("features_col"), ColumnType.VECTOR, stage=self)
        schema.require(self.get("label_col"), NUMERIC_LIKE, stage=self)
        return _add_outputs(self, schema)

    def _fit(
        self,
        dataset: Dataset,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "LogisticRegressionModel":
        X = dataset.column(self.get("features_col"))
        y = dataset.column(self.get("label_col"))

        if X.dtype == object:
            raise DimensionMismatch(
                "Feature vectors have different lengths",
                column=self.get("features_col"), **self._error_context(),
            )
        if not np.isfinite(X).all():
            raise InsufficientData(
                "Features contain null or non-finite values",
                column=self.get("features_col"), **self._error_context(),
            )
        if not np.isin(y, (0.0, 1.0)).all():
            raise SchemaError(
                "Label column must contain only 0 and 1",
                column=self.get("label_col"), **self._error_context(),
            )
        if len(np.unique(y)) < 2:
            raise InsufficientData(
                "Label column contains a single class",
                column=self.get("label_col"), **self._error_context(),
            )

        problem = LogisticProblem(
            X=X,
            y=y,
            reg_param=self.get("reg_param"),
            elastic_net_param=self.get("elastic_net_param"),
            fit_intercept=self.get("fit_intercept"),
            max_iter=self.get("max_iter"),
            tol=self.get("tol"),
        )
        result = get_solver(self.get("solver")).minimize(problem, cancel_token)

        logger.info(
            f"{self.uid}: fitted {X.shape[1]} coefficients in {result.iterations} "
            f"iterations (converged={result.converged})"
        )

        model = self._make_model(
            LogisticRegressionModel,
            coefficients=result.coefficients,
            intercept=result.intercept,
            objective_history=result.objective_history,
        )
        return model


@register_stage
class LogisticRegressionModel(Model):
    """Emits prediction, probability and raw margin columns."""

    kind = "logistic_regression_model"
    PARAMS = _OUTPUT_PARAMS
    INPUT_PARAMS = ("features_col",)
    OUTPUT_PARAMS = ("prediction_col", "probability_col", "raw_prediction_col")

    def __init__(
        self,
        coefficients: Any,
        intercept: float,
        objective_history: Sequence[float] = (),
        uid: Optional[str] = None,
        **params: Any,
    ):
        super().__init__(uid=uid, **params)
        coefficients = np.array(coefficients, dtype=np.float64).reshape(-1)
        coefficients.flags.writeable = False
        self._coefficients = coefficients
        self._intercept = float(intercept)
        history = np.asarray(objective_history, dtype=np.float64).reshape(-1)
        self._objective_history = tuple(history.tolist())

    @property
    def coefficients(self) -> np.ndarray:
        return self._coefficients

    @property
    def intercept(self) -> float:
        return self._intercept

    @property
    def objective_history(self) -> List[float]:
        """Objective value per solver iteration, starting before the first step."""
        return list(self._objective_history)

    @property
    def num_features(self) -> int:
        return len(self._coefficients)

    def transform_schema(self, schema: Schema) -> Schema:
        schema.require(self.get("features_col"), ColumnType.VECTOR, stage=self)
        return _add_outputs(self, schema)

    def predict_probability(self, X: np.ndarray) -> np.ndarray:
        """Probability of the positive class for each row of X."""
        return sigmoid(X @ self._coefficients + self._intercept)

    def _transform(self, dataset: Dataset) -> Dataset:
        X = dataset.column(self.get("features_col"))
        width = None if X.dtype == object else X.shape[1]

        if dataset.num_rows == 0:
            X = np.empty((0, self.num_features))
        elif width != self.num_features:
            raise DimensionMismatch(
                f"Feature vectors have {width if width is not None else 'ragged'} "
                f"elements, model expects {self.num_features}",
                column=self.get("features_col"), **self._error_context(),
            )

        margin = X @ self._coefficients + self._intercept
        p = sigmoid(margin)
        prediction = (p > self.get("threshold")).astype(np.float64)

        result = dataset
        if self.get("raw_prediction_col"):
            result = result.with_column(
                self.get("raw_prediction_col"),
                np.column_stack([-margin, margin]),
                ColumnType.VECTOR,
            )
        if self.get("probability_col"):
            result = result.with_column(
                self.get("probability_col"),
                np.column_stack([1.0 - p, p]),
                ColumnType.VECTOR,
            )
        return result.with_column(self.get("prediction_col"), prediction, ColumnType.NUMERIC)

    def artifacts(self) -> Dict[str, Any]:
        return {
            "coefficients": self._coefficients,
            "intercept": self._intercept,
            "objective_history": np.array(self._objective_history),
        }


def _add_outputs(stage: Any, schema: Schema) -> Schema:
    if stage.get("raw_prediction_col"):
        schema = schema.add(stage.get("raw_prediction_col"), ColumnType.VECTOR, {"size": 2})
    if stage.get("probability_col"):
        schema = schema.add(stage.get("probability_col"), ColumnType.VECTOR, {"size": 2})
    return schema.add(stage.get("prediction_col"), ColumnType.NUMERIC)


__all__ = ["LogisticRegression", "LogisticRegressionModel"]
