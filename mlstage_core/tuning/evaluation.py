"""MLStage Evaluators - Model Metrics.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import ClassVar, Dict, Tuple

import numpy as np

from mlstage_core.data.dataset import Dataset
from mlstage_core.data.schema import ColumnType
from mlstage_core.errors import DimensionMismatch, InsufficientData, InvalidParameter

logger = logging.getLogger(__name__)


class ModelMetrics:
    """Metric functions over numpy arrays.

    Supports:
    - Binary classification (area under ROC, area under PR)
    - Multiclass classification (accuracy, weighted precision/recall/F1)
    - Regression (MSE, RMSE, MAE, R2)
    """

    @staticmethod
    def _curve_points(y_true: np.ndarray, y_scores: np.ndarray) -> Tuple[np.ndarray, np.ndarray, int, int]:
        """Cumulative (tp, fp) counts at each distinct threshold, descending."""
        order = np.argsort(-y_scores, kind="mergesort")
        scores = y_scores[order]
        positives = (y_true[order] == 1).astype(np.float64)

        tp = np.cumsum(positives)
        fp = np.cumsum(1.0 - positives)

        # keep the last index of each run of tied scores
        last = np.r_[np.flatnonzero(np.diff(scores)), len(scores) - 1]
        total_pos = int(positives.sum())
        return tp[last], fp[last], total_pos, len(scores) - total_pos

    @staticmethod
    def auc_roc(y_true: np.ndarray, y_scores: np.ndarray) -> float:
        """Compute Area Under ROC Curve (ties count half)."""
        tp, fp, total_pos, total_neg = ModelMetrics._curve_points(y_true, y_scores)
        if total_pos == 0 or total_neg == 0:
            raise InsufficientData("Area under ROC needs both classes present")

        tp = np.r_[0.0, tp]
        fp = np.r_[0.0, fp]
        area = np.sum((fp[1:] - fp[:-1]) * (tp[1:] + tp[:-1]) / 2)
        return float(area / (total_pos * total_neg))

    @staticmethod
    def auc_pr(y_true: np.ndarray, y_scores: np.ndarray) -> float:
        """Compute Area Under Precision-Recall Curve (trapezoidal)."""
        tp, fp, total_pos, _ = ModelMetrics._curve_points(y_true, y_scores)
        if total_pos == 0:
            raise InsufficientData("Area under PR needs positive labels")

        precision = tp / (tp + fp)
        recall = tp / total_pos
        precision = np.r_[precision[0], precision]
        recall = np.r_[0.0, recall]
        return float(np.sum((recall[1:] - recall[:-1]) * (precision[1:] + precision[:-1]) / 2))

    @staticmethod
    def accuracy(y_true: np.ndarray, y_pred: np.ndarray) -> float:
        """Compute accuracy score."""
        return float(np.mean(y_true == y_pred))

    @staticmethod
    def weighted_scores(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, float]:
        """Per-class precision, recall and F1, weighted by true class frequency."""
        labels = np.unique(y_true)
        weights = np.array([np.mean(y_true == label) for label in labels])

        precisions, recalls, f1s = [], [], []
        for label in labels:
            tp = np.sum((y_true == label) & (y_pred == label))
            predicted = np.sum(y_pred == label)
            actual = np.sum(y_true == label)

            prec = tp / predicted if predicted > 0 else 0.0
            rec = tp / actual if actual > 0 else 0.0
            precisions.append(prec)
            recalls.append(rec)
            f1s.append(2 * prec * rec / (prec + rec) if prec + rec > 0 else 0.0)

        return {
            "weighted_precision": float(np.dot(weights, precisions)),
            "weighted_recall": float(np.dot(weights, recalls)),
            "f1": float(np.dot(weights, f1s)),
        }

    @staticmethod
    def mse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
        """Compute Mean Squared Error."""
        return float(np.mean((y_true - y_pred) ** 2))

    @staticmethod
    def rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
        """Compute Root Mean Squared Error."""
        return math.sqrt(ModelMetrics.mse(y_true, y_pred))

    @staticmethod
    def mae(y_true: np.ndarray, y_pred: np.ndarray) -> float:
        """Compute Mean Absolute Error."""
        return float(np.mean(np.abs(y_true - y_pred)))

    @staticmethod
    def r2_score(y_true: np.ndarray, y_pred: np.ndarray) -> float:
        """Compute R-squared (coefficient of determination)."""
        ss_tot = np.sum((y_true - y_true.mean()) ** 2)
        ss_res = np.sum((y_true - y_pred) ** 2)
        if ss_tot == 0:
            return 0.0
        return float(1 - ss_res / ss_tot)


class Evaluator(ABC):
    """Scores a transformed dataset with a single metric.

    Subclasses list their metrics in `METRICS`, mapping each name to
    whether larger values are better.
    """

    METRICS: ClassVar[Dict[str, bool]] = {}

    def __init__(self, metric_name: str, label_col: str = "label"):
        if metric_name not in self.METRICS:
            raise InvalidParameter(
                f"Unknown metric {metric_name!r}, expected one of {sorted(self.METRICS)}",
                param="metric_name", value=metric_name,
            )
        self.metric_name = metric_name
        self.label_col = label_col

    @property
    def larger_is_better(self) -> bool:
        return self.METRICS[self.metric_name]

    def evaluate(self, dataset: Dataset) -> float:
        """Compute the metric.

        Raises:
            SchemaError: If a required column is missing
            InsufficientData: If no row has a usable label and score
        """
        if dataset.num_rows == 0:
            raise InsufficientData("Cannot evaluate an empty dataset")

        y_true, y_other = self._extract(dataset)
        keep = np.isfinite(y_true) & np.isfinite(y_other)
        if not keep.any():
            raise InsufficientData("No rows with a usable label and prediction")

        value = self._compute(y_true[keep], y_other[keep])
        logger.debug(f"{type(self).__name__} {self.metric_name}={value:.6f} on {int(keep.sum())} rows")
        return value

    def _labels(self, dataset: Dataset) -> np.ndarray:
        dataset.schema.require(self.label_col, (ColumnType.NUMERIC, ColumnType.CATEGORICAL))
        return np.asarray(dataset.column(self.label_col), dtype=np.float64)

    @abstractmethod
    def _extract(self, dataset: Dataset) -> Tuple[np.ndarray, np.ndarray]:
        """Return (labels, predictions or scores)."""

    @abstractmethod
    def _compute(self, y_true: np.ndarray, y_other: np.ndarray) -> float:
        """Compute the metric on clean arrays."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(metric_name={self.metric_name!r})"


class BinaryClassificationEvaluator(Evaluator):
    """Ranking metrics for binary classifiers.

    The score column may be numeric or a vector; for vectors the last
    element (the positive-class score) is used.
    """

    METRICS = {"area_under_roc": True, "area_under_pr": True}

    def __init__(
        self,
        metric_name: str = "area_under_roc",
        label_col: str = "label",
        raw_prediction_col: str = "raw_prediction",
    ):
        super().__init__(metric_name, label_col)
        self.raw_prediction_col = raw_prediction_col

    def _extract(self, dataset: Dataset) -> Tuple[np.ndarray, np.ndarray]:
        labels = self._labels(dataset)
        field = dataset.schema.require(
            self.raw_prediction_col, (ColumnType.NUMERIC, ColumnType.VECTOR)
        )
        scores = dataset.column(self.raw_prediction_col)
        if field.dtype == ColumnType.VECTOR:
            if scores.dtype == object or scores.shape[1] == 0:
                raise DimensionMismatch(
                    "Score vectors must share a non-zero width", column=self.raw_prediction_col
                )
            scores = scores[:, -1]
        return labels, np.asarray(scores, dtype=np.float64)

    def _compute(self, y_true: np.ndarray, y_other: np.ndarray) -> float:
        if self.metric_name == "area_under_roc":
            return ModelMetrics.auc_roc(y_true, y_other)
        return ModelMetrics.auc_pr(y_true, y_other)


class MulticlassClassificationEvaluator(Evaluator):
    """Label-agreement metrics for classifiers of any arity."""

    METRICS = {
        "accuracy": True,
        "f1": True,
        "weighted_precision": True,
        "weighted_recall": True,
    }

    def __init__(
        self,
        metric_name: str = "f1",
        label_col: str = "label",
        prediction_col: str = "prediction",
    ):
        super().__init__(metric_name, label_col)
        self.prediction_col = prediction_col

    def _extract(self, dataset: Dataset) -> Tuple[np.ndarray, np.ndarray]:
        labels = self._labels(dataset)
        dataset.schema.require(self.prediction_col, (ColumnType.NUMERIC, ColumnType.CATEGORICAL))
        return labels, np.asarray(dataset.column(self.prediction_col), dtype=np.float64)

    def _compute(self, y_true: np.ndarray, y_other: np.ndarray) -> float:
        if self.metric_name == "accuracy":
            return ModelMetrics.accuracy(y_true, y_other)
        return ModelMetrics.weighted_scores(y_true, y_other)[self.metric_name]


class RegressionEvaluator(Evaluator):
    """Error metrics for regressors."""

    METRICS = {"rmse": False, "mse": False, "mae": False, "r2": True}

    def __init__(
        self,
        metric_name: str = "rmse",
        label_col: str = "label",
        prediction_col: str = "prediction",
    ):
        super().__init__(metric_name, label_col)
        self.prediction_col = prediction_col

    def _extract(self, dataset: Dataset) -> Tuple[np.ndarray, np.ndarray]:
        labels = self._labels(dataset)
        dataset.schema.require(self.prediction_col, ColumnType.NUMERIC)
        return labels, np.asarray(dataset.column(self.prediction_col), dtype=np.float64)

    def _compute(self, y_true: np.ndarray, y_other: np.ndarray) -> float:
        if self.metric_name == "r2":
            return ModelMetrics.r2_score(y_true, y_other)
        return getattr(ModelMetrics, self.metric_name)(y_true, y_other)


__all__ = [
    "ModelMetrics",
    "Evaluator",
    "BinaryClassificationEvaluator",
    "MulticlassClassificationEvaluator",
    "RegressionEvaluator",
]
