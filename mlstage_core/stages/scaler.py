"""Feature scaling stages.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import numpy as np

from mlstage_core.data.dataset import Dataset
from mlstage_core.data.schema import ColumnType, Schema
from mlstage_core.errors import DimensionMismatch, InsufficientData, InvalidParameter
from mlstage_core.params.param import ParamType, behavior_param, column_param
from mlstage_core.params.registry import register_stage
from mlstage_core.params.validators import one_of
from mlstage_core.stages.base import Estimator, Model, Stage
from mlstage_core.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

_IO_PARAMS = (
    column_param("input_col", required=True, doc="Vector column to scale"),
    column_param("output_col", required=True, doc="Scaled vector column to add"),
)


def _frozen(values: Any) -> np.ndarray:
    array = np.array(values, dtype=np.float64).reshape(-1)
    array.flags.writeable = False
    return array


def _training_matrix(stage: Stage, dataset: Dataset) -> np.ndarray:
    name = stage.get("input_col")
    X = dataset.column(name)
    if X.dtype == object:
        raise DimensionMismatch(
            "Vector column has rows of different lengths",
            column=name, **stage._error_context(),
        )
    if not np.isfinite(X).all():
        raise InsufficientData(
            "Input column contains null or non-finite values",
            column=name, **stage._error_context(),
        )
    return X


def _check_width(stage: Stage, X: np.ndarray, expected: int) -> None:
    width = None if X.dtype == object else X.shape[1]
    if width != expected:
        raise DimensionMismatch(
            f"Input vectors have {width if width is not None else 'ragged'} elements, "
            f"model expects {expected}",
            column=stage.get("input_col"), **stage._error_context(),
        )


_STANDARD_FLAGS = (
    behavior_param("with_mean", ParamType.BOOL, default=False, doc="Center on the mean"),
    behavior_param("with_std", ParamType.BOOL, default=True, doc="Scale to unit standard deviation"),
)


@register_stage
class StandardScaler(Estimator):
    """Learns per-dimension mean and sample standard deviation.

    Zero-variance dimensions are handled by `zero_variance`: 'error'
    (default) raises InsufficientData, 'identity' leaves the dimension
    unscaled and logs a warning.
    """

    kind = "standard_scaler"
    PARAMS = (
        *_IO_PARAMS,
        *_STANDARD_FLAGS,
        behavior_param(
            "zero_variance",
            ParamType.STRING,
            default="error",
            doc="Zero-variance dimensions: 'error' or 'identity'",
            validators=[one_of(["error", "identity"])],
        ),
    )
    INPUT_PARAMS = ("input_col",)
    OUTPUT_PARAMS = ("output_col",)

    def transform_schema(self, schema: Schema) -> Schema:
        field = schema.require(self.get("input_col"), ColumnType.VECTOR, stage=self)
        return schema.add(self.get("output_col"), ColumnType.VECTOR, dict(field.metadata))

    def _fit(
        self,
        dataset: Dataset,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "StandardScalerModel":
        X = _training_matrix(self, dataset)

        if self.get("with_std") and X.shape[0] < 2:
            raise InsufficientData(
                "At least two rows are needed to estimate a standard deviation",
                **self._error_context(),
            )

        mean = X.mean(axis=0)
        std = X.std(axis=0, ddof=1) if X.shape[0] > 1 else np.zeros(X.shape[1])

        zero = np.flatnonzero(std == 0)
        if self.get("with_std") and len(zero):
            if self.get("zero_variance") == "error":
                raise InsufficientData(
                    f"Zero variance in dimensions {zero.tolist()}",
                    column=self.get("input_col"), **self._error_context(),
                )
            logger.warning(
                f"{self.uid}: dimensions {zero.tolist()} have zero variance; "
                f"leaving them unscaled"
            )

        return self._make_model(StandardScalerModel, mean=mean, std=std)


@register_stage
class StandardScalerModel(Model):
    """Subtracts the learned mean (if enabled) and divides by the learned std."""

    kind = "standard_scaler_model"
    PARAMS = (*_IO_PARAMS, *_STANDARD_FLAGS)
    INPUT_PARAMS = ("input_col",)
    OUTPUT_PARAMS = ("output_col",)

    def __init__(
        self,
        mean: Any,
        std: Any,
        uid: Optional[str] = None,
        **params: Any,
    ):
        super().__init__(uid=uid, **params)
        self._mean = _frozen(mean)
        self._std = _frozen(std)
        if self._mean.shape != self._std.shape:
            raise DimensionMismatch(
                "Mean and std have different sizes", **self._error_context()
            )
        self._divisor = _frozen(np.where(self._std == 0, 1.0, self._std))

    @property
    def mean(self) -> np.ndarray:
        return self._mean

    @property
    def std(self) -> np.ndarray:
        return self._std

    def transform_schema(self, schema: Schema) -> Schema:
        field = schema.require(self.get("input_col"), ColumnType.VECTOR, stage=self)
        return schema.add(self.get("output_col"), ColumnType.VECTOR, dict(field.metadata))

    def _transform(self, dataset: Dataset) -> Dataset:
        X = dataset.column(self.get("input_col"))
        if dataset.num_rows:
            _check_width(self, X, len(self._mean))
        else:
            X = np.empty((0, len(self._mean)))

        scaled = X
        if self.get("with_mean"):
            scaled = scaled - self._mean
        if self.get("with_std"):
            scaled = scaled / self._divisor

        return dataset.with_column(
            self.get("output_col"),
            scaled,
            ColumnType.VECTOR,
            dict(dataset.field(self.get("input_col")).metadata),
        )

    def artifacts(self) -> Dict[str, Any]:
        return {"mean": self._mean, "std": self._std}


_RANGE_PARAMS = (
    behavior_param("min", ParamType.FLOAT, default=0.0, doc="Lower bound of the output range"),
    behavior_param("max", ParamType.FLOAT, default=1.0, doc="Upper bound of the output range"),
)


def _check_range(stage: Stage) -> None:
    if not stage.get("min") < stage.get("max"):
        raise InvalidParameter(
            "Parameter 'min' must be smaller than 'max'",
            param="min", **stage._error_context(),
        )


@register_stage
class MinMaxScaler(Estimator):
    """Learns per-dimension minimum and maximum.

    Constant dimensions map to the middle of the output range.
    """

    kind = "min_max_scaler"
    PARAMS = (*_IO_PARAMS, *_RANGE_PARAMS)
    INPUT_PARAMS = ("input_col",)
    OUTPUT_PARAMS = ("output_col",)

    def _validate_params(self) -> None:
        _check_range(self)

    def transform_schema(self, schema: Schema) -> Schema:
        field = schema.require(self.get("input_col"), ColumnType.VECTOR, stage=self)
        return schema.add(self.get("output_col"), ColumnType.VECTOR, dict(field.metadata))

    def _fit(
        self,
        dataset: Dataset,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "MinMaxScalerModel":
        X = _training_matrix(self, dataset)
        return self._make_model(
            MinMaxScalerModel,
            original_min=X.min(axis=0),
            original_max=X.max(axis=0),
        )


@register_stage
class MinMaxScalerModel(Model):
    """Rescales each dimension into [min, max]."""

    kind = "min_max_scaler_model"
    PARAMS = (*_IO_PARAMS, *_RANGE_PARAMS)
    INPUT_PARAMS = ("input_col",)
    OUTPUT_PARAMS = ("output_col",)

    def __init__(
        self,
        original_min: Any,
        original_max: Any,
        uid: Optional[str] = None,
        **params: Any,
    ):
        super().__init__(uid=uid, **params)
        self._original_min = _frozen(original_min)
        self._original_max = _frozen(original_max)

    def _validate_params(self) -> None:
        _check_range(self)

    def transform_schema(self, schema: Schema) -> Schema:
        field = schema.require(self.get("input_col"), ColumnType.VECTOR, stage=self)
        return schema.add(self.get("output_col"), ColumnType.VECTOR, dict(field.metadata))

    def _transform(self, dataset: Dataset) -> Dataset:
        width = len(self._original_min)
        X = dataset.column(self.get("input_col"))
        if dataset.num_rows:
            _check_width(self, X, width)
        else:
            X = np.empty((0, width))

        span = self._original_max - self._original_min
        constant = span == 0
        ratio = (X - self._original_min) / np.where(constant, 1.0, span)
        ratio = np.where(constant, 0.5, ratio)
        scaled = ratio * (self.get("max") - self.get("min")) + self.get("min")

        return dataset.with_column(self.get("output_col"), scaled, ColumnType.VECTOR)

    def artifacts(self) -> Dict[str, Any]:
        return {"original_min": self._original_min, "original_max": self._original_max}


__all__ = ["StandardScaler", "StandardScalerModel", "MinMaxScaler", "MinMaxScalerModel"]
