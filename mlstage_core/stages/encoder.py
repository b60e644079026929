"""One-hot encoding stages.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import numpy as np

from mlstage_core.data.dataset import Dataset
from mlstage_core.data.schema import NUMERIC_LIKE, ColumnType, Schema
from mlstage_core.errors import InsufficientData, SchemaError, UnseenCategory
from mlstage_core.params.param import ParamType, behavior_param, column_param
from mlstage_core.params.registry import register_stage
from mlstage_core.params.validators import gt, one_of
from mlstage_core.stages.base import Estimator, Model
from mlstage_core.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

_ENCODER_PARAMS = (
    column_param("input_col", required=True, doc="Categorical index column"),
    column_param("output_col", required=True, doc="Indicator vector column to add"),
    behavior_param(
        "drop_last",
        ParamType.BOOL,
        default=True,
        doc="Drop the last category so the vector has count - 1 entries",
    ),
    behavior_param(
        "handle_invalid",
        ParamType.STRING,
        default="error",
        doc="Null or out-of-range index: 'error' raises, 'keep' yields an all-zero vector",
        validators=[one_of(["error", "keep"])],
    ),
)


def _output_width(category_size: int, drop_last: bool) -> int:
    return category_size - 1 if drop_last else category_size


@register_stage
class OneHotEncoder(Estimator):
    """Expands an index column into an indicator vector.

    The category count is taken from `num_categories` when declared,
    otherwise from the input column's label metadata, otherwise learned
    as max(index) + 1.
    """

    kind = "one_hot_encoder"
    PARAMS = (
        *_ENCODER_PARAMS,
        behavior_param(
            "num_categories",
            ParamType.INT,
            doc="Declared category count; learned from data when unset",
            validators=[gt(0)],
        ),
    )
    INPUT_PARAMS = ("input_col",)
    OUTPUT_PARAMS = ("output_col",)

    def transform_schema(self, schema: Schema) -> Schema:
        schema.require(self.get("input_col"), NUMERIC_LIKE, stage=self)
        return schema.add(self.get("output_col"), ColumnType.VECTOR)

    def _fit(
        self,
        dataset: Dataset,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "OneHotEncoderModel":
        size = self.get("num_categories")
        field = dataset.field(self.get("input_col"))

        if size is None and "labels" in field.metadata:
            size = len(field.metadata["labels"])

        if size is None:
            values = dataset.column(self.get("input_col"))
            values = values[~np.isnan(values)]
            if len(values) == 0:
                raise InsufficientData(
                    "Input column has no non-null values",
                    column=field.name, **self._error_context(),
                )
            if np.any(values < 0) or np.any(values != np.floor(values)):
                raise SchemaError(
                    "Index column must hold non-negative integers",
                    column=field.name, **self._error_context(),
                )
            size = int(values.max()) + 1

        logger.info(f"{self.uid}: encoding {size} categories")
        return self._make_model(OneHotEncoderModel, category_size=size)


@register_stage
class OneHotEncoderModel(Model):
    """Fitted one-hot encoder with a frozen category count."""

    kind = "one_hot_encoder_model"
    PARAMS = _ENCODER_PARAMS
    INPUT_PARAMS = ("input_col",)
    OUTPUT_PARAMS = ("output_col",)

    def __init__(self, category_size: int, uid: Optional[str] = None, **params: Any):
        super().__init__(uid=uid, **params)
        self._category_size = int(category_size)

    @property
    def category_size(self) -> int:
        return self._category_size

    def _metadata(self, schema: Schema) -> Dict[str, Any]:
        width = _output_width(self._category_size, self.get("drop_last"))
        meta: Dict[str, Any] = {"size": width}
        labels = schema[self.get("input_col")].metadata.get("labels")
        if labels:
            meta["categories"] = list(labels)[:width]
        return meta

    def transform_schema(self, schema: Schema) -> Schema:
        schema.require(self.get("input_col"), NUMERIC_LIKE, stage=self)
        return schema.add(self.get("output_col"), ColumnType.VECTOR, self._metadata(schema))

    def _transform(self, dataset: Dataset) -> Dataset:
        input_col = self.get("input_col")
        values = dataset.column(input_col)
        width = _output_width(self._category_size, self.get("drop_last"))

        valid = (
            ~np.isnan(values)
            & (values >= 0)
            & (values < self._category_size)
            & (values == np.floor(np.nan_to_num(values)))
        )
        if not valid.all() and self.get("handle_invalid") == "error":
            row = int(np.flatnonzero(~valid)[0])
            raise UnseenCategory(
                f"Category index {values[row]} is outside [0, {self._category_size})",
                column=input_col, row=row, **self._error_context(),
            )

        encoded = np.zeros((len(values), width), dtype=np.float64)
        rows = np.flatnonzero(valid)
        cols = values[rows].astype(np.int64)
        in_range = cols < width
        encoded[rows[in_range], cols[in_range]] = 1.0

        return dataset.with_column(
            self.get("output_col"),
            encoded,
            ColumnType.VECTOR,
            self._metadata(dataset.schema),
        )

    def artifacts(self) -> Dict[str, Any]:
        return {"category_size": self._category_size}


__all__ = ["OneHotEncoder", "OneHotEncoderModel"]
