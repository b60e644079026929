"""Vector assembly.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from mlstage_core.data.dataset import Dataset
from mlstage_core.data.schema import NUMERIC_LIKE, ColumnType, Schema
from mlstage_core.errors import DimensionMismatch, SchemaError
from mlstage_core.params.param import ParamType, behavior_param, column_param
from mlstage_core.params.registry import register_stage
from mlstage_core.params.validators import distinct, non_empty, one_of
from mlstage_core.stages.base import Transformer

logger = logging.getLogger(__name__)


@register_stage
class VectorAssembler(Transformer):
    """Concatenates numeric and vector columns into one vector column.

    Example:
        assembler = VectorAssembler(input_cols=["age", "sex_vec"], output_col="features")
        ds = assembler.transform(ds)
    """

    kind = "vector_assembler"
    PARAMS = (
        column_param(
            "input_cols",
            ptype=ParamType.STRING_LIST,
            required=True,
            doc="Columns to concatenate, in order",
            validators=[non_empty(), distinct()],
        ),
        column_param("output_col", required=True, doc="Vector column to add"),
        behavior_param(
            "handle_invalid",
            ParamType.STRING,
            default="error",
            doc="Null numeric values: 'error' raises, 'skip' drops the row, 'keep' passes NaN",
            validators=[one_of(["error", "skip", "keep"])],
        ),
    )
    INPUT_PARAMS = ("input_cols",)
    OUTPUT_PARAMS = ("output_col",)

    def transform_schema(self, schema: Schema) -> Schema:
        size: Optional[int] = 0
        for name in self.get("input_cols"):
            field = schema.require(name, (*NUMERIC_LIKE, ColumnType.VECTOR), stage=self)
            if field.dtype == ColumnType.VECTOR:
                width = field.metadata.get("size")
                size = None if width is None or size is None else size + width
            elif size is not None:
                size += 1

        metadata = {"size": size} if size is not None else {}
        return schema.add(self.get("output_col"), ColumnType.VECTOR, metadata)

    def _transform(self, dataset: Dataset) -> Dataset:
        blocks: List[np.ndarray] = []

        for name in self.get("input_cols"):
            values = dataset.column(name)
            if dataset.field(name).dtype == ColumnType.VECTOR:
                blocks.append(self._vector_block(name, values))
            else:
                blocks.append(values.reshape(-1, 1))

        if dataset.num_rows == 0:
            width = sum(b.shape[1] for b in blocks)
            return dataset.with_column(
                self.get("output_col"), np.empty((0, width)), ColumnType.VECTOR
            )

        assembled = np.hstack(blocks)
        invalid = np.isnan(assembled).any(axis=1)
        policy = self.get("handle_invalid")

        if invalid.any() and policy == "error":
            row = int(np.flatnonzero(invalid)[0])
            raise SchemaError(
                "Null value in assembled input; set handle_invalid to 'skip' or 'keep'",
                row=row, **self._error_context(),
            )

        result = dataset.with_column(self.get("output_col"), assembled, ColumnType.VECTOR)
        if invalid.any() and policy == "skip":
            result = result.filter(~invalid)
        return result

    def _vector_block(self, name: str, values: np.ndarray) -> np.ndarray:
        if values.dtype != object:
            return values

        expected = len(values[0])
        for row, vector in enumerate(values):
            if len(vector) != expected:
                raise DimensionMismatch(
                    f"Row has {len(vector)} elements, expected {expected}",
                    column=name, row=row, **self._error_context(),
                )
        return np.vstack(values)


__all__ = ["VectorAssembler"]
