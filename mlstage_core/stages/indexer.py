"""Category indexing stages.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from mlstage_core.data.dataset import Dataset
from mlstage_core.data.schema import NUMERIC_LIKE, ColumnType, Schema
from mlstage_core.errors import InsufficientData, SchemaError, UnseenCategory
from mlstage_core.params.param import ParamType, behavior_param, column_param
from mlstage_core.params.registry import register_stage
from mlstage_core.params.validators import one_of
from mlstage_core.stages.base import Estimator, Model, Transformer
from mlstage_core.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

ORDER_TYPES = ("frequency_desc", "frequency_asc", "alphabet_asc", "alphabet_desc")


def rank_categories(values: Sequence[Optional[str]], order_type: str = "frequency_desc") -> List[str]:
    """Rank distinct non-null values.

    Frequency orders break ties by first-seen position.

    Args:
        values: Category values (None entries are ignored)
        order_type: One of ORDER_TYPES

    Returns:
        Labels, where a label's position is its index
    """
    counts: Dict[str, int] = {}
    for value in values:
        if value is not None:
            counts[value] = counts.get(value, 0) + 1

    # dicts keep insertion order and sorted() is stable, so ties stay first-seen
    if order_type == "frequency_desc":
        return [k for k, _ in sorted(counts.items(), key=lambda kv: -kv[1])]
    if order_type == "frequency_asc":
        return [k for k, _ in sorted(counts.items(), key=lambda kv: kv[1])]
    if order_type == "alphabet_asc":
        return sorted(counts)
    if order_type == "alphabet_desc":
        return sorted(counts, reverse=True)
    raise ValueError(f"Unknown order type: {order_type}")


_INDEXER_COLUMNS = (
    column_param("input_col", required=True, doc="String column to index"),
    column_param("output_col", required=True, doc="Categorical index column to add"),
)

_HANDLE_INVALID = behavior_param(
    "handle_invalid",
    ParamType.STRING,
    default="error",
    doc="Unseen or null values: 'error' raises, 'skip' drops the row, 'keep' yields a null index",
    validators=[one_of(["error", "skip", "keep"])],
)


@register_stage
class StringIndexer(Estimator):
    """Learns a rank of distinct category values and maps them to 0..k-1.

    Example:
        indexer = StringIndexer(input_col="sex", output_col="sex_idx")
        model = indexer.fit(ds)
    """

    kind = "string_indexer"
    PARAMS = (
        *_INDEXER_COLUMNS,
        _HANDLE_INVALID,
        behavior_param(
            "string_order_type",
            ParamType.STRING,
            default="frequency_desc",
            doc="How labels are ranked",
            validators=[one_of(ORDER_TYPES)],
        ),
    )
    INPUT_PARAMS = ("input_col",)
    OUTPUT_PARAMS = ("output_col",)
    INPUT_TYPES = {"input_col": ColumnType.STRING}

    def transform_schema(self, schema: Schema) -> Schema:
        schema.require(self.get("input_col"), ColumnType.STRING, stage=self)
        return schema.add(self.get("output_col"), ColumnType.CATEGORICAL)

    def _fit(
        self,
        dataset: Dataset,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "StringIndexerModel":
        labels = rank_categories(
            dataset.column(self.get("input_col")), self.get("string_order_type")
        )
        if not labels:
            raise InsufficientData(
                "Input column has no non-null values",
                column=self.get("input_col"), **self._error_context(),
            )

        logger.info(f"{self.uid}: learned {len(labels)} categories")
        return self._make_model(StringIndexerModel, labels=labels)


@register_stage
class StringIndexerModel(Model):
    """Maps category values to their learned indices."""

    kind = "string_indexer_model"
    PARAMS = (*_INDEXER_COLUMNS, _HANDLE_INVALID)
    INPUT_PARAMS = ("input_col",)
    OUTPUT_PARAMS = ("output_col",)
    INPUT_TYPES = {"input_col": ColumnType.STRING}

    def __init__(self, labels: Sequence[str], uid: Optional[str] = None, **params: Any):
        super().__init__(uid=uid, **params)
        self._labels = tuple(str(label) for label in labels)
        self._index = {label: i for i, label in enumerate(self._labels)}

    @property
    def labels(self) -> List[str]:
        return list(self._labels)

    def transform_schema(self, schema: Schema) -> Schema:
        schema.require(self.get("input_col"), ColumnType.STRING, stage=self)
        return schema.add(
            self.get("output_col"),
            ColumnType.CATEGORICAL,
            {"labels": list(self._labels)},
        )

    def _transform(self, dataset: Dataset) -> Dataset:
        input_col = self.get("input_col")
        policy = self.get("handle_invalid")
        values = dataset.column(input_col)

        indices = np.empty(len(values), dtype=np.float64)
        keep_rows = np.ones(len(values), dtype=bool)

        for row, value in enumerate(values):
            index = self._index.get(value) if value is not None else None
            if index is not None:
                indices[row] = index
                continue

            if policy == "error":
                raise UnseenCategory(
                    f"Unseen category {value!r}",
                    column=input_col, value=value, row=row, **self._error_context(),
                )
            indices[row] = np.nan
            if policy == "skip":
                keep_rows[row] = False

        result = dataset.with_column(
            self.get("output_col"),
            indices,
            ColumnType.CATEGORICAL,
            {"labels": list(self._labels)},
        )
        if not keep_rows.all():
            result = result.filter(keep_rows)
        return result

    def artifacts(self) -> Dict[str, Any]:
        return {"labels": list(self._labels)}


@register_stage
class IndexToString(Transformer):
    """Maps category indices back to their labels."""

    kind = "index_to_string"
    PARAMS = (
        column_param("input_col", required=True, doc="Categorical index column"),
        column_param("output_col", required=True, doc="String column to add"),
        behavior_param(
            "labels",
            ParamType.STRING_LIST,
            doc="Labels to use; defaults to the input column's metadata",
        ),
    )
    INPUT_PARAMS = ("input_col",)
    OUTPUT_PARAMS = ("output_col",)

    def _labels_for(self, schema: Schema) -> List[str]:
        if self.get("labels") is not None:
            return list(self.get("labels"))
        field = schema[self.get("input_col")]
        labels = field.metadata.get("labels")
        if labels is None:
            raise SchemaError(
                "Input column carries no label metadata and no labels were given",
                column=field.name, **self._error_context(),
            )
        return list(labels)

    def transform_schema(self, schema: Schema) -> Schema:
        schema.require(self.get("input_col"), NUMERIC_LIKE, stage=self)
        self._labels_for(schema)
        return schema.add(self.get("output_col"), ColumnType.STRING)

    def _transform(self, dataset: Dataset) -> Dataset:
        labels = self._labels_for(dataset.schema)
        output: List[Optional[str]] = []

        for row, value in enumerate(dataset.column(self.get("input_col"))):
            if math.isnan(value):
                output.append(None)
                continue
            index = int(value)
            if index != value or not 0 <= index < len(labels):
                raise UnseenCategory(
                    f"Index {value} has no label",
                    column=self.get("input_col"), row=row, **self._error_context(),
                )
            output.append(labels[index])

        return dataset.with_column(self.get("output_col"), output, ColumnType.STRING)


__all__ = ["StringIndexer", "StringIndexerModel", "IndexToString", "rank_categories"]
