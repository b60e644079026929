"""MLStage Dataset - Immutable Columnar Tables.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np

from mlstage_core.data.schema import ColumnType, Field, Schema
from mlstage_core.errors import DimensionMismatch, SchemaError

logger = logging.getLogger(__name__)


def _freeze(array: np.ndarray) -> np.ndarray:
    array.flags.writeable = False
    if array.dtype == object:
        for item in array:
            if isinstance(item, np.ndarray):
                item.flags.writeable = False
    return array


def infer_column_type(values: Any) -> ColumnType:
    """Infer a column type from raw values."""
    if isinstance(values, np.ndarray) and values.dtype != object:
        if values.ndim == 2:
            return ColumnType.VECTOR
        if np.issubdtype(values.dtype, np.number) or values.dtype == bool:
            return ColumnType.NUMERIC
        if values.dtype.kind in ("U", "S"):
            return ColumnType.STRING

    for value in values:
        if value is None:
            continue
        if isinstance(value, (bool, int, float, np.number)):
            return ColumnType.NUMERIC
        if isinstance(value, str):
            return ColumnType.STRING
        if isinstance(value, (list, tuple, np.ndarray)):
            return ColumnType.VECTOR
        raise SchemaError(f"Cannot infer column type for value of type {type(value).__name__}")

    return ColumnType.NUMERIC


def coerce_column(name: str, values: Any, dtype: ColumnType) -> np.ndarray:
    """Convert raw values into the storage array for a column type.

    Numeric and categorical columns become float64 with NaN for nulls,
    string columns become object arrays with None for nulls, and vector
    columns become 2-D float64 arrays (or object arrays of 1-D arrays when
    the rows disagree on arity).
    """
    if dtype in (ColumnType.NUMERIC, ColumnType.CATEGORICAL):
        if isinstance(values, np.ndarray) and values.dtype != object:
            if values.ndim != 1:
                raise SchemaError("Numeric column must be one-dimensional", column=name)
            try:
                return _freeze(values.astype(np.float64))
            except (TypeError, ValueError):
                raise SchemaError("Column values are not numeric", column=name) from None
        try:
            cleaned = [np.nan if v is None else v for v in values]
            if any(isinstance(v, str) for v in cleaned):
                raise ValueError
            return _freeze(np.asarray(cleaned, dtype=np.float64).reshape(-1))
        except (TypeError, ValueError):
            raise SchemaError("Column values are not numeric", column=name) from None

    if dtype == ColumnType.STRING:
        items = [None if v is None else str(v) for v in values]
        array = np.empty(len(items), dtype=object)
        array[:] = items
        return _freeze(array)

    if dtype == ColumnType.VECTOR:
        if isinstance(values, np.ndarray) and values.dtype != object:
            if values.ndim != 2:
                raise SchemaError("Vector column must be two-dimensional", column=name)
            return _freeze(values.astype(np.float64))

        rows = []
        for row in values:
            if row is None:
                rows.append(np.empty(0, dtype=np.float64))
                continue
            try:
                rows.append(np.array(row, dtype=np.float64).reshape(-1))
            except (TypeError, ValueError):
                raise SchemaError("Vector values are not numeric", column=name) from None

        widths = {len(r) for r in rows}
        if len(widths) <= 1:
            width = widths.pop() if widths else 0
            stacked = np.vstack(rows) if rows else np.empty((0, width))
            return _freeze(stacked.reshape(len(rows), width).astype(np.float64))

        ragged = np.empty(len(rows), dtype=object)
        for i, row in enumerate(rows):
            ragged[i] = row
        return _freeze(ragged)

    raise SchemaError(f"Unsupported column type {dtype}", column=name)


def vector_width(array: np.ndarray) -> Optional[int]:
    """Width of a vector column, or None when rows are ragged."""
    if array.dtype == object:
        return None
    return int(array.shape[1])


class Dataset:
    """Immutable, schema-bearing table.

    Column arrays are read-only, so derived datasets share them freely.
    Every operation that changes shape or content returns a new Dataset.

    Example:
        ds = Dataset.from_records([{"sex": "m", "age": 31.0}, {"sex": "f", "age": 24.0}])
        ds2 = ds.with_column("age2", ds.column("age") * 2, ColumnType.NUMERIC)
    """

    def __init__(
        self,
        columns: Mapping[str, np.ndarray],
        schema: Schema,
        num_rows: Optional[int] = None,
    ):
        if list(columns) != schema.names:
            raise SchemaError("Columns do not match schema")

        lengths = {len(array) for array in columns.values()}
        if len(lengths) > 1:
            raise DimensionMismatch(f"Columns have different lengths: {sorted(lengths)}")

        self._columns: Dict[str, np.ndarray] = dict(columns)
        self._schema = schema
        self._num_rows = lengths.pop() if lengths else int(num_rows or 0)

    @classmethod
    def from_columns(
        cls,
        data: Mapping[str, Any],
        types: Optional[Mapping[str, ColumnType]] = None,
        metadata: Optional[Mapping[str, Dict[str, Any]]] = None,
    ) -> "Dataset":
        """Build a dataset from a mapping of column name to values.

        Args:
            data: Column name -> sequence (or numpy array) of values
            types: Optional explicit column types; inferred otherwise
            metadata: Optional per-column metadata

        Returns:
            Dataset
        """
        types = types or {}
        metadata = metadata or {}
        columns: Dict[str, np.ndarray] = {}
        fields: List[Field] = []

        for name, values in data.items():
            dtype = types.get(name) or infer_column_type(values)
            array = coerce_column(name, values, dtype)
            meta = dict(metadata.get(name, {}))
            if dtype == ColumnType.VECTOR and vector_width(array) is not None:
                meta.setdefault("size", vector_width(array))
            columns[name] = array
            fields.append(Field(name=name, dtype=dtype, metadata=meta))

        return cls(columns, Schema(fields))

    @classmethod
    def from_records(
        cls,
        records: Sequence[Mapping[str, Any]],
        types: Optional[Mapping[str, ColumnType]] = None,
        columns: Optional[Sequence[str]] = None,
    ) -> "Dataset":
        """Build a dataset from row dictionaries.

        Column order follows `columns` when given, otherwise first-seen key
        order. Keys absent from a record are read as nulls.
        """
        if columns is None:
            names: Dict[str, None] = {}
            for record in records:
                for key in record:
                    names.setdefault(key, None)
            columns = list(names)

        data = {name: [record.get(name) for record in records] for name in columns}

        if not records and types:
            for name in columns:
                if types.get(name) == ColumnType.VECTOR:
                    data[name] = np.empty((0, 0))

        return cls.from_columns(data, types=types)

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def columns(self) -> List[str]:
        return self._schema.names

    @property
    def num_rows(self) -> int:
        return self._num_rows

    def __len__(self) -> int:
        return self._num_rows

    def column(self, name: str) -> np.ndarray:
        """Get a read-only column array."""
        if name not in self._columns:
            raise SchemaError("Column not found", column=name)
        return self._columns[name]

    def field(self, name: str) -> Field:
        return self._schema[name]

    def with_column(
        self,
        name: str,
        values: Any,
        dtype: ColumnType,
        metadata: Optional[Dict[str, Any]] = None,
        replace: bool = False,
    ) -> "Dataset":
        """Return a new dataset with a column added.

        Args:
            name: Column name
            values: Column values
            dtype: Column type
            metadata: Column metadata
            replace: Allow replacing an existing column

        Returns:
            New Dataset
        """
        array = coerce_column(name, values, dtype)
        if self._schema.names and len(array) != self._num_rows:
            raise DimensionMismatch(
                f"Column has {len(array)} rows, dataset has {self._num_rows}",
                column=name,
            )

        meta = dict(metadata or {})
        if dtype == ColumnType.VECTOR and vector_width(array) is not None:
            meta.setdefault("size", vector_width(array))

        schema = self._schema.add(name, dtype, meta, replace=replace)
        columns = dict(self._columns)
        columns[name] = array
        ordered = {n: columns[n] for n in schema.names}
        return Dataset(ordered, schema, num_rows=len(array))

    def drop(self, *names: str) -> "Dataset":
        """Return a new dataset without the given columns."""
        schema = self._schema.drop(names)
        return Dataset(
            {n: self._columns[n] for n in schema.names}, schema, num_rows=self._num_rows
        )

    def select(self, names: Iterable[str]) -> "Dataset":
        """Return a new dataset with only the given columns, in that order."""
        names = list(names)
        fields = [self._schema[n] for n in names]
        return Dataset(
            {n: self._columns[n] for n in names}, Schema(fields), num_rows=self._num_rows
        )

    def take(self, indices: Any) -> "Dataset":
        """Return a new dataset with the given rows, in that order."""
        idx = np.asarray(indices, dtype=np.int64).reshape(-1)
        columns = {n: _freeze(np.array(a[idx])) for n, a in self._columns.items()}
        return Dataset(columns, self._schema, num_rows=len(idx))

    def filter(self, mask: Any) -> "Dataset":
        """Return a new dataset with the rows where mask is true."""
        mask = np.asarray(mask, dtype=bool)
        if len(mask) != self._num_rows:
            raise DimensionMismatch(f"Mask has {len(mask)} rows, dataset has {self._num_rows}")
        return self.take(np.flatnonzero(mask))

    def head(self, n: int = 5) -> List[Dict[str, Any]]:
        return self.take(np.arange(min(n, self._num_rows))).to_records()

    def to_columns(self) -> Dict[str, List[Any]]:
        """Convert to plain Python lists keyed by column name."""
        return {
            f.name: [_to_python(v, f.dtype) for v in self._columns[f.name]]
            for f in self._schema
        }

    def to_records(self) -> List[Dict[str, Any]]:
        """Convert to a list of row dictionaries."""
        cols = self.to_columns()
        return [
            {name: cols[name][i] for name in self._schema.names}
            for i in range(self._num_rows)
        ]

    def __repr__(self) -> str:
        return f"Dataset(rows={self._num_rows}, schema={self._schema!r})"


def _to_python(value: Any, dtype: ColumnType) -> Any:
    if dtype == ColumnType.VECTOR:
        return [float(x) for x in value]
    if dtype == ColumnType.STRING:
        return value
    value = float(value)
    return None if math.isnan(value) else value


__all__ = ["Dataset", "coerce_column", "infer_column_type", "vector_width"]
