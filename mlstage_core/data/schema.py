"""MLStage Schema - Column Types and Schemas.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from mlstage_core.errors import SchemaError


class ColumnType(Enum):
    """Column data types."""

    NUMERIC = "numeric"
    STRING = "string"
    CATEGORICAL = "categorical"
    VECTOR = "vector"


# Categorical columns hold numeric indices and may stand in for numbers.
NUMERIC_LIKE = (ColumnType.NUMERIC, ColumnType.CATEGORICAL)


@dataclass(frozen=True)
class Field:
    """A named, typed column.

    Attributes:
        name: Column name, unique within a schema
        dtype: Column type
        metadata: Column metadata (e.g. category labels, vector size)
    """

    name: str
    dtype: ColumnType
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.dtype.value, "metadata": dict(self.metadata)}


class Schema:
    """Ordered mapping from column name to Field."""

    def __init__(self, fields: Optional[Iterable[Field]] = None):
        self._fields: Dict[str, Field] = {}
        for f in fields or []:
            if f.name in self._fields:
                raise SchemaError("Duplicate column name", column=f.name)
            self._fields[f.name] = f

    @property
    def names(self) -> List[str]:
        return list(self._fields)

    @property
    def fields(self) -> List[Field]:
        return list(self._fields.values())

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[Field]:
        return iter(self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    def __getitem__(self, name: str) -> Field:
        try:
            return self._fields[name]
        except KeyError:
            raise SchemaError("Column not found", column=name) from None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return [(f.name, f.dtype) for f in self] == [(f.name, f.dtype) for f in other]

    def get(self, name: str) -> Optional[Field]:
        return self._fields.get(name)

    def add(
        self,
        name: str,
        dtype: ColumnType,
        metadata: Optional[Dict[str, Any]] = None,
        replace: bool = False,
    ) -> "Schema":
        """Return a new schema with the column appended (or replaced in place)."""
        new_field = Field(name=name, dtype=dtype, metadata=dict(metadata or {}))

        if name in self._fields:
            if not replace:
                raise SchemaError("Output column already exists", column=name)
            return Schema(new_field if f.name == name else f for f in self)

        return Schema([*self.fields, new_field])

    def drop(self, names: Sequence[str]) -> "Schema":
        """Return a new schema without the given columns."""
        dropped = set(names)
        return Schema(f for f in self if f.name not in dropped)

    def require(
        self,
        name: str,
        types: Union[ColumnType, Tuple[ColumnType, ...]],
        stage: Optional[Any] = None,
    ) -> Field:
        """Get a column and check its type.

        Args:
            name: Column name
            types: Accepted column type(s)
            stage: Stage requiring the column, for error context

        Returns:
            The matching Field

        Raises:
            SchemaError: If the column is absent or has the wrong type
        """
        if isinstance(types, ColumnType):
            types = (types,)

        uid = getattr(stage, "uid", None)
        kind = getattr(stage, "kind", None)

        found = self._fields.get(name)
        if found is None:
            raise SchemaError(
                "Required input column is missing",
                column=name, stage_uid=uid, stage_kind=kind,
            )
        if found.dtype not in types:
            expected = "/".join(t.value for t in types)
            raise SchemaError(
                f"Column has type {found.dtype.value}, expected {expected}",
                column=name, stage_uid=uid, stage_kind=kind,
            )
        return found

    def to_list(self) -> List[Dict[str, Any]]:
        return [f.to_dict() for f in self]

    def __repr__(self) -> str:
        cols = ", ".join(f"{f.name}: {f.dtype.value}" for f in self)
        return f"Schema({cols})"


__all__ = ["ColumnType", "Field", "Schema", "NUMERIC_LIKE"]
