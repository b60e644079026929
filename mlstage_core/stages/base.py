"""MLStage Stages - Transformer/Estimator Abstraction.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

A Stage is a named, parameterized unit of work. Transformers map a
Dataset to a new Dataset; Estimators consume a Dataset and return a
fitted Model (a Transformer with frozen learned state).
"""

from __future__ import annotations

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type, TypeVar

from mlstage_core.data.dataset import Dataset
from mlstage_core.data.schema import ColumnType, Schema
from mlstage_core.errors import InsufficientData, InvalidParameter
from mlstage_core.params.param import Param, ParamKind, resolve_params
from mlstage_core.utils.cancellation import CancellationToken
from mlstage_core.utils.timing import Timer

logger = logging.getLogger(__name__)

S = TypeVar("S", bound="Stage")
M = TypeVar("M", bound="Model")


def new_uid(kind: str) -> str:
    """Generate a stage UID of the form '<kind>_<12 hex digits>'."""
    return f"{kind}_{uuid.uuid4().hex[:12]}"


class Stage(ABC):
    """Base class for pipeline stages.

    Subclasses declare `kind` (the registry and bundle identifier) and
    `PARAMS` (the parameter schema). `INPUT_PARAMS` / `OUTPUT_PARAMS` name
    the column parameters that reference input and output columns, and
    `INPUT_TYPES` pins the type of an input column parameter.
    """

    kind: ClassVar[str] = ""
    PARAMS: ClassVar[Tuple[Param, ...]] = ()
    INPUT_PARAMS: ClassVar[Tuple[str, ...]] = ()
    OUTPUT_PARAMS: ClassVar[Tuple[str, ...]] = ()
    INPUT_TYPES: ClassVar[Dict[str, ColumnType]] = {}

    def __init__(self, uid: Optional[str] = None, **params: Any):
        self._uid = uid or new_uid(self.kind)
        self._params: Dict[str, Any] = resolve_params(
            self.kind, self.declared_params(), params
        )
        self._validate_params()

    @classmethod
    def declared_params(cls) -> Dict[str, Param]:
        """Parameter schema, keyed by name."""
        return {p.name: p for p in cls.PARAMS}

    @classmethod
    def capabilities(cls) -> List[str]:
        caps = []
        if issubclass(cls, Transformer):
            caps.append("transformer")
        if issubclass(cls, Estimator):
            caps.append("estimator")
        return caps

    @property
    def uid(self) -> str:
        return self._uid

    @property
    def params(self) -> Dict[str, Any]:
        """Full parameter map, including defaults."""
        return dict(self._params)

    def get(self, name: str) -> Any:
        """Get a parameter value."""
        if name not in self._params:
            raise InvalidParameter(
                f"Unknown parameter '{name}'",
                param=name, stage_uid=self._uid, stage_kind=self.kind,
            )
        return self._params[name]

    def column_params(self) -> Dict[str, Any]:
        declared = self.declared_params()
        return {
            k: v for k, v in self._params.items()
            if declared[k].kind == ParamKind.COLUMN
        }

    def behavior_params(self) -> Dict[str, Any]:
        declared = self.declared_params()
        return {
            k: v for k, v in self._params.items()
            if declared[k].kind == ParamKind.BEHAVIOR
        }

    def input_columns(self) -> List[str]:
        """Columns this stage reads."""
        return self._collect_columns(self.INPUT_PARAMS)

    def output_columns(self) -> List[str]:
        """Columns this stage writes."""
        return self._collect_columns(self.OUTPUT_PARAMS)

    def input_types(self) -> Dict[str, ColumnType]:
        """Declared types of input columns, where a single type is required."""
        return {
            self._params[name]: dtype
            for name, dtype in self.INPUT_TYPES.items()
            if self._params.get(name)
        }

    def _collect_columns(self, names: Tuple[str, ...]) -> List[str]:
        columns: List[str] = []
        for name in names:
            value = self._params.get(name)
            if not value:
                continue
            if isinstance(value, tuple):
                columns.extend(value)
            else:
                columns.append(value)
        return columns

    def copy(self: S, overrides: Optional[Mapping[str, Any]] = None) -> S:
        """Return a copy with parameter overrides applied; the UID is kept."""
        new = copy.copy(self)
        new._params = resolve_params(
            self.kind, self.declared_params(), {**self._params, **dict(overrides or {})}
        )
        new._validate_params()
        return new

    def with_params(self, params_by_uid: Mapping[str, Mapping[str, Any]]) -> "Stage":
        """Apply overrides keyed by stage UID."""
        if self._uid in params_by_uid:
            return self.copy(params_by_uid[self._uid])
        return self

    def iter_stages(self) -> List["Stage"]:
        """This stage and any nested stages, depth first."""
        return [self]

    def _validate_params(self) -> None:
        """Hook for checks spanning several parameters."""

    def _error_context(self) -> Dict[str, Any]:
        return {"stage_uid": self._uid, "stage_kind": self.kind}

    @abstractmethod
    def transform_schema(self, schema: Schema) -> Schema:
        """Check input columns and derive the output schema.

        Raises:
            SchemaError: If a required input column is absent or mistyped
        """

    def __repr__(self) -> str:
        shown = ", ".join(f"{k}={v!r}" for k, v in self._params.items() if v is not None)
        return f"{type(self).__name__}(uid={self._uid!r}, {shown})"


class Transformer(Stage):
    """A stage that maps a Dataset to a new Dataset.

    `transform` is pure: it never mutates the stage or its input.
    """

    def transform(self, dataset: Dataset) -> Dataset:
        """Transform a dataset.

        Args:
            dataset: Input dataset

        Returns:
            New dataset with this stage's output columns added
        """
        self.transform_schema(dataset.schema)
        return self._transform(dataset)

    @abstractmethod
    def _transform(self, dataset: Dataset) -> Dataset:
        """Transform after the schema check has passed."""

    def artifacts(self) -> Dict[str, Any]:
        """Learned state to persist alongside the parameters."""
        return {}

    @classmethod
    def from_artifacts(
        cls,
        uid: str,
        params: Mapping[str, Any],
        artifacts: Mapping[str, Any],
    ) -> "Transformer":
        """Rebuild a transformer from persisted parameters and artifacts."""
        return cls(uid=uid, **dict(artifacts), **dict(params))


class Estimator(Stage):
    """A stage that learns a Transformer from data."""

    def fit(
        self,
        dataset: Dataset,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Transformer:
        """Fit against a dataset.

        Args:
            dataset: Training data
            cancel_token: Optional cooperative cancellation token

        Returns:
            A new, independent fitted Transformer

        Raises:
            InsufficientData: If the dataset is empty or degenerate
            SchemaError: If required columns are missing
        """
        if dataset.num_rows == 0:
            raise InsufficientData("Cannot fit on an empty dataset", **self._error_context())

        self.transform_schema(dataset.schema)

        with Timer(f"fit {self._uid}"):
            return self._fit(dataset, cancel_token)

    @abstractmethod
    def _fit(
        self,
        dataset: Dataset,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Transformer:
        """Fit after the emptiness and schema checks have passed."""

    def _make_model(self, model_cls: Type[M], **artifacts: Any) -> M:
        """Build the fitted model, carrying over the parameters it declares."""
        declared = model_cls.declared_params()
        params = {k: v for k, v in self._params.items() if k in declared}
        return model_cls(uid=self._uid, **artifacts, **params)


class Model(Transformer):
    """A fitted transformer produced by an Estimator.

    Shares the UID of the estimator that produced it.
    """


__all__ = ["Stage", "Transformer", "Estimator", "Model", "new_uid"]
