"""MLStage ParamGrid - Hyperparameter Grids.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

from mlstage_core.errors import InvalidParameter
from mlstage_core.params.param import ParamKind
from mlstage_core.pipeline.pipeline import find_stage
from mlstage_core.stages.base import Stage

logger = logging.getLogger(__name__)

StageRef = Union[str, Stage]


def _dedupe(values: Sequence[Any]) -> Tuple[Any, ...]:
    unique: List[Any] = []
    for value in values:
        if not any(value == seen and type(value) is type(seen) for seen in unique):
            unique.append(value)
    return tuple(unique)


@dataclass(frozen=True)
class GridEntry:
    """Candidate values for one parameter of one stage.

    Attributes:
        stage_ref: Stage UID, UID prefix or kind prefix
        param: Parameter name
        values: Candidate values, in order
    """

    stage_ref: str
    param: str
    values: Tuple[Any, ...]


class ParamGrid:
    """Structured parameter grid: stage reference -> parameter -> candidates.

    Candidates are validated for shape here and against the stage's
    parameter schema in `resolve`. The grid expands to the cartesian
    product of all entries in insertion order, last entry varying fastest.

    Example:
        grid = ParamGrid.from_dict({
            "logistic_regression": {
                "reg_param": [0.01, 0.1],
                "elastic_net_param": [0.0, 0.5, 1.0],
            },
        })
        assert grid.size == 6
    """

    def __init__(self, entries: Sequence[GridEntry] = ()):
        self._entries: List[GridEntry] = []
        seen = set()

        for entry in entries:
            key = (entry.stage_ref, entry.param)
            if key in seen:
                raise InvalidParameter(
                    f"Parameter '{entry.param}' of {entry.stage_ref!r} appears twice in grid",
                    param=entry.param, reference=entry.stage_ref,
                )
            if isinstance(entry.values, (str, bytes)) or not isinstance(entry.values, (list, tuple)):
                raise InvalidParameter(
                    f"Candidates for '{entry.param}' must be a list",
                    param=entry.param, reference=entry.stage_ref,
                )
            values = _dedupe(entry.values)
            if not values:
                raise InvalidParameter(
                    f"No candidate values for '{entry.param}'",
                    param=entry.param, reference=entry.stage_ref,
                )
            seen.add(key)
            self._entries.append(GridEntry(entry.stage_ref, entry.param, values))

    @classmethod
    def from_dict(cls, mapping: Mapping[StageRef, Mapping[str, Sequence[Any]]]) -> "ParamGrid":
        """Build from {stage_ref: {param: [candidates]}}."""
        entries = []
        for ref, params in mapping.items():
            ref = ref.uid if isinstance(ref, Stage) else ref
            for name, values in params.items():
                entries.append(GridEntry(ref, name, values))
        return cls(entries)

    @property
    def entries(self) -> List[GridEntry]:
        return list(self._entries)

    @property
    def size(self) -> int:
        """Number of combinations (1 for an empty grid)."""
        size = 1
        for entry in self._entries:
            size *= len(entry.values)
        return size

    def __len__(self) -> int:
        return self.size

    def resolve(self, estimator: Stage) -> "ResolvedGrid":
        """Bind stage references to UIDs of the estimator's stages.

        Raises:
            StageNotFound / AmbiguousStageReference: Bad stage reference
            InvalidParameter: Unknown or non-tunable parameter, bad value
            TypeMismatch: Candidate of the wrong type
        """
        dimensions: List[GridDimension] = []
        bound = set()

        for entry in self._entries:
            stage = find_stage(estimator, entry.stage_ref)
            declared = stage.declared_params()

            if entry.param not in declared:
                raise InvalidParameter(
                    f"Unknown parameter '{entry.param}'",
                    param=entry.param, stage_uid=stage.uid, stage_kind=stage.kind,
                )
            spec = declared[entry.param]
            if spec.kind == ParamKind.COLUMN:
                raise InvalidParameter(
                    f"Column parameter '{entry.param}' is not tunable",
                    param=entry.param, stage_uid=stage.uid, stage_kind=stage.kind,
                )
            if (stage.uid, entry.param) in bound:
                raise InvalidParameter(
                    f"Parameter '{entry.param}' is bound twice",
                    param=entry.param, stage_uid=stage.uid,
                )
            bound.add((stage.uid, entry.param))

            values = _dedupe([spec.check(v, stage.kind) for v in entry.values])
            dimensions.append(GridDimension(stage.uid, stage.kind, entry.param, values))

        return ResolvedGrid(dimensions)


@dataclass(frozen=True)
class GridDimension:
    """A grid entry bound to a concrete stage."""

    stage_uid: str
    stage_kind: str
    param: str
    values: Tuple[Any, ...]

    @property
    def label(self) -> str:
        return f"{self.stage_uid}.{self.param}"


@dataclass(frozen=True)
class ParamCombination:
    """One point of an expanded grid.

    Attributes:
        index: Position in expansion order
        overrides: stage UID -> {param: value}
        values: "uid.param" -> value, for reporting
    """

    index: int
    overrides: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    values: Dict[str, Any] = field(default_factory=dict)


class ResolvedGrid:
    """A grid whose references are bound to stage UIDs."""

    def __init__(self, dimensions: Sequence[GridDimension]):
        self.dimensions = list(dimensions)

    @property
    def size(self) -> int:
        size = 1
        for dim in self.dimensions:
            size *= len(dim.values)
        return size

    def combinations(self) -> List[ParamCombination]:
        """Expand to the cartesian product, deterministically ordered."""
        result = []
        for index, point in enumerate(itertools.product(*(d.values for d in self.dimensions))):
            overrides: Dict[str, Dict[str, Any]] = {}
            labels: Dict[str, Any] = {}
            for dim, value in zip(self.dimensions, point):
                overrides.setdefault(dim.stage_uid, {})[dim.param] = value
                labels[dim.label] = value
            result.append(ParamCombination(index=index, overrides=overrides, values=labels))
        return result


class ParamGridBuilder:
    """Fluent grid construction.

    Example:
        grid = (
            ParamGridBuilder()
            .add_grid(lr, "reg_param", [0.01, 0.1])
            .add_grid("standard_scaler", "with_mean", [True, False])
            .build()
        )
    """

    def __init__(self):
        self._entries: List[GridEntry] = []

    def add_grid(self, stage: StageRef, param: str, values: Sequence[Any]) -> "ParamGridBuilder":
        ref = stage.uid if isinstance(stage, Stage) else stage
        self._entries.append(GridEntry(ref, param, values))
        return self

    def build(self) -> ParamGrid:
        return ParamGrid(self._entries)


__all__ = [
    "GridEntry",
    "GridDimension",
    "ParamGrid",
    "ParamGridBuilder",
    "ParamCombination",
    "ResolvedGrid",
]
