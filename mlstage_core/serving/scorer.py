"""MLStage Scorer - Low-Latency Model Scoring.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from mlstage_core.data.dataset import Dataset
from mlstage_core.data.schema import ColumnType
from mlstage_core.data.validator import RecordValidator
from mlstage_core.errors import PredictionError, SchemaError, TypeMismatch
from mlstage_core.params.registry import StageRegistry
from mlstage_core.serialization.bundle import load_bundle
from mlstage_core.stages.base import Transformer
from mlstage_core.utils.timing import LatencyStats, Timer

logger = logging.getLogger(__name__)


@dataclass
class PredictionResult:
    """Scoring result.

    Attributes:
        dataset: The full transformed dataset
        predictions: Values of the prediction column, if the model has one
        probabilities: Values of the probability column, if the model has one
        latency_ms: Time spent in the call
        model_uid: UID of the scoring model
    """

    dataset: Dataset
    predictions: Optional[List[Any]] = None
    probabilities: Optional[List[Any]] = None
    latency_ms: float = 0.0
    model_uid: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def prediction(self) -> Any:
        """Prediction of the first row."""
        return self.predictions[0] if self.predictions else None

    def column(self, name: str) -> List[Any]:
        return self.dataset.select([name]).to_columns()[name]


def _last_param(model: Transformer, name: str) -> Optional[str]:
    found = None
    for stage in model.iter_stages():
        value = stage.params.get(name)
        if value:
            found = value
    return found


class ScoringRuntime:
    """Serves a fitted model loaded once and shared across calls.

    The model is never mutated, so any number of threads may score
    concurrently. Each call fails independently: a bad request raises
    SchemaError or PredictionError and leaves the runtime usable.

    Example:
        runtime = ScoringRuntime.from_bundle("models/titanic")
        result = runtime.score_record({"sex": "female", "age": 29.0})
        print(result.prediction)
    """

    def __init__(
        self,
        model: Transformer,
        input_types: Optional[Mapping[str, ColumnType]] = None,
    ):
        if not isinstance(model, Transformer):
            raise TypeMismatch(f"Cannot score with a {type(model).__name__}")

        self.model = model
        self.input_types: Dict[str, ColumnType] = {
            **model.input_types(), **dict(input_types or {})
        }

        required = model.input_columns()
        self.required_columns: List[str] = required
        self._validator = RecordValidator({
            name: self.input_types.get(name) for name in required
        })

        self.prediction_col = _last_param(model, "prediction_col")
        self.probability_col = _last_param(model, "probability_col")
        self._stats = LatencyStats()

        logger.info(
            f"Scoring runtime ready for {model.kind} {model.uid}; "
            f"required fields: {', '.join(required) or '(none)'}"
        )

    @classmethod
    def from_bundle(
        cls,
        path: Union[str, Path],
        registry: Optional[StageRegistry] = None,
        input_types: Optional[Mapping[str, ColumnType]] = None,
    ) -> "ScoringRuntime":
        """Load a bundle and build a runtime around it."""
        return cls(load_bundle(path, registry), input_types=input_types)

    def score(self, dataset: Dataset) -> PredictionResult:
        """Score a dataset (batch shape).

        Raises:
            SchemaError: A required column is missing or mistyped
            PredictionError: Any other failure during transform
        """
        def run() -> PredictionResult:
            missing = [name for name in self.required_columns if name not in dataset.schema]
            if missing:
                raise SchemaError(
                    f"Request is missing required fields: {', '.join(missing)}",
                    column=missing[0],
                )
            return self._transform(dataset)

        return self._timed(run)

    def score_records(self, records: Sequence[Mapping[str, Any]]) -> PredictionResult:
        """Score row dictionaries (low-latency shape)."""
        def run() -> PredictionResult:
            self._validator.validate(records).raise_for_errors()
            dataset = Dataset.from_records(records, types=self._known_types(records))
            return self._transform(dataset)

        return self._timed(run)

    def score_record(self, record: Mapping[str, Any]) -> PredictionResult:
        """Score a single row dictionary."""
        return self.score_records([record])

    def score_columns(self, fields: Mapping[str, Sequence[Any]]) -> PredictionResult:
        """Score named field arrays, as an HTTP wrapper passes them."""
        def run() -> PredictionResult:
            self._validator.validate_columns(fields).raise_for_errors()
            dataset = Dataset.from_columns(
                fields, types={k: v for k, v in self.input_types.items() if k in fields}
            )
            return self._transform(dataset)

        return self._timed(run)

    def _timed(self, run: Callable[[], PredictionResult]) -> PredictionResult:
        with Timer(log=False) as timer:
            try:
                result = run()
            except Exception:
                self._stats.record(timer.elapsed_ms, failed=True)
                raise

        result.latency_ms = timer.elapsed_ms
        self._stats.record(result.latency_ms)
        return result

    def stats(self) -> Dict[str, Any]:
        """Request counts and latency over recent calls."""
        return {"model_uid": self.model.uid, **self._stats.to_dict()}

    def _known_types(self, records: Sequence[Mapping[str, Any]]) -> Dict[str, ColumnType]:
        present = {key for record in records for key in record}
        return {k: v for k, v in self.input_types.items() if k in present}

    def _transform(self, dataset: Dataset) -> PredictionResult:
        try:
            scored = self.model.transform(dataset)
        except SchemaError:
            raise
        except Exception as err:
            logger.warning(f"Scoring with {self.model.uid} failed: {err}")
            raise PredictionError(
                f"Scoring failed: {err}", stage_uid=getattr(err, "stage_uid", None)
            ) from err

        columns = scored.to_columns()
        return PredictionResult(
            dataset=scored,
            predictions=columns.get(self.prediction_col) if self.prediction_col else None,
            probabilities=columns.get(self.probability_col) if self.probability_col else None,
            model_uid=self.model.uid,
        )


__all__ = ["ScoringRuntime", "PredictionResult"]
