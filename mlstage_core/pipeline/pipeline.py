"""MLStage Pipeline - Pipeline Composition.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from mlstage_core.data.dataset import Dataset
from mlstage_core.data.schema import ColumnType, Schema
from mlstage_core.errors import (
    AmbiguousStageReference,
    InsufficientData,
    InvalidParameter,
    OperationCancelled,
    StageFitError,
    StageNotFound,
    TypeMismatch,
)
from mlstage_core.params.registry import register_stage
from mlstage_core.stages.base import Estimator, Model, Stage, Transformer
from mlstage_core.utils.cancellation import CancellationToken, check_cancelled

logger = logging.getLogger(__name__)


class StageAction(Enum):
    """What happened to a stage during pipeline fit."""

    FITTED = auto()
    APPLIED = auto()
    DEFERRED = auto()


@dataclass
class StageFitResult:
    """Fit record for one pipeline stage.

    Attributes:
        index: Position in the pipeline
        uid: Stage UID
        kind: Stage kind
        action: Whether the stage was fitted, applied, or left for transform time
        duration_seconds: Time spent on the stage
    """

    index: int
    uid: str
    kind: str
    action: StageAction
    duration_seconds: float = 0.0


@dataclass
class PipelineFitSummary:
    """Summary of a pipeline fit."""

    pipeline_uid: str
    started_at: datetime
    rows: int
    stage_results: List[StageFitResult] = field(default_factory=list)
    duration_seconds: float = 0.0


def _check_stages(stages: Sequence[Any], required: type) -> None:
    seen: Dict[str, int] = {}
    for index, stage in enumerate(stages):
        if not isinstance(stage, required):
            raise TypeMismatch(
                f"Pipeline element {index} is a {type(stage).__name__}, "
                f"expected {required.__name__}",
                index=index,
            )
        for nested in stage.iter_stages():
            if nested.uid in seen:
                raise InvalidParameter(
                    f"Stage UID {nested.uid!r} appears more than once",
                    stage_uid=nested.uid, index=index,
                )
            seen[nested.uid] = index


@register_stage
class Pipeline(Estimator):
    """An ordered sequence of stages that is itself an Estimator.

    Fitting walks the stages in order. Each estimator is fitted on the
    output of all preceding stages and replaced by its model; plain
    transformers are applied to advance the running dataset. The result
    is a PipelineModel. A failed stage aborts the whole fit.

    Example:
        pipeline = Pipeline([
            StringIndexer(input_col="sex", output_col="sex_idx"),
            OneHotEncoder(input_col="sex_idx", output_col="sex_vec"),
            VectorAssembler(input_cols=["age", "sex_vec"], output_col="features"),
            LogisticRegression(),
        ])
        model = pipeline.fit(train)
        scored = model.transform(test)
    """

    kind = "pipeline"
    PARAMS = ()

    def __init__(self, stages: Iterable[Stage] = (), uid: Optional[str] = None):
        stages = tuple(stages)
        _check_stages(stages, Stage)
        super().__init__(uid=uid)
        self._stages = stages

    @property
    def stages(self) -> List[Stage]:
        return list(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def append(self, stage: Stage) -> "Pipeline":
        """Return a new pipeline with the stage appended.

        The receiver is unchanged, so one pipeline can serve as a template
        for many derived pipelines.
        """
        return Pipeline([*self._stages, stage])

    def iter_stages(self) -> List[Stage]:
        result: List[Stage] = [self]
        for stage in self._stages:
            result.extend(stage.iter_stages())
        return result

    def with_params(self, params_by_uid: Mapping[str, Mapping[str, Any]]) -> "Pipeline":
        if params_by_uid.get(self.uid):
            raise InvalidParameter("Pipelines have no parameters", stage_uid=self.uid)
        return Pipeline(
            [stage.with_params(params_by_uid) for stage in self._stages], uid=self.uid
        )

    def transform_schema(self, schema: Schema) -> Schema:
        for stage in self._stages:
            schema = stage.transform_schema(schema)
        return schema

    def fit(
        self,
        dataset: Dataset,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "PipelineModel":
        """Fit every stage in order.

        Args:
            dataset: Training data
            cancel_token: Checked between stages

        Returns:
            PipelineModel

        Raises:
            InsufficientData: If the dataset is empty
            StageFitError: If any stage's schema check or fit fails
            OperationCancelled: If cancelled between stages
        """
        if dataset.num_rows == 0:
            raise InsufficientData("Cannot fit on an empty dataset", **self._error_context())

        self._check_schema(dataset.schema)
        return self._fit(dataset, cancel_token)

    def _check_schema(self, schema: Schema) -> None:
        for index, stage in enumerate(self._stages):
            try:
                schema = stage.transform_schema(schema)
            except Exception as err:
                logger.error(f"Pipeline {self.uid}: schema check failed at stage {index}: {err}")
                raise StageFitError(
                    f"Stage {index} rejected the input schema: {err}",
                    stage_uid=stage.uid, stage_kind=stage.kind, index=index,
                ) from err

    def _fit(
        self,
        dataset: Dataset,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "PipelineModel":
        summary = PipelineFitSummary(
            pipeline_uid=self.uid, started_at=datetime.now(), rows=dataset.num_rows
        )
        start = time.perf_counter()

        # Stages after the last estimator need not run during fit.
        last_estimator = max(
            (i for i, s in enumerate(self._stages) if isinstance(s, Estimator)),
            default=-1,
        )

        logger.info(
            f"Fitting pipeline {self.uid}: {len(self._stages)} stages, "
            f"{dataset.num_rows} rows"
        )

        fitted: List[Transformer] = []
        current = dataset

        for index, stage in enumerate(self._stages):
            check_cancelled(cancel_token, f"pipeline {self.uid} stage {index}")
            stage_start = time.perf_counter()

            try:
                if isinstance(stage, Estimator):
                    transformer = stage.fit(current, cancel_token)
                    action = StageAction.FITTED
                else:
                    transformer = stage
                    action = StageAction.APPLIED

                if index < last_estimator:
                    current = transformer.transform(current)
                elif action == StageAction.APPLIED:
                    action = StageAction.DEFERRED

            except OperationCancelled:
                raise
            except Exception as err:
                logger.error(f"Pipeline {self.uid}: stage {index} ({stage.uid}) failed: {err}")
                raise StageFitError(
                    f"Stage {index} failed during fit: {err}",
                    stage_uid=stage.uid, stage_kind=stage.kind, index=index,
                ) from err

            fitted.append(transformer)
            summary.stage_results.append(StageFitResult(
                index=index,
                uid=stage.uid,
                kind=stage.kind,
                action=action,
                duration_seconds=time.perf_counter() - stage_start,
            ))

        summary.duration_seconds = time.perf_counter() - start
        logger.info(f"Pipeline {self.uid} fitted in {summary.duration_seconds:.3f}s")

        return PipelineModel(fitted, uid=self.uid, fit_summary=summary)

    def __repr__(self) -> str:
        kinds = ", ".join(s.kind for s in self._stages)
        return f"Pipeline(uid={self.uid!r}, stages=[{kinds}])"


@register_stage
class PipelineModel(Model):
    """An ordered, immutable sequence of fitted transformers.

    `fit_summary` describes the fit that produced the model. It is a
    run-time record only and is not written to bundles.
    """

    kind = "pipeline_model"
    PARAMS = ()

    def __init__(
        self,
        stages: Iterable[Transformer] = (),
        uid: Optional[str] = None,
        fit_summary: Optional[PipelineFitSummary] = None,
    ):
        stages = tuple(stages)
        _check_stages(stages, Transformer)
        super().__init__(uid=uid)
        self._stages = stages
        self._fit_summary = fit_summary

    @property
    def fit_summary(self) -> Optional[PipelineFitSummary]:
        return self._fit_summary

    @property
    def stages(self) -> List[Transformer]:
        return list(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def iter_stages(self) -> List[Stage]:
        result: List[Stage] = [self]
        for stage in self._stages:
            result.extend(stage.iter_stages())
        return result

    def with_params(self, params_by_uid: Mapping[str, Mapping[str, Any]]) -> "PipelineModel":
        if params_by_uid.get(self.uid):
            raise InvalidParameter("Pipeline models have no parameters", stage_uid=self.uid)
        return PipelineModel(
            [stage.with_params(params_by_uid) for stage in self._stages], uid=self.uid
        )

    def transform_schema(self, schema: Schema) -> Schema:
        for stage in self._stages:
            schema = stage.transform_schema(schema)
        return schema

    def transform(self, dataset: Dataset) -> Dataset:
        # each stage checks its own inputs
        return self._transform(dataset)

    def _transform(self, dataset: Dataset) -> Dataset:
        for stage in self._stages:
            dataset = stage.transform(dataset)
        return dataset

    def input_columns(self) -> List[str]:
        """Columns the model needs from callers, in first-use order."""
        produced = set()
        required: List[str] = []
        for stage in self._stages:
            for name in stage.input_columns():
                if name not in produced and name not in required:
                    required.append(name)
            produced.update(stage.output_columns())
        return required

    def input_types(self) -> Dict[str, ColumnType]:
        """Declared types of the required columns, from the stage that first reads each."""
        required = set(self.input_columns())
        types: Dict[str, ColumnType] = {}
        for stage in self._stages:
            for name, dtype in stage.input_types().items():
                if name in required:
                    types.setdefault(name, dtype)
        return types

    def output_columns(self) -> List[str]:
        columns: List[str] = []
        for stage in self._stages:
            columns.extend(stage.output_columns())
        return columns

    def __repr__(self) -> str:
        kinds = ", ".join(s.kind for s in self._stages)
        return f"PipelineModel(uid={self.uid!r}, stages=[{kinds}])"


def find_stage(container: Union[Pipeline, PipelineModel, Stage], reference: str) -> Stage:
    """Look up a stage by UID or prefix.

    An exact UID match wins. Otherwise a stage matches when its UID or
    its kind starts with the reference; exactly one stage must match.
    Nested pipelines are searched depth first.

    Args:
        container: Pipeline, PipelineModel or single stage
        reference: UID, UID prefix or kind prefix

    Returns:
        The matching stage

    Raises:
        StageNotFound: No stage matches
        AmbiguousStageReference: Several stages match the prefix
    """
    candidates = [s for s in container.iter_stages() if s is not container]
    if not candidates and isinstance(container, Stage) and not isinstance(
        container, (Pipeline, PipelineModel)
    ):
        candidates = [container]

    for stage in candidates:
        if stage.uid == reference:
            return stage

    matches = [
        s for s in candidates
        if s.uid.startswith(reference) or s.kind.startswith(reference)
    ]
    if not matches:
        raise StageNotFound(f"No stage matches {reference!r}", reference=reference)
    if len(matches) > 1:
        raise AmbiguousStageReference(
            f"{len(matches)} stages match {reference!r}",
            reference=reference, matches=[s.uid for s in matches],
        )
    return matches[0]


__all__ = [
    "Pipeline",
    "PipelineModel",
    "PipelineFitSummary",
    "StageFitResult",
    "StageAction",
    "find_stage",
]
