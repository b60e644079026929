"""MLStage API - Caller Entry Points.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

One function per composition context. Every function takes the session
first and fails with SessionClosed when the session is not open.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

from mlstage_core.data.dataset import Dataset
from mlstage_core.errors import InvalidParameter, TypeMismatch
from mlstage_core.pipeline.formula import formula_pipeline
from mlstage_core.pipeline.pipeline import Pipeline, PipelineModel
from mlstage_core.pipeline.pipeline import find_stage as _find_stage
from mlstage_core.serialization.bundle import load_bundle, save_bundle
from mlstage_core.session import Session
from mlstage_core.stages.base import Estimator, Stage, Transformer
from mlstage_core.stages.classification import LogisticRegression
from mlstage_core.tuning.cross_validator import CrossValidator, CrossValidatorModel
from mlstage_core.tuning.evaluation import Evaluator
from mlstage_core.tuning.grid import ParamGrid
from mlstage_core.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

StageSpec = Union[Stage, Mapping[str, Any]]


def build_stage(
    session: Session,
    kind: str,
    params: Optional[Mapping[str, Any]] = None,
    uid: Optional[str] = None,
) -> Stage:
    """Construct a validated stage from its kind and parameters.

    Raises:
        UnknownStageKind: The kind is not registered
        InvalidParameter / MissingRequiredParameter / TypeMismatch: Bad params
    """
    session.ensure_open()
    return session.registry.build(kind, params, uid=uid)


def _stage_from_spec(session: Session, spec: StageSpec) -> Stage:
    if isinstance(spec, Stage):
        return spec
    if not isinstance(spec, Mapping) or "kind" not in spec:
        raise TypeMismatch("Stage spec must be a Stage or a mapping with a 'kind'")

    unknown = sorted(set(spec) - {"kind", "params", "uid"})
    if unknown:
        raise InvalidParameter(f"Unknown stage spec keys: {', '.join(unknown)}", param=unknown[0])
    return session.registry.build(spec["kind"], spec.get("params"), uid=spec.get("uid"))


def build_pipeline(session: Session, stages: Sequence[StageSpec]) -> Pipeline:
    """Build a pipeline from stages or {"kind", "params", "uid"} specs.

    Example:
        pipeline = api.build_pipeline(session, [
            {"kind": "string_indexer", "params": {"input_col": "sex", "output_col": "sex_idx"}},
            {"kind": "vector_assembler", "params": {"input_cols": ["age", "sex_idx"],
                                                    "output_col": "features"}},
            {"kind": "logistic_regression"},
        ])
    """
    session.ensure_open()
    return Pipeline([_stage_from_spec(session, spec) for spec in stages])


def append_to_pipeline(session: Session, pipeline: Pipeline, stage: StageSpec) -> Pipeline:
    """Return a new pipeline with one more stage; the original is unchanged."""
    session.ensure_open()
    if not isinstance(pipeline, Pipeline):
        raise TypeMismatch(f"Expected a Pipeline, got {type(pipeline).__name__}")
    return pipeline.append(_stage_from_spec(session, stage))


def fit(
    session: Session,
    estimator: Estimator,
    dataset: Dataset,
    cancel_token: Optional[CancellationToken] = None,
) -> Transformer:
    """Fit an estimator (a single stage or a whole pipeline)."""
    session.ensure_open()
    if not isinstance(estimator, Estimator):
        raise TypeMismatch(f"Cannot fit a {type(estimator).__name__}")
    return estimator.fit(dataset, cancel_token)


def transform(session: Session, transformer: Transformer, dataset: Dataset) -> Dataset:
    """Apply a transformer or fitted model."""
    session.ensure_open()
    if not isinstance(transformer, Transformer):
        raise TypeMismatch(f"Cannot transform with a {type(transformer).__name__}")
    return transformer.transform(dataset)


def fit_and_transform_eagerly(
    session: Session,
    estimator: Estimator,
    dataset: Dataset,
    cancel_token: Optional[CancellationToken] = None,
) -> Tuple[Transformer, Dataset]:
    """Fit on a dataset and immediately transform that same dataset."""
    model = fit(session, estimator, dataset, cancel_token)
    return model, model.transform(dataset)


def fit_formula_model(
    session: Session,
    formula: str,
    dataset: Dataset,
    estimator: Optional[Estimator] = None,
    features_col: str = "features",
    cancel_token: Optional[CancellationToken] = None,
) -> PipelineModel:
    """Fit a model from an R-style formula such as 'survived ~ sex + age'.

    String predictors are indexed and one-hot encoded before assembly;
    the estimator defaults to logistic regression.
    """
    session.ensure_open()
    pipeline = formula_pipeline(
        formula, dataset.schema, estimator or LogisticRegression(), features_col=features_col
    )
    return pipeline.fit(dataset, cancel_token)


def tune(
    session: Session,
    estimator: Estimator,
    dataset: Dataset,
    grid: Optional[ParamGrid],
    evaluator: Evaluator,
    num_folds: Optional[int] = None,
    seed: Optional[int] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> CrossValidatorModel:
    """Cross-validated grid search on the session's worker pool.

    Fold count and seed default to the session configuration.

    Returns:
        CrossValidatorModel with `best_model` and the validation `report`
    """
    session.ensure_open()
    validator = CrossValidator(
        estimator=estimator,
        grid=grid,
        evaluator=evaluator,
        num_folds=session.config.num_folds if num_folds is None else num_folds,
        seed=session.config.seed if seed is None else seed,
        parallelism=session.config.parallelism,
    )
    return validator.fit(dataset, executor=session.executor, cancel_token=cancel_token)


def save(
    session: Session,
    model: Transformer,
    path: Union[str, Path],
    overwrite: bool = False,
) -> Path:
    """Write a fitted model as a bundle directory or .zip archive."""
    session.ensure_open()
    return save_bundle(model, path, overwrite=overwrite)


def load(session: Session, path: Union[str, Path]) -> Transformer:
    """Load a bundle, resolving stage kinds through the session registry."""
    session.ensure_open()
    return load_bundle(path, session.registry)


def find_stage(session: Session, container: Stage, reference: str) -> Stage:
    """Look up a stage by exact UID, or a unique UID or kind prefix."""
    session.ensure_open()
    return _find_stage(container, reference)


__all__ = [
    "build_stage",
    "build_pipeline",
    "append_to_pipeline",
    "fit",
    "transform",
    "fit_and_transform_eagerly",
    "fit_formula_model",
    "tune",
    "save",
    "load",
    "find_stage",
]
