"""MLStage CrossValidator - Grid Search with K-Fold Validation.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import numpy as np

from mlstage_core.data.dataset import Dataset
from mlstage_core.errors import (
    InsufficientData,
    InvalidParameter,
    OperationCancelled,
    TuningTrialError,
    TypeMismatch,
)
from mlstage_core.stages.base import Estimator, Transformer
from mlstage_core.tuning.evaluation import Evaluator
from mlstage_core.tuning.grid import ParamCombination, ParamGrid
from mlstage_core.utils.cancellation import CancellationToken, check_cancelled

logger = logging.getLogger(__name__)


def kfold_assignment(num_rows: int, num_folds: int, seed: int) -> np.ndarray:
    """Fold index per row.

    Rows are permuted with a seeded generator; the row at permutation
    position i goes to fold i % num_folds. The same (num_rows,
    num_folds, seed) always yields the same assignment.
    """
    if num_folds < 2:
        raise InvalidParameter("num_folds must be at least 2", param="num_folds", value=num_folds)
    if num_rows < num_folds:
        raise InsufficientData(f"{num_rows} rows cannot be split into {num_folds} folds")

    permutation = np.random.default_rng(seed).permutation(num_rows)
    folds = np.empty(num_rows, dtype=np.int64)
    folds[permutation] = np.arange(num_rows) % num_folds
    return folds


def kfold_splits(dataset: Dataset, num_folds: int, seed: int) -> List[Tuple[Dataset, Dataset]]:
    """(train, validation) pairs, one per fold."""
    folds = kfold_assignment(dataset.num_rows, num_folds, seed)
    return [
        (dataset.filter(folds != k), dataset.filter(folds == k))
        for k in range(num_folds)
    ]


@dataclass
class ValidationMetric:
    """Cross-validated result for one parameter combination.

    Attributes:
        index: Combination index in grid expansion order
        params: "uid.param" -> value
        metric_name: Evaluator metric
        score: Mean metric over folds
        std: Standard deviation over folds
        fold_scores: Metric per fold, in fold order
    """

    index: int
    params: Dict[str, Any]
    metric_name: str
    score: float
    std: float
    fold_scores: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "params": dict(self.params),
            "metric_name": self.metric_name,
            "score": self.score,
            "std": self.std,
            "fold_scores": list(self.fold_scores),
        }


class ValidationReport:
    """Per-combination metrics of a tuning run, in grid order."""

    def __init__(self, rows: List[ValidationMetric], metric_name: str, larger_is_better: bool):
        self._rows = list(rows)
        self.metric_name = metric_name
        self.larger_is_better = larger_is_better

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[ValidationMetric]:
        return iter(self._rows)

    def __getitem__(self, index: int) -> ValidationMetric:
        return self._rows[index]

    def best(self) -> ValidationMetric:
        """Best row; ties go to the lowest combination index."""
        best = self._rows[0]
        for row in self._rows[1:]:
            if self.larger_is_better and row.score > best.score:
                best = row
            elif not self.larger_is_better and row.score < best.score:
                best = row
        return best

    def sorted(self) -> List[ValidationMetric]:
        """Rows from best to worst, stable on combination index."""
        sign = -1.0 if self.larger_is_better else 1.0
        return sorted(self._rows, key=lambda r: (sign * r.score, r.index))

    def filter(self, predicate: Optional[Callable[[ValidationMetric], bool]] = None, **params: Any) -> List[ValidationMetric]:
        """Rows matching a predicate and/or exact parameter values.

        Keyword names match a "uid.param" label exactly or by its
        parameter suffix, e.g. `report.filter(reg_param=0.1)`.
        """
        def matches(row: ValidationMetric) -> bool:
            for name, expected in params.items():
                found = [v for k, v in row.params.items() if k == name or k.endswith(f".{name}")]
                if not found or any(v != expected for v in found):
                    return False
            return predicate is None or predicate(row)

        return [row for row in self._rows if matches(row)]

    def to_records(self) -> List[Dict[str, Any]]:
        return [row.to_dict() for row in self._rows]

    def __repr__(self) -> str:
        return f"ValidationReport(metric={self.metric_name!r}, combinations={len(self._rows)})"


@dataclass
class CrossValidatorModel:
    """Outcome of a tuning run.

    Attributes:
        best_model: Best combination refitted on the full dataset
        best_index: Index of the best combination
        best_params: Overrides of the best combination, keyed by stage UID
        report: Per-combination validation metrics
    """

    best_model: Transformer
    best_index: int
    best_params: Dict[str, Dict[str, Any]]
    report: ValidationReport
    duration_seconds: float = 0.0

    def transform(self, dataset: Dataset) -> Dataset:
        return self.best_model.transform(dataset)


class CrossValidator:
    """Exhaustive grid search scored by k-fold cross-validation.

    Every (combination, fold) trial fits the estimator with the
    combination's overrides on the other folds and evaluates it on the
    held-out fold. Trials run on a thread pool and results are placed
    by index, so the outcome does not depend on completion order. The
    winning combination is refitted on the full dataset.

    Example:
        cv = CrossValidator(
            estimator=pipeline,
            grid=ParamGridBuilder().add_grid(lr, "reg_param", [0.01, 0.1]).build(),
            evaluator=BinaryClassificationEvaluator(),
            num_folds=3,
            seed=7,
            parallelism=4,
        )
        result = cv.fit(train)
        print(result.report.best())
    """

    def __init__(
        self,
        estimator: Estimator,
        grid: Optional[ParamGrid],
        evaluator: Evaluator,
        num_folds: int = 3,
        seed: int = 42,
        parallelism: int = 1,
    ):
        if not isinstance(estimator, Estimator):
            raise TypeMismatch(f"Cannot tune a {type(estimator).__name__}; an Estimator is required")
        if not isinstance(evaluator, Evaluator):
            raise TypeMismatch(f"Expected an Evaluator, got {type(evaluator).__name__}")
        if num_folds < 2:
            raise InvalidParameter("num_folds must be at least 2", param="num_folds", value=num_folds)
        if parallelism < 1:
            raise InvalidParameter("parallelism must be at least 1", param="parallelism", value=parallelism)

        self.estimator = estimator
        self.grid = grid or ParamGrid()
        self.evaluator = evaluator
        self.num_folds = num_folds
        self.seed = seed
        self.parallelism = parallelism

        self._combinations = self.grid.resolve(estimator).combinations()

    @property
    def combinations(self) -> List[ParamCombination]:
        return list(self._combinations)

    def fit(
        self,
        dataset: Dataset,
        executor: Optional[Executor] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> CrossValidatorModel:
        """Run all trials and refit the best combination.

        Args:
            dataset: Training data
            executor: Pool to run trials on; a private pool of
                `parallelism` threads is used when omitted
            cancel_token: Checked before each trial and between stages

        Returns:
            CrossValidatorModel

        Raises:
            InsufficientData: Fewer rows than folds
            TuningTrialError: A trial or the final refit failed
            OperationCancelled: Cancelled by the caller
        """
        start = time.perf_counter()
        splits = kfold_splits(dataset, self.num_folds, self.seed)
        candidates = [self._candidate(combo) for combo in self._combinations]

        logger.info(
            f"Tuning {self.estimator.uid}: {len(candidates)} combinations x "
            f"{self.num_folds} folds, parallelism={self.parallelism}"
        )

        scores = self._run_trials(candidates, splits, executor, cancel_token)

        rows = []
        for combo in self._combinations:
            fold_scores = [float(s) for s in scores[combo.index]]
            rows.append(ValidationMetric(
                index=combo.index,
                params=dict(combo.values),
                metric_name=self.evaluator.metric_name,
                score=float(np.mean(fold_scores)),
                std=float(np.std(fold_scores)),
                fold_scores=fold_scores,
            ))
        report = ValidationReport(rows, self.evaluator.metric_name, self.evaluator.larger_is_better)

        best = report.best()
        logger.info(
            f"Best combination {best.index}: {best.metric_name}={best.score:.4f} "
            f"params={best.params}"
        )

        check_cancelled(cancel_token, "tuning refit")
        try:
            best_model = candidates[best.index].fit(dataset, cancel_token)
        except OperationCancelled:
            raise
        except Exception as err:
            raise TuningTrialError(
                f"Refit of best combination failed: {err}",
                combination_index=best.index, params=best.params,
            ) from err

        return CrossValidatorModel(
            best_model=best_model,
            best_index=best.index,
            best_params=self._combinations[best.index].overrides,
            report=report,
            duration_seconds=time.perf_counter() - start,
        )

    def _candidate(self, combo: ParamCombination) -> Estimator:
        # cross-parameter checks (e.g. min < max) only run once values are combined
        try:
            return self.estimator.with_params(combo.overrides)
        except (InvalidParameter, TypeMismatch) as err:
            raise TuningTrialError(
                f"Combination cannot be applied: {err}",
                combination_index=combo.index, params=combo.values,
            ) from err

    def _run_trials(
        self,
        candidates: List[Estimator],
        splits: List[Tuple[Dataset, Dataset]],
        executor: Optional[Executor],
        cancel_token: Optional[CancellationToken],
    ) -> np.ndarray:
        scores = np.full((len(candidates), len(splits)), np.nan)
        abort = CancellationToken(parent=cancel_token)

        own_executor = executor is None
        if own_executor:
            executor = ThreadPoolExecutor(
                max_workers=self.parallelism, thread_name_prefix="mlstage-trial"
            )

        futures: Dict[Future, Tuple[int, int]] = {}
        try:
            for index, candidate in enumerate(candidates):
                for fold, (train, validation) in enumerate(splits):
                    future = executor.submit(
                        self._run_trial, index, fold, candidate, train, validation, abort
                    )
                    futures[future] = (index, fold)

            for future in as_completed(futures):
                index, fold = futures[future]
                try:
                    scores[index, fold] = future.result()
                except OperationCancelled:
                    self._abort(futures, abort, "tuning cancelled")
                    raise
                except Exception as err:
                    combo = self._combinations[index]
                    logger.error(f"Trial combination {index} fold {fold} failed: {err}")
                    self._abort(futures, abort, f"trial {index}/{fold} failed")
                    raise TuningTrialError(
                        f"Trial failed: {err}",
                        combination_index=index, fold=fold, params=combo.values,
                    ) from err
        finally:
            if own_executor:
                executor.shutdown(wait=True)

        return scores

    @staticmethod
    def _abort(futures: Dict[Future, Tuple[int, int]], abort: CancellationToken, reason: str) -> None:
        abort.cancel(reason)
        for future in futures:
            future.cancel()
        wait(list(futures))

    def _run_trial(
        self,
        index: int,
        fold: int,
        candidate: Estimator,
        train: Dataset,
        validation: Dataset,
        token: CancellationToken,
    ) -> float:
        token.raise_if_cancelled(f"trial {index} fold {fold}")
        model = candidate.fit(train, token)
        score = self.evaluator.evaluate(model.transform(validation))
        logger.debug(f"Trial combination {index} fold {fold}: {self.evaluator.metric_name}={score:.4f}")
        return score


__all__ = [
    "CrossValidator",
    "CrossValidatorModel",
    "ValidationMetric",
    "ValidationReport",
    "kfold_assignment",
    "kfold_splits",
]
