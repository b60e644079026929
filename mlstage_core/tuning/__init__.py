"""Tuning module - Grid search and model evaluation."""

from mlstage_core.tuning.cross_validator import (
    CrossValidator,
    CrossValidatorModel,
    ValidationMetric,
    ValidationReport,
    kfold_assignment,
    kfold_splits,
)
from mlstage_core.tuning.evaluation import (
    BinaryClassificationEvaluator,
    Evaluator,
    ModelMetrics,
    MulticlassClassificationEvaluator,
    RegressionEvaluator,
)
from mlstage_core.tuning.grid import (
    GridEntry,
    ParamCombination,
    ParamGrid,
    ParamGridBuilder,
)

__all__ = [
    "CrossValidator",
    "CrossValidatorModel",
    "ValidationMetric",
    "ValidationReport",
    "kfold_assignment",
    "kfold_splits",
    "Evaluator",
    "ModelMetrics",
    "BinaryClassificationEvaluator",
    "MulticlassClassificationEvaluator",
    "RegressionEvaluator",
    "GridEntry",
    "ParamGrid",
    "ParamGridBuilder",
    "ParamCombination",
]
