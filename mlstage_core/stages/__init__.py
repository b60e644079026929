"""Stages module - Transformers, estimators and their fitted models.

Importing this module registers the built-in stage kinds with the
default registry.
"""

from mlstage_core.stages.base import Estimator, Model, Stage, Transformer, new_uid
from mlstage_core.stages.indexer import IndexToString, StringIndexer, StringIndexerModel
from mlstage_core.stages.encoder import OneHotEncoder, OneHotEncoderModel
from mlstage_core.stages.assembler import VectorAssembler
from mlstage_core.stages.scaler import (
    MinMaxScaler,
    MinMaxScalerModel,
    StandardScaler,
    StandardScalerModel,
)
from mlstage_core.stages.classification import LogisticRegression, LogisticRegressionModel
from mlstage_core.stages.solvers import (
    LogisticProblem,
    ProximalGradientSolver,
    Solver,
    SolverResult,
    register_solver,
)

__all__ = [
    "Stage", "Transformer", "Estimator", "Model", "new_uid",
    "StringIndexer", "StringIndexerModel", "IndexToString",
    "OneHotEncoder", "OneHotEncoderModel",
    "VectorAssembler",
    "StandardScaler", "StandardScalerModel",
    "MinMaxScaler", "MinMaxScalerModel",
    "LogisticRegression", "LogisticRegressionModel",
    "Solver", "SolverResult", "LogisticProblem", "ProximalGradientSolver", "register_solver",
]
