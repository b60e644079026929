"""MLStage - Pipeline Execution and Model Serialization Engine.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

A self-contained ML pipeline engine with:
- Typed, validated stage parameters and a stage registry
- Transformer/Estimator stages (indexing, encoding, assembly, scaling,
  logistic regression)
- Pipelines that fit stage by stage on the running dataset
- Cross-validated grid search over stage parameters
- Portable JSON model bundles (directory or zip)
- A scoring runtime for batch and single-record requests

Architecture:
    ┌─────────────────────────────────────────────────────────────────┐
    │                        MLStage Engine                           │
    ├─────────────────────────────────────────────────────────────────┤
    │  ┌─────────────┐  ┌─────────────┐  ┌─────────────┐              │
    │  │   Session   │  │  Caller API │  │     CLI     │   CALLER     │
    │  │  lifecycle  │  │  build/fit  │  │ score/show  │   LAYER      │
    │  └──────┬──────┘  └──────┬──────┘  └──────┬──────┘              │
    │         │                │                │                     │
    │  ┌──────┴────────────────┴────────────────┴──────┐              │
    │  │              Hyperparameter Search            │              │
    │  │   ┌────────┐  ┌────────┐  ┌──────────┐        │   TUNING     │
    │  │   │ Grid   │  │ Folds  │  │Evaluator │        │   LAYER      │
    │  │   └────────┘  └────────┘  └──────────┘        │              │
    │  └──────────────────────┬────────────────────────┘              │
    │                         │                                       │
    │  ┌──────────────────────┴────────────────────────┐              │
    │  │         Pipeline / PipelineModel              │   PIPELINE   │
    │  │   Indexer → Encoder → Assembler → Scaler → LR │   LAYER      │
    │  └──────────────────────┬────────────────────────┘              │
    │                         │                                       │
    │  ┌──────────────────────┴────────────────────────┐              │
    │  │      Bundles (save/load) + Scoring Runtime    │   SERVING    │
    │  └───────────────────────────────────────────────┘   LAYER      │
    └─────────────────────────────────────────────────────────────────┘

Example Usage:
    from mlstage_core import Session, api
    from mlstage_core.tuning import BinaryClassificationEvaluator, ParamGridBuilder

    with Session() as session:
        pipeline = api.build_pipeline(session, [
            {"kind": "string_indexer", "params": {"input_col": "sex", "output_col": "sex_idx"}},
            {"kind": "one_hot_encoder", "params": {"input_col": "sex_idx", "output_col": "sex_vec"}},
            {"kind": "vector_assembler",
             "params": {"input_cols": ["age", "sex_vec"], "output_col": "features"}},
            {"kind": "logistic_regression"},
        ])
        grid = ParamGridBuilder().add_grid("logistic", "reg_param", [0.0, 0.1]).build()
        result = api.tune(session, pipeline, train, grid, BinaryClassificationEvaluator())
        api.save(session, result.best_model, "models/survival")
"""

__version__ = "1.0.0"
__author__ = "BlackRoad OS"

from mlstage_core.errors import MLStageError
from mlstage_core.data import ColumnType, Dataset, Schema
from mlstage_core.stages import Estimator, Model, Stage, Transformer
from mlstage_core.pipeline import Pipeline, PipelineModel, find_stage
from mlstage_core.session import Session, SessionConfig
from mlstage_core.utils.cancellation import CancellationToken
from mlstage_core import api

__all__ = [
    "MLStageError",
    "ColumnType",
    "Dataset",
    "Schema",
    "Stage",
    "Transformer",
    "Estimator",
    "Model",
    "Pipeline",
    "PipelineModel",
    "find_stage",
    "Session",
    "SessionConfig",
    "CancellationToken",
    "api",
]
