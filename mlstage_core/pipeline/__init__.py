"""Pipeline module - Stage composition and formulas."""

from mlstage_core.pipeline.pipeline import (
    Pipeline,
    PipelineFitSummary,
    PipelineModel,
    StageAction,
    StageFitResult,
    find_stage,
)
from mlstage_core.pipeline.formula import Formula, formula_pipeline, parse_formula

__all__ = [
    "Pipeline",
    "PipelineModel",
    "PipelineFitSummary",
    "StageFitResult",
    "StageAction",
    "find_stage",
    "Formula",
    "parse_formula",
    "formula_pipeline",
]
