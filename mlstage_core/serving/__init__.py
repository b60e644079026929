"""Serving module - Model scoring runtime."""

from mlstage_core.serving.scorer import PredictionResult, ScoringRuntime

__all__ = ["ScoringRuntime", "PredictionResult"]
