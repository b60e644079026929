"""MLStage Errors - Engine Exception Hierarchy.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Every error raised by the engine derives from MLStageError and from the
closest builtin exception, so callers can catch either. Context
attributes (stage_uid, param, fold, ...) are kept on the instance and
rendered into the message.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MLStageError(Exception):
    """Base class for engine errors.

    Attributes:
        message: Human readable description
        context: Structured context (stage uid/kind, parameter, ...)
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context: Dict[str, Any] = {
            key: value for key, value in context.items() if value is not None
        }
        super().__init__(self._render())

    def _render(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"{self.message} ({details})"

    def __getattr__(self, name: str) -> Any:
        context = self.__dict__.get("context", {})
        if name in context:
            return context[name]
        if name in _CONTEXT_KEYS:
            return None
        raise AttributeError(name)


_CONTEXT_KEYS = frozenset({
    "stage_uid",
    "stage_kind",
    "param",
    "column",
    "index",
    "combination_index",
    "fold",
    "params",
    "path",
    "row",
    "value",
    "kind",
    "reference",
    "matches",
})


# Configuration errors

class InvalidParameter(MLStageError, ValueError):
    """Unknown parameter name or a value outside the parameter's domain."""


class MissingRequiredParameter(MLStageError, ValueError):
    """A required parameter was not supplied."""


class TypeMismatch(MLStageError, TypeError):
    """A parameter value has the wrong type."""


# Data errors

class SchemaError(MLStageError, ValueError):
    """A required column is absent or has the wrong type."""


class DimensionMismatch(MLStageError, ValueError):
    """Vector arity is inconsistent with what a stage expects."""


class UnseenCategory(MLStageError, ValueError):
    """A category was not seen when the indexer was fitted."""


class InsufficientData(MLStageError, ValueError):
    """Training data is empty or degenerate."""


# Pipeline errors

class StageFitError(MLStageError, RuntimeError):
    """A stage failed while its pipeline was being fitted."""


class AmbiguousStageReference(MLStageError, LookupError):
    """A stage reference matched more than one stage."""


class StageNotFound(MLStageError, LookupError):
    """A stage reference matched no stage."""


class OperationCancelled(MLStageError, RuntimeError):
    """A fit or tuning run was cancelled cooperatively."""


# Tuning errors

class TuningTrialError(MLStageError, RuntimeError):
    """A single (combination, fold) trial failed during tuning."""


# Serialization errors

class UnknownStageKind(MLStageError, LookupError):
    """A stage kind identifier is not registered."""


class CorruptBundle(MLStageError, ValueError):
    """A bundle is structurally invalid."""


# Runtime errors

class PredictionError(MLStageError, RuntimeError):
    """Scoring a request failed for reasons other than its schema."""


class SessionClosed(MLStageError, RuntimeError):
    """An engine call was made on a session that is not open."""


def describe_error(error: BaseException) -> Dict[str, Any]:
    """Flatten an error into a JSON-friendly mapping."""
    payload: Dict[str, Any] = {
        "error": type(error).__name__,
        "message": getattr(error, "message", str(error)),
    }
    context: Optional[Dict[str, Any]] = getattr(error, "context", None)
    if context:
        payload["context"] = {k: _plain(v) for k, v in context.items()}
    return payload


def _plain(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return str(value)


__all__ = [
    "MLStageError",
    "InvalidParameter",
    "MissingRequiredParameter",
    "TypeMismatch",
    "SchemaError",
    "DimensionMismatch",
    "UnseenCategory",
    "InsufficientData",
    "StageFitError",
    "AmbiguousStageReference",
    "StageNotFound",
    "OperationCancelled",
    "TuningTrialError",
    "UnknownStageKind",
    "CorruptBundle",
    "PredictionError",
    "SessionClosed",
    "describe_error",
]
