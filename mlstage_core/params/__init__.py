"""Params module - Parameter schemas and the stage registry."""

from mlstage_core.params.param import (
    Param,
    ParamKind,
    ParamType,
    behavior_param,
    column_param,
    resolve_params,
)
from mlstage_core.params.registry import StageRegistry, default_registry, register_stage

__all__ = [
    "Param", "ParamKind", "ParamType",
    "behavior_param", "column_param", "resolve_params",
    "StageRegistry", "default_registry", "register_stage",
]
