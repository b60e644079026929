"""MLStage Param - Typed Stage Parameters.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from mlstage_core.errors import InvalidParameter, MissingRequiredParameter, TypeMismatch
from mlstage_core.params.validators import Validator, run_validators

logger = logging.getLogger(__name__)


class ParamKind(Enum):
    """Parameter kinds.

    Column parameters name input/output columns and drive schema checks.
    Behavior parameters change what a stage computes and are tunable.
    """

    COLUMN = "column"
    BEHAVIOR = "behavior"


class ParamType(Enum):
    """Parameter value types."""

    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    STRING = "string"
    STRING_LIST = "string_list"


@dataclass(frozen=True)
class Param:
    """A declared stage parameter.

    Attributes:
        name: Parameter name
        ptype: Value type
        default: Default value (None means unset)
        kind: Column or behavior parameter
        required: Must be supplied explicitly
        doc: Short description
        validators: Value validators
    """

    name: str
    ptype: ParamType
    default: Any = None
    kind: ParamKind = ParamKind.BEHAVIOR
    required: bool = False
    doc: str = ""
    validators: Tuple[Validator, ...] = ()

    @property
    def is_column(self) -> bool:
        return self.kind == ParamKind.COLUMN

    def check(self, value: Any, stage_kind: Optional[str] = None) -> Any:
        """Type-check, coerce and validate a value.

        Args:
            value: Candidate value
            stage_kind: Owning stage kind, for error context

        Returns:
            The coerced value

        Raises:
            MissingRequiredParameter: None given for a required parameter
            TypeMismatch: Value has the wrong type
            InvalidParameter: Value fails a validator
        """
        if value is None:
            if self.required:
                raise MissingRequiredParameter(
                    f"Parameter '{self.name}' is required",
                    param=self.name, stage_kind=stage_kind,
                )
            if self.default is not None:
                raise TypeMismatch(
                    f"Parameter '{self.name}' cannot be None",
                    param=self.name, stage_kind=stage_kind,
                )
            return None

        coerced = self._coerce(value, stage_kind)

        errors = run_validators(self.validators, coerced)
        if errors:
            raise InvalidParameter(
                f"Parameter '{self.name}' {errors[0]}",
                param=self.name, stage_kind=stage_kind, value=value,
            )
        return coerced

    def _coerce(self, value: Any, stage_kind: Optional[str]) -> Any:
        is_bool = isinstance(value, (bool, np.bool_))

        if self.ptype == ParamType.BOOL and is_bool:
            return bool(value)
        if self.ptype == ParamType.INT and not is_bool and isinstance(value, (int, np.integer)):
            return int(value)
        if (
            self.ptype == ParamType.FLOAT
            and not is_bool
            and isinstance(value, (int, float, np.integer, np.floating))
        ):
            return float(value)
        if self.ptype == ParamType.STRING and isinstance(value, str):
            return value
        if (
            self.ptype == ParamType.STRING_LIST
            and isinstance(value, (list, tuple))
            and all(isinstance(v, str) for v in value)
        ):
            return tuple(value)

        raise TypeMismatch(
            f"Parameter '{self.name}' expects {self.ptype.value}, "
            f"got {type(value).__name__}",
            param=self.name, stage_kind=stage_kind, value=value,
        )

    def describe(self) -> Dict[str, Any]:
        default = list(self.default) if isinstance(self.default, tuple) else self.default
        return {
            "name": self.name,
            "type": self.ptype.value,
            "kind": self.kind.value,
            "default": default,
            "required": self.required,
            "doc": self.doc,
        }


def column_param(
    name: str,
    default: Any = None,
    required: bool = False,
    doc: str = "",
    ptype: ParamType = ParamType.STRING,
    validators: Sequence[Validator] = (),
) -> Param:
    """Declare a column-name parameter."""
    return Param(
        name=name,
        ptype=ptype,
        default=default,
        kind=ParamKind.COLUMN,
        required=required,
        doc=doc,
        validators=tuple(validators),
    )


def behavior_param(
    name: str,
    ptype: ParamType,
    default: Any = None,
    doc: str = "",
    validators: Sequence[Validator] = (),
    required: bool = False,
) -> Param:
    """Declare a behavior parameter."""
    return Param(
        name=name,
        ptype=ptype,
        default=default,
        kind=ParamKind.BEHAVIOR,
        required=required,
        doc=doc,
        validators=tuple(validators),
    )


def resolve_params(
    stage_kind: str,
    declared: Mapping[str, Param],
    config: Mapping[str, Any],
) -> Dict[str, Any]:
    """Validate a configuration against a parameter schema.

    Omitted parameters take their declared defaults.

    Args:
        stage_kind: Stage kind, for error context
        declared: Parameter schema
        config: Supplied parameter values

    Returns:
        Complete parameter map in declaration order
    """
    unknown = [name for name in config if name not in declared]
    if unknown:
        raise InvalidParameter(
            f"Unknown parameter '{unknown[0]}'; valid parameters are "
            f"{', '.join(declared)}",
            param=unknown[0], stage_kind=stage_kind,
        )

    resolved: Dict[str, Any] = {}
    for name, param in declared.items():
        if name in config:
            resolved[name] = param.check(config[name], stage_kind)
        elif param.required:
            raise MissingRequiredParameter(
                f"Parameter '{name}' is required",
                param=name, stage_kind=stage_kind,
            )
        else:
            resolved[name] = param.default

    return resolved


__all__ = [
    "Param",
    "ParamKind",
    "ParamType",
    "column_param",
    "behavior_param",
    "resolve_params",
]
