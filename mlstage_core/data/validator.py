"""MLStage RecordValidator - Request Record Validation.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from mlstage_core.data.schema import ColumnType
from mlstage_core.errors import SchemaError

logger = logging.getLogger(__name__)


class ValidationLevel(Enum):
    ERROR = auto()
    WARNING = auto()


@dataclass
class ValidationIssue:
    """A validation issue."""

    column: str
    issue_type: str
    message: str
    level: ValidationLevel = ValidationLevel.ERROR
    row_indices: List[int] = field(default_factory=list)


@dataclass
class ValidationResult:
    """Result of record validation."""

    valid: bool = True
    issues: List[ValidationIssue] = field(default_factory=list)

    def add(self, issue: ValidationIssue) -> None:
        self.issues.append(issue)
        if issue.level == ValidationLevel.ERROR:
            self.valid = False

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.level == ValidationLevel.ERROR]

    def raise_for_errors(self) -> None:
        """Raise SchemaError describing the first error, if any."""
        errors = self.errors
        if not errors:
            return
        missing = sorted({i.column for i in errors if i.issue_type == "missing"})
        if missing:
            raise SchemaError(
                f"Request is missing required fields: {', '.join(missing)}",
                column=missing[0],
            )
        first = errors[0]
        raise SchemaError(first.message, column=first.column, row=first.row_indices[0])


class RecordValidator:
    """Checks request records against the columns a model requires.

    Only presence and coarse type are checked; value-level problems are
    left to the stages themselves.
    """

    def __init__(self, required: Mapping[str, Optional[ColumnType]]):
        self.required: Dict[str, Optional[ColumnType]] = dict(required)

    def validate(self, records: Sequence[Mapping[str, Any]]) -> ValidationResult:
        """Validate row dictionaries."""
        result = ValidationResult()

        for name, dtype in self.required.items():
            absent = [i for i, r in enumerate(records) if name not in r]
            if absent:
                result.add(ValidationIssue(
                    column=name,
                    issue_type="missing",
                    message=f"Field '{name}' is missing",
                    row_indices=absent,
                ))
                continue

            bad = [
                i for i, r in enumerate(records)
                if not _matches(r[name], dtype)
            ]
            if bad:
                result.add(ValidationIssue(
                    column=name,
                    issue_type="type",
                    message=f"Field '{name}' expects {dtype.value} values",
                    row_indices=bad,
                ))

        return result

    def validate_columns(self, fields: Mapping[str, Sequence[Any]]) -> ValidationResult:
        """Validate named field arrays."""
        result = ValidationResult()
        lengths = {len(v) for v in fields.values()}

        if len(lengths) > 1:
            result.add(ValidationIssue(
                column=next(iter(fields)),
                issue_type="length",
                message=f"Field arrays have different lengths: {sorted(lengths)}",
                row_indices=[0],
            ))
            return result

        for name in self.required:
            if name not in fields:
                result.add(ValidationIssue(
                    column=name,
                    issue_type="missing",
                    message=f"Field '{name}' is missing",
                ))

        return result


def _matches(value: Any, dtype: Optional[ColumnType]) -> bool:
    if value is None or dtype is None:
        return True
    if dtype in (ColumnType.NUMERIC, ColumnType.CATEGORICAL):
        return isinstance(value, (int, float, np.number)) and not isinstance(value, str)
    if dtype == ColumnType.STRING:
        return isinstance(value, str)
    if dtype == ColumnType.VECTOR:
        return isinstance(value, (list, tuple, np.ndarray))
    return True


__all__ = ["RecordValidator", "ValidationResult", "ValidationIssue", "ValidationLevel"]
