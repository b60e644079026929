"""Parameter value validators.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Each validator is a closure taking a value and returning an error
message, or None when the value is acceptable.
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence, Union

Validator = Callable[[Any], Optional[str]]


def gt(minimum: Union[int, float]) -> Validator:
    """Value must be > minimum."""
    def check(value):
        if value is not None and not value > minimum:
            return f"must be > {minimum}"
        return None
    return check


def gt_eq(minimum: Union[int, float]) -> Validator:
    """Value must be >= minimum."""
    def check(value):
        if value is not None and value < minimum:
            return f"must be >= {minimum}"
        return None
    return check


def in_range(
    minimum: Union[int, float],
    maximum: Union[int, float],
) -> Validator:
    """Value must be within [minimum, maximum]."""
    def check(value):
        if value is not None and not minimum <= value <= maximum:
            return f"must be in range [{minimum}, {maximum}]"
        return None
    return check


def one_of(choices: Sequence[Any]) -> Validator:
    """Value must be one of the choices."""
    choices = list(choices)

    def check(value):
        if value is not None and value not in choices:
            return f"must be one of {choices}"
        return None
    return check


def non_empty() -> Validator:
    """Value must have at least one element."""
    def check(value):
        if value is not None and len(value) == 0:
            return "must not be empty"
        return None
    return check


def distinct() -> Validator:
    """Sequence values must not repeat."""
    def check(value):
        if value is not None and len(set(value)) != len(value):
            return "must not contain duplicates"
        return None
    return check


def run_validators(validators: Sequence[Validator], value: Any) -> List[str]:
    """Run validators and collect error messages."""
    errors = []
    for validator in validators:
        error = validator(value)
        if error:
            errors.append(error)
    return errors


__all__ = [
    "Validator",
    "gt",
    "gt_eq",
    "in_range",
    "one_of",
    "non_empty",
    "distinct",
    "run_validators",
]
