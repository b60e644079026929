"""Model formulas.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Turns "label ~ a + b" style formulas into an ordinary Pipeline: string
terms are indexed and one-hot encoded, categorical terms are one-hot
encoded, numeric and vector terms go straight into the assembler.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List

from mlstage_core.data.schema import ColumnType, Schema
from mlstage_core.errors import InvalidParameter
from mlstage_core.pipeline.pipeline import Pipeline
from mlstage_core.stages.assembler import VectorAssembler
from mlstage_core.stages.base import Estimator, Stage
from mlstage_core.stages.encoder import OneHotEncoder
from mlstage_core.stages.indexer import StringIndexer

logger = logging.getLogger(__name__)

_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


@dataclass
class Formula:
    """A parsed formula.

    Attributes:
        label: Response column
        terms: Explicit predictor columns
        include_all: Whether '.' (all other columns) was used
        excluded: Columns removed with '- name'
    """

    label: str
    terms: List[str] = field(default_factory=list)
    include_all: bool = False
    excluded: List[str] = field(default_factory=list)

    def resolve(self, schema: Schema) -> List[str]:
        """Predictor columns, in formula (or schema) order."""
        if self.include_all:
            names = [n for n in schema.names if n != self.label]
            names += [t for t in self.terms if t not in names]
        else:
            names = list(self.terms)
        return [n for n in names if n not in self.excluded]


def parse_formula(formula: str) -> Formula:
    """Parse 'label ~ a + b', 'label ~ .' or 'label ~ . - c'."""
    if formula.count("~") != 1:
        raise InvalidParameter("Formula must contain exactly one '~'", param="formula", value=formula)

    lhs, rhs = (part.strip() for part in formula.split("~"))
    if not _NAME.match(lhs):
        raise InvalidParameter(f"Invalid response {lhs!r}", param="formula", value=formula)

    parsed = Formula(label=lhs)
    for sign, token in re.findall(r"([+-]?)\s*([^+\-\s]+)", rhs):
        if token == ".":
            if sign == "-":
                raise InvalidParameter("Cannot subtract '.'", param="formula", value=formula)
            parsed.include_all = True
        elif not _NAME.match(token):
            raise InvalidParameter(f"Invalid term {token!r}", param="formula", value=formula)
        elif sign == "-":
            parsed.excluded.append(token)
        elif token not in parsed.terms:
            parsed.terms.append(token)

    if not parsed.terms and not parsed.include_all:
        raise InvalidParameter("Formula has no predictors", param="formula", value=formula)
    return parsed


def formula_pipeline(
    formula: str,
    schema: Schema,
    estimator: Estimator,
    features_col: str = "features",
) -> Pipeline:
    """Build the feature pipeline for a formula, ending in the estimator.

    Args:
        formula: Formula string
        schema: Schema of the training data
        estimator: Estimator declaring `features_col` and `label_col` params
        features_col: Name of the assembled feature column

    Returns:
        Unfitted Pipeline
    """
    parsed = parse_formula(formula)
    declared = estimator.declared_params()
    if "features_col" not in declared or "label_col" not in declared:
        raise InvalidParameter(
            f"Estimator {estimator.kind} does not take features_col/label_col",
            stage_uid=estimator.uid, stage_kind=estimator.kind,
        )

    stages: List[Stage] = []
    assembled: List[str] = []

    for term in parsed.resolve(schema):
        field = schema.require(
            term,
            (ColumnType.NUMERIC, ColumnType.CATEGORICAL, ColumnType.STRING, ColumnType.VECTOR),
        )
        if field.dtype == ColumnType.STRING:
            stages.append(StringIndexer(input_col=term, output_col=f"{term}_idx"))
            stages.append(OneHotEncoder(input_col=f"{term}_idx", output_col=f"{term}_vec"))
            assembled.append(f"{term}_vec")
        elif field.dtype == ColumnType.CATEGORICAL:
            stages.append(OneHotEncoder(input_col=term, output_col=f"{term}_vec"))
            assembled.append(f"{term}_vec")
        else:
            assembled.append(term)

    if not assembled:
        raise InvalidParameter("Formula resolves to no predictors", param="formula", value=formula)

    label = schema.require(
        parsed.label, (ColumnType.NUMERIC, ColumnType.CATEGORICAL, ColumnType.STRING)
    )
    label_col = parsed.label
    if label.dtype == ColumnType.STRING:
        label_col = f"{parsed.label}_idx"
        stages.append(StringIndexer(input_col=parsed.label, output_col=label_col))

    stages.append(VectorAssembler(input_cols=assembled, output_col=features_col))
    stages.append(estimator.copy({"features_col": features_col, "label_col": label_col}))

    logger.info(f"Formula {formula!r}: {len(assembled)} predictor blocks, {len(stages)} stages")
    return Pipeline(stages)


__all__ = ["Formula", "parse_formula", "formula_pipeline"]
