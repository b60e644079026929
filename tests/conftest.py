"""Shared fixtures.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import numpy as np
import pytest

from mlstage_core import Session, SessionConfig
from mlstage_core.data import Dataset
from mlstage_core.stages import (
    LogisticRegression,
    OneHotEncoder,
    StandardScaler,
    StringIndexer,
    VectorAssembler,
)
from mlstage_core.pipeline import Pipeline


def make_survival_data(n: int = 1000, seed: int = 0) -> Dataset:
    """Synthetic passengers: survival depends strongly on sex, weakly on age."""
    rng = np.random.default_rng(seed)
    female = rng.random(n) < 0.5
    age = np.clip(rng.normal(35.0, 12.0, n), 1.0, 80.0)
    logit = 3.0 * female - 1.5 + 0.08 * (30.0 - age)
    label = (rng.random(n) < 1.0 / (1.0 + np.exp(-logit))).astype(float)

    return Dataset.from_columns({
        "sex": ["female" if f else "male" for f in female],
        "age": age,
        "label": label,
    })


def make_survival_pipeline() -> Pipeline:
    return Pipeline([
        StringIndexer(input_col="sex", output_col="sex_idx"),
        OneHotEncoder(input_col="sex_idx", output_col="sex_vec"),
        VectorAssembler(input_cols=["age", "sex_vec"], output_col="raw_features"),
        StandardScaler(input_col="raw_features", output_col="features", with_mean=True),
        LogisticRegression(max_iter=500),
    ])


@pytest.fixture
def survival_data():
    return make_survival_data()


@pytest.fixture
def survival_pipeline():
    return make_survival_pipeline()


@pytest.fixture
def session():
    with Session(SessionConfig(app_name="tests", parallelism=2, seed=7)) as s:
        yield s


@pytest.fixture
def small_data():
    return Dataset.from_records([
        {"cat": "a", "x": 1.0, "v": [1.0, 2.0]},
        {"cat": "a", "x": 2.0, "v": [2.0, 4.0]},
        {"cat": "b", "x": 3.0, "v": [3.0, 1.0]},
        {"cat": "c", "x": 4.0, "v": [4.0, 3.0]},
        {"cat": "c", "x": 5.0, "v": [5.0, 5.0]},
        {"cat": "c", "x": 6.0, "v": [6.0, 0.0]},
    ])
