"""Tests for CLI.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import json

import pytest

from mlstage_core.cli import CLI, EXIT_ERROR, EXIT_OK, EXIT_SCHEMA
from mlstage_core.serialization import save_bundle


def _json_tail(text):
    """Parse the JSON document printed after any log lines."""
    return json.loads(text[text.index("{"):])


@pytest.fixture
def bundle(tmp_path, survival_data, survival_pipeline):
    return save_bundle(survival_pipeline.fit(survival_data), tmp_path / "model.zip")


class TestCLI:
    """Test CLI commands."""

    def test_stages(self, capsys):
        """Test listing stage kinds."""
        assert CLI().run(["stages"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "logistic_regression" in out
        assert "vector_assembler" in out

    def test_stage_detail(self, capsys):
        """Test describing one kind."""
        assert CLI().run(["stages", "standard_scaler"]) == EXIT_OK
        info = json.loads(capsys.readouterr().out)
        assert info["kind"] == "standard_scaler"
        assert "with_mean" in [p["name"] for p in info["params"]]

    def test_unknown_stage(self, capsys):
        """Test describing an unknown kind."""
        assert CLI().run(["stages", "random_forest"]) == EXIT_ERROR
        error = _json_tail(capsys.readouterr().err)
        assert error["error"] == "UnknownStageKind"

    def test_inspect(self, bundle, capsys):
        """Test summarizing a bundle."""
        assert CLI().run(["inspect", str(bundle)]) == EXIT_OK
        info = json.loads(capsys.readouterr().out)
        assert info["root_kind"] == "pipeline_model"
        assert len(info["stage_order"]) == 5

    def test_score(self, bundle, tmp_path, capsys):
        """Test scoring a file of records."""
        records = tmp_path / "records.json"
        records.write_text(json.dumps([
            {"sex": "female", "age": 20.0},
            {"sex": "male", "age": 60.0},
        ]))

        code = CLI().run(["score", str(bundle), "--input", str(records), "--output-column", "prediction"])
        assert code == EXIT_OK
        assert json.loads(capsys.readouterr().out) == {"prediction": [1.0, 0.0]}

    def test_score_columns(self, bundle, tmp_path, capsys):
        """Test scoring field arrays."""
        fields = tmp_path / "fields.json"
        fields.write_text(json.dumps({"sex": ["male"], "age": [60.0]}))

        assert CLI().run(["score", str(bundle), "--input", str(fields)]) == EXIT_OK
        rows = json.loads(capsys.readouterr().out)
        assert rows[0]["prediction"] == 0.0
        assert rows[0]["sex"] == "male"

    def test_score_schema_error(self, bundle, tmp_path, capsys):
        """Test missing fields exit with the schema status."""
        records = tmp_path / "records.json"
        records.write_text(json.dumps([{"sex": "female"}]))

        assert CLI().run(["score", str(bundle), "--input", str(records)]) == EXIT_SCHEMA
        error = _json_tail(capsys.readouterr().err)
        assert error["error"] == "SchemaError"
        assert error["context"]["column"] == "age"

    def test_invalid_config(self, tmp_path, capsys):
        """Test a bad config file."""
        config = tmp_path / "session.json"
        config.write_text(json.dumps({"parallelism": 0}))

        assert CLI().run(["--config", str(config), "stages"]) == EXIT_ERROR
        assert "Invalid config" in capsys.readouterr().err
