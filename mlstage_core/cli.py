"""MLStage CLI - Command Line Interface.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from mlstage_core.errors import MLStageError, SchemaError, describe_error
from mlstage_core.serialization.bundle import read_manifest
from mlstage_core.serving.scorer import ScoringRuntime
from mlstage_core.session import Session, SessionConfig

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_SCHEMA = 2


class CLI:
    """MLStage CLI.

    Commands:
    - stages: List registered stage kinds and their parameters
    - inspect: Summarize a saved bundle
    - score: Score JSON input with a saved bundle
    """

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="mlstage",
            description="MLStage - pipeline fitting, tuning and model bundles",
        )
        self.parser.add_argument("--config", type=str, help="Session config file (JSON)")
        self.parser.add_argument(
            "--log-level",
            type=str,
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            help="Override the configured log level",
        )
        self._setup_parsers()

    def _setup_parsers(self):
        """Setup command parsers."""
        subparsers = self.parser.add_subparsers(dest="command", help="Commands")

        stages_parser = subparsers.add_parser("stages", help="List stage kinds")
        stages_parser.add_argument("kind", nargs="?", help="Show one kind in detail")

        inspect_parser = subparsers.add_parser("inspect", help="Summarize a bundle")
        inspect_parser.add_argument("bundle", help="Bundle directory or .zip")

        score_parser = subparsers.add_parser("score", help="Score records with a bundle")
        score_parser.add_argument("bundle", help="Bundle directory or .zip")
        score_parser.add_argument(
            "--input", type=str, required=True,
            help="JSON file of records or field arrays ('-' for stdin)",
        )
        score_parser.add_argument("--output-column", type=str, help="Only emit this column")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run CLI command."""
        parsed = self.parser.parse_args(args)

        try:
            config = SessionConfig.from_file(parsed.config) if parsed.config else SessionConfig()
        except (OSError, MLStageError) as e:
            print(f"Invalid config: {e}", file=sys.stderr)
            return EXIT_ERROR

        logging.basicConfig(level=parsed.log_level or config.log_level)

        if not parsed.command:
            self.parser.print_help()
            return EXIT_OK

        try:
            with Session(config) as session:
                if parsed.command == "stages":
                    return self._handle_stages(session, parsed)
                elif parsed.command == "inspect":
                    return self._handle_inspect(parsed)
                elif parsed.command == "score":
                    return self._handle_score(session, parsed)
                else:
                    self.parser.print_help()
                    return EXIT_ERROR
        except SchemaError as e:
            logger.error(f"Schema error: {e}")
            self._print_json(describe_error(e), stream=sys.stderr)
            return EXIT_SCHEMA
        except (MLStageError, OSError, ValueError) as e:
            logger.error(f"Error: {e}")
            self._print_json(describe_error(e), stream=sys.stderr)
            return EXIT_ERROR

    def _handle_stages(self, session: Session, args) -> int:
        """Handle stages command."""
        if args.kind:
            self._print_json(session.registry.describe(args.kind))
            return EXIT_OK

        for kind in session.registry.kinds():
            info = session.registry.describe(kind)
            names = ", ".join(p["name"] for p in info["params"]) or "-"
            print(f"{kind:24s} {'/'.join(info['capabilities']):22s} {names}")
        return EXIT_OK

    def _handle_inspect(self, args) -> int:
        """Handle inspect command."""
        manifest = read_manifest(args.bundle)
        self._print_json({
            "format_version": manifest.format_version,
            "producer": manifest.producer,
            "created_at": manifest.created_at,
            "root_kind": manifest.root_kind,
            "root_uid": manifest.root_uid,
            "stage_order": manifest.stage_order,
            "files": len(manifest.checksums) + 1,
        })
        return EXIT_OK

    def _handle_score(self, session: Session, args) -> int:
        """Handle score command."""
        payload = self._read_input(args.input)
        runtime = ScoringRuntime.from_bundle(args.bundle, registry=session.registry)

        if isinstance(payload, list):
            result = runtime.score_records(payload)
        elif isinstance(payload, dict):
            result = runtime.score_columns(payload)
        else:
            raise SchemaError("Input must be a list of records or an object of field arrays")

        if args.output_column:
            self._print_json({args.output_column: result.column(args.output_column)})
        else:
            self._print_json(result.dataset.to_records())

        logger.info(f"Scored {result.dataset.num_rows} rows in {result.latency_ms:.1f}ms")
        return EXIT_OK

    @staticmethod
    def _read_input(source: str) -> Any:
        text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise SchemaError(f"Input is not valid JSON: {e}") from None

    @staticmethod
    def _print_json(data: Any, stream=None) -> None:
        print(json.dumps(data, indent=2), file=stream or sys.stdout)


def main():
    """CLI entry point."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
