"""MLStage Session - Explicit Engine Context.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from mlstage_core.errors import InvalidParameter, SessionClosed
from mlstage_core.params.registry import StageRegistry, default_registry

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class SessionConfig:
    """Session configuration.

    Attributes:
        app_name: Label used in log messages
        parallelism: Worker pool size for tuning trials
        seed: Default fold-assignment seed
        num_folds: Default number of cross-validation folds
        log_level: Logging level applied by the CLI
    """

    app_name: str = "mlstage"
    parallelism: int = 4
    seed: int = 42
    num_folds: int = 3
    log_level: str = "INFO"

    def __post_init__(self):
        if not isinstance(self.parallelism, int) or self.parallelism < 1:
            raise InvalidParameter(
                "parallelism must be a positive integer", param="parallelism", value=self.parallelism
            )
        if not isinstance(self.num_folds, int) or self.num_folds < 2:
            raise InvalidParameter(
                "num_folds must be an integer >= 2", param="num_folds", value=self.num_folds
            )
        if not isinstance(self.seed, int):
            raise InvalidParameter("seed must be an integer", param="seed", value=self.seed)
        self.log_level = str(self.log_level).upper()
        if self.log_level not in _LOG_LEVELS:
            raise InvalidParameter(
                f"log_level must be one of {', '.join(_LOG_LEVELS)}",
                param="log_level", value=self.log_level,
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionConfig":
        """Build from a mapping; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidParameter(
                f"Unknown session settings: {', '.join(unknown)}", param=unknown[0]
            )
        return cls(**dict(data))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SessionConfig":
        """Load from a JSON file."""
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as err:
            raise InvalidParameter(f"Config file is not valid JSON: {err}", path=str(path)) from None
        if not isinstance(data, dict):
            raise InvalidParameter("Config file must hold a JSON object", path=str(path))
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Session:
    """Owns the resources shared by engine calls.

    A session holds the stage registry and a worker pool used for
    tuning trials. Every caller-API function takes the session first and
    refuses to run once it is closed.

    Usage:
        with Session(SessionConfig(parallelism=8)) as session:
            model = api.fit(session, pipeline, train)
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        registry: Optional[StageRegistry] = None,
    ):
        self.config = config or SessionConfig()
        self.registry = registry or default_registry
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> "Session":
        """Start the worker pool. Opening an open session is a no-op."""
        with self._lock:
            if self._open:
                return self
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.parallelism,
                thread_name_prefix=f"{self.config.app_name}-worker",
            )
            self._open = True

        logger.info(
            f"Session '{self.config.app_name}' opened "
            f"(parallelism={self.config.parallelism}, seed={self.config.seed})"
        )
        return self

    def close(self) -> None:
        """Shut down the worker pool, waiting for running work."""
        with self._lock:
            if not self._open:
                return
            executor, self._executor = self._executor, None
            self._open = False

        if executor is not None:
            executor.shutdown(wait=True)
        logger.info(f"Session '{self.config.app_name}' closed")

    def ensure_open(self) -> None:
        """Raise SessionClosed unless the session is open."""
        if not self._open:
            raise SessionClosed(f"Session '{self.config.app_name}' is not open")

    @property
    def executor(self) -> ThreadPoolExecutor:
        self.ensure_open()
        return self._executor

    def __enter__(self) -> "Session":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self._open else "closed"
        return f"Session(app_name={self.config.app_name!r}, {state})"


__all__ = ["Session", "SessionConfig"]
