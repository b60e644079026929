"""MLStage Registry - Stage Kind Registry.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Type

from mlstage_core.errors import InvalidParameter, UnknownStageKind

if TYPE_CHECKING:
    from mlstage_core.stages.base import Stage

logger = logging.getLogger(__name__)


class StageRegistry:
    """Maps stage kind identifiers to stage classes.

    Used to construct stages from configuration and to resolve kind
    identifiers when bundles are loaded.

    Example:
        registry = StageRegistry()
        registry.register(StandardScaler)
        scaler = registry.build("standard_scaler", {"input_col": "x", "output_col": "y"})
    """

    def __init__(self):
        self._stages: Dict[str, Type["Stage"]] = {}
        self._lock = threading.RLock()

    def register(self, cls: Type["Stage"]) -> Type["Stage"]:
        """Register a stage class under its kind identifier.

        Args:
            cls: Stage class with a `kind` attribute

        Returns:
            The class, so this can be used as a decorator
        """
        kind = getattr(cls, "kind", None)
        if not kind:
            raise ValueError(f"{cls.__name__} does not declare a kind")

        with self._lock:
            existing = self._stages.get(kind)
            if existing is not None and existing is not cls:
                raise ValueError(f"Stage kind '{kind}' is already registered")
            self._stages[kind] = cls

        logger.debug(f"Registered stage kind '{kind}'")
        return cls

    def get(self, kind: str) -> Type["Stage"]:
        """Get the class registered for a kind.

        Raises:
            UnknownStageKind: If the kind is not registered
        """
        with self._lock:
            cls = self._stages.get(kind)
        if cls is None:
            raise UnknownStageKind(f"Stage kind '{kind}' is not registered", kind=kind)
        return cls

    def build(
        self,
        kind: str,
        config: Optional[Mapping[str, Any]] = None,
        uid: Optional[str] = None,
    ) -> "Stage":
        """Construct a validated stage from its kind and configuration.

        Raises:
            UnknownStageKind: If the kind is not registered
            InvalidParameter: If the configuration names an unknown parameter,
                including `uid`, which is passed separately
        """
        cls = self.get(kind)
        config = dict(config or {})
        for name in config:
            if not isinstance(name, str) or name == "uid":
                raise InvalidParameter(
                    f"Invalid parameter name {name!r}", param=str(name), stage_kind=kind
                )
        return cls(uid=uid, **config)

    def kinds(self) -> List[str]:
        with self._lock:
            return sorted(self._stages)

    def describe(self, kind: str) -> Dict[str, Any]:
        """Describe a kind's capabilities and parameter schema."""
        cls = self.get(kind)
        return {
            "kind": kind,
            "class": cls.__name__,
            "capabilities": cls.capabilities(),
            "params": [p.describe() for p in cls.declared_params().values()],
        }

    def __contains__(self, kind: object) -> bool:
        with self._lock:
            return kind in self._stages


default_registry = StageRegistry()


def register_stage(cls: Type["Stage"]) -> Type["Stage"]:
    """Class decorator registering a stage with the default registry."""
    return default_registry.register(cls)


__all__ = ["StageRegistry", "default_registry", "register_stage"]
