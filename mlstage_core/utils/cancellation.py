"""Cooperative cancellation.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from mlstage_core.errors import OperationCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Flag checked between pipeline stages and tuning trials.

    A token created with a parent also reports the parent's cancellation,
    so a tuning run can abort its own trials without touching the
    caller's token.

    Usage:
        token = CancellationToken()
        threading.Timer(30, token.cancel).start()
        model = pipeline.fit(dataset, cancel_token=token)
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = threading.Event()
        self._reason: Optional[str] = None
        self._parent = parent

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Request cancellation."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()
            logger.info(f"Cancellation requested: {reason}")

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def reason(self) -> Optional[str]:
        if self._event.is_set():
            return self._reason
        return self._parent.reason if self._parent is not None else None

    def raise_if_cancelled(self, where: str) -> None:
        """Raise OperationCancelled if cancellation was requested."""
        if self.cancelled:
            raise OperationCancelled(f"Operation cancelled at {where}: {self.reason}")


def check_cancelled(token: Optional[CancellationToken], where: str) -> None:
    """raise_if_cancelled for an optional token."""
    if token is not None:
        token.raise_if_cancelled(where)


__all__ = ["CancellationToken", "check_cancelled"]
