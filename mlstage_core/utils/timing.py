"""Timing utilities.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import statistics
import threading
import time
from collections import deque
from typing import Any, Deque, Dict, Optional

logger = logging.getLogger(__name__)


class Timer:
    """Context manager for timing code blocks.

    Usage:
        with Timer("fit standard_scaler_ab12") as t:
            model = scaler.fit(ds)
        print(f"Took {t.elapsed_ms:.1f}ms")
    """

    def __init__(self, name: Optional[str] = None, log: bool = True):
        self.name = name
        self.log = log
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.end_time = time.perf_counter()

        if self.log and self.name and exc_type is None:
            logger.debug(f"{self.name} took {self.elapsed:.3f}s")

    @property
    def elapsed(self) -> float:
        """Elapsed time in seconds."""
        if self.start_time is None:
            return 0.0
        end = self.end_time or time.perf_counter()
        return end - self.start_time

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000


class LatencyStats:
    """Thread-safe call counters and a rolling latency window."""

    def __init__(self, window: int = 1000):
        self._lock = threading.Lock()
        self._durations: Deque[float] = deque(maxlen=window)
        self.count = 0
        self.errors = 0

    def record(self, duration_ms: float, failed: bool = False) -> None:
        with self._lock:
            self.count += 1
            if failed:
                self.errors += 1
            else:
                self._durations.append(duration_ms)

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            durations = list(self._durations)
            count, errors = self.count, self.errors

        return {
            "request_count": count,
            "error_count": errors,
            "avg_latency_ms": statistics.fmean(durations) if durations else 0.0,
            "median_latency_ms": statistics.median(durations) if durations else 0.0,
            "max_latency_ms": max(durations) if durations else 0.0,
        }


__all__ = ["Timer", "LatencyStats"]
