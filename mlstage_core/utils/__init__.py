"""Utilities - Cancellation, hashing and timing."""

from mlstage_core.utils.cancellation import CancellationToken, check_cancelled
from mlstage_core.utils.hashing import HashAlgorithm, compute_hash, verify_hash
from mlstage_core.utils.timing import LatencyStats, Timer

__all__ = [
    "CancellationToken",
    "check_cancelled",
    "HashAlgorithm",
    "compute_hash",
    "verify_hash",
    "Timer",
    "LatencyStats",
]
