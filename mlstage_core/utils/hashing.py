"""Content checksums for bundle entries.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import hashlib
import hmac
from enum import Enum
from typing import Union


class HashAlgorithm(Enum):
    """Checksum algorithms a bundle manifest may name."""

    SHA256 = "sha256"
    SHA512 = "sha512"
    BLAKE2B = "blake2b"


def compute_hash(
    data: Union[str, bytes],
    algorithm: HashAlgorithm = HashAlgorithm.SHA256,
) -> str:
    """Hex digest of raw bytes (strings are hashed as UTF-8)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.new(algorithm.value, data).hexdigest()


def verify_hash(
    data: Union[str, bytes],
    expected_hash: str,
    algorithm: HashAlgorithm = HashAlgorithm.SHA256,
) -> bool:
    """Check data against a recorded digest."""
    return hmac.compare_digest(compute_hash(data, algorithm), expected_hash)


__all__ = ["HashAlgorithm", "compute_hash", "verify_hash"]
