"""Bundle record codec.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Learned artifacts are written as tagged JSON records so that any reader
can decode them without this library:

    {"type": "tensor", "dtype": "float64", "shape": [3], "values": [...]}
    {"type": "string_list", "values": ["a", "b"]}
    {"type": "scalar", "dtype": "float64", "value": 0.25}

Non-finite floats are written as the strings "NaN", "Infinity" and
"-Infinity" so the output stays strict JSON.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, Mapping, Optional

import numpy as np

from mlstage_core.errors import CorruptBundle

logger = logging.getLogger(__name__)

_NON_FINITE = {"NaN": math.nan, "Infinity": math.inf, "-Infinity": -math.inf}


def encode_float(value: float) -> Any:
    """Float to JSON value; non-finite floats become tagged strings."""
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


def decode_float(value: Any) -> float:
    if isinstance(value, str):
        if value not in _NON_FINITE:
            raise CorruptBundle(f"Invalid float literal {value!r}", value=value)
        return _NON_FINITE[value]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CorruptBundle(f"Expected a number, got {type(value).__name__}", value=value)
    return float(value)


def encode_artifact(value: Any) -> Dict[str, Any]:
    """Encode one learned artifact as a tagged record."""
    if isinstance(value, np.ndarray):
        if value.dtype == object:
            raise TypeError("Ragged arrays cannot be stored as tensors")
        flat = value.astype(np.float64).reshape(-1)
        return {
            "type": "tensor",
            "dtype": "float64",
            "shape": list(value.shape),
            "values": [encode_float(v) for v in flat],
        }
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return {"type": "string_list", "values": list(value)}
    if isinstance(value, bool):
        return {"type": "scalar", "dtype": "bool", "value": value}
    if isinstance(value, (int, np.integer)):
        return {"type": "scalar", "dtype": "int64", "value": int(value)}
    if isinstance(value, (float, np.floating)):
        return {"type": "scalar", "dtype": "float64", "value": encode_float(value)}
    if isinstance(value, str):
        return {"type": "scalar", "dtype": "string", "value": value}
    raise TypeError(f"Cannot encode artifact of type {type(value).__name__}")


def decode_artifact(record: Any, name: str = "") -> Any:
    """Decode a tagged record written by `encode_artifact`."""
    if not isinstance(record, Mapping) or "type" not in record:
        raise CorruptBundle("Artifact record is not tagged", param=name)

    kind = record["type"]
    try:
        if kind == "tensor":
            shape = [int(d) for d in record["shape"]]
            values = [decode_float(v) for v in record["values"]]
            array = np.array(values, dtype=np.float64)
            if array.size != int(np.prod(shape, dtype=np.int64)):
                raise CorruptBundle(
                    f"Tensor has {array.size} values for shape {shape}", param=name
                )
            return array.reshape(shape)

        if kind == "string_list":
            values = record["values"]
            if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                raise CorruptBundle("string_list values must be strings", param=name)
            return list(values)

        if kind == "scalar":
            dtype, value = record["dtype"], record["value"]
            if dtype == "float64":
                return decode_float(value)
            if dtype == "int64" and isinstance(value, int) and not isinstance(value, bool):
                return value
            if dtype == "bool" and isinstance(value, bool):
                return value
            if dtype == "string" and isinstance(value, str):
                return value
            raise CorruptBundle(f"Invalid {dtype} scalar", param=name, value=value)

    except KeyError as err:
        raise CorruptBundle(f"Artifact record lacks {err}", param=name) from None
    except (TypeError, ValueError) as err:
        if isinstance(err, CorruptBundle):
            raise
        raise CorruptBundle(f"Malformed {kind} record: {err}", param=name) from None

    raise CorruptBundle(f"Unknown artifact type {kind!r}", param=name)


def encode_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    """Parameter map to JSON values; tuples become lists."""
    encoded: Dict[str, Any] = {}
    for name, value in params.items():
        if isinstance(value, tuple):
            value = list(value)
        elif isinstance(value, float):
            value = encode_float(value)
        encoded[name] = value
    return encoded


def decode_params(params: Mapping[str, Any], float_params: Optional[set] = None) -> Dict[str, Any]:
    """Inverse of `encode_params` for the given float-typed names."""
    float_params = float_params or set()
    return {
        name: decode_float(value) if name in float_params and value is not None else value
        for name, value in params.items()
    }


def dumps(document: Any) -> bytes:
    """Serialize a bundle document to UTF-8 JSON bytes."""
    return json.dumps(document, indent=2, sort_keys=False, allow_nan=False).encode("utf-8")


def loads(data: bytes, path: str) -> Dict[str, Any]:
    """Parse a bundle document; anything but a JSON object is corrupt."""
    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as err:
        raise CorruptBundle(f"Malformed JSON: {err}", path=path) from None
    if not isinstance(document, dict):
        raise CorruptBundle("Expected a JSON object", path=path)
    return document


__all__ = [
    "encode_float",
    "decode_float",
    "encode_artifact",
    "decode_artifact",
    "encode_params",
    "decode_params",
    "dumps",
    "loads",
]
