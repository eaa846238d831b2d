"""
Deterministic JSON serialization helpers for signing, hashing and the wire.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any


def canonicalize(obj: Any) -> Any:
    """
    Convert objects into JSON-friendly, deterministic structures.
    """
    if isinstance(obj, dict):
        return {str(k): canonicalize(obj[k]) for k in sorted(obj, key=str)}
    if isinstance(obj, (list, tuple)):
        return [canonicalize(v) for v in obj]
    if isinstance(obj, (set, frozenset)):
        return sorted(canonicalize(v) for v in obj)
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "to_dict") and callable(obj.to_dict):
        return canonicalize(obj.to_dict())
    return obj


def stable_json_dumps(obj: Any) -> str:
    """
    Dump an object to JSON with stable ordering for signing and hashing.

    Non-ASCII characters are kept as-is so the canonical form matches what
    other issuers produce with a plain ``JSON.stringify`` of sorted keys.
    """
    return json.dumps(
        canonicalize(obj),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def compact_json_dumps(obj: Any) -> str:
    """
    Serialize a protocol message to a single line.

    ``json.dumps`` escapes control characters, so the output never contains
    an embedded newline. Non-finite floats raise ``ValueError``.
    """
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def _default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    if hasattr(obj, "to_dict") and callable(obj.to_dict):
        return obj.to_dict()
    return str(obj)


def _null_constant(name: str) -> None:
    return None


def json_safe(obj: Any) -> Any:
    """
    Round-trip through JSON, converting values JSON cannot represent.

    NaN and infinities become ``None``.
    """
    return json.loads(json.dumps(obj, default=_default), parse_constant=_null_constant)


__all__ = [
    "canonicalize",
    "stable_json_dumps",
    "compact_json_dumps",
    "json_safe",
]
