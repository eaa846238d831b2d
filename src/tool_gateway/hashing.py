"""
Hashing utilities for tool-gateway.

Execution ids for workflow starts are content-addressed so that the same
call delivered twice maps onto the same id at the workflow engine.
"""

from __future__ import annotations

from typing import Any

from blake3 import blake3

from .serialization import stable_json_dumps


def content_hash(obj: Any) -> str:
    """
    Generate a deterministic content hash for any JSON-serializable object.

    Uses blake3 over stable JSON serialization (consistent output
    regardless of dict key order).

    Returns:
        64-character hexadecimal hash
    """
    return blake3(stable_json_dumps(obj).encode("utf-8")).hexdigest()


def workflow_execution_id(tool_id: str, trace_id: str, args: Any, length: int = 24) -> str:
    """
    Derive the workflow execution id for a tool call.

    Args:
        tool_id: Manifest id of the workflow tool
        trace_id: Trace id the call runs under
        args: Validated call arguments
        length: Number of hex characters kept from the digest

    Returns:
        ``"<tool_id>-<hex digest prefix>"``
    """
    digest = content_hash({"tool": tool_id, "trace_id": trace_id, "args": args})
    return f"{tool_id}-{digest[:length]}"


__all__ = [
    "content_hash",
    "workflow_execution_id",
]
