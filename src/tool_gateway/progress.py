"""
Execution progress projection.

This module provides:
- WorkflowEvent: one entry of a workflow's append-only event history
- project_progress: a pure fold of that history into per-step progress
- decode_history: turns raw engine history JSON into WorkflowEvents

Projection Rules
----------------
Only activities of the designated capability activity type become steps.
The scheduling event's sequence id is the step's permanent identity; its
capId and nodeId are read from the first scheduled input and never change.

Later events reference a step by its scheduling sequence id. References to
unknown steps are dropped. Once a step is completed or failed it stays that
way: a real execution never un-fails or un-completes.

The fold orders events by sequence id first, so shuffling events of
different steps never changes any step's final status, and projecting the
same history twice gives identical output.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

DEFAULT_ACTIVITY_TYPE = "executeCapability"
UNKNOWN_CAPABILITY = "unknown.capability"


class WorkflowEventType(str, Enum):
    """History event types the projector understands."""

    # Activity lifecycle
    SCHEDULED = "SCHEDULED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    CANCELED = "CANCELED"

    # Execution lifecycle (ignored by the projector)
    WORKFLOW_STARTED = "WORKFLOW_STARTED"
    WORKFLOW_TERMINATED = "WORKFLOW_TERMINATED"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED)


_TRANSITIONS = {
    WorkflowEventType.STARTED: StepStatus.RUNNING,
    WorkflowEventType.COMPLETED: StepStatus.COMPLETED,
    WorkflowEventType.FAILED: StepStatus.FAILED,
    WorkflowEventType.TIMED_OUT: StepStatus.FAILED,
    WorkflowEventType.CANCELED: StepStatus.FAILED,
}


@dataclass(frozen=True)
class WorkflowEvent:
    """
    One history event.

    SCHEDULED events carry ``activity_type``, ``activity_id`` and the
    decoded first input as ``payload``. Other activity events carry
    ``scheduled_seq``, the sequence id of the SCHEDULED event they refer to.
    """

    seq: int
    event_type: WorkflowEventType
    activity_type: str | None = None
    activity_id: str | None = None
    scheduled_seq: int | None = None
    payload: Any = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"seq": self.seq, "event_type": self.event_type.value}
        if self.activity_type is not None:
            data["activity_type"] = self.activity_type
        if self.activity_id is not None:
            data["activity_id"] = self.activity_id
        if self.scheduled_seq is not None:
            data["scheduled_seq"] = self.scheduled_seq
        if self.payload is not None:
            data["payload"] = self.payload
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorkflowEvent:
        return cls(
            seq=int(data["seq"]),
            event_type=WorkflowEventType(data["event_type"]),
            activity_type=data.get("activity_type"),
            activity_id=data.get("activity_id"),
            scheduled_seq=int(data["scheduled_seq"]) if data.get("scheduled_seq") is not None else None,
            payload=data.get("payload"),
        )


@dataclass
class StepProgress:
    seq: int
    activity_id: str
    cap_id: str
    status: StepStatus = StepStatus.PENDING
    node_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "seq": self.seq,
            "activityId": self.activity_id,
            "capId": self.cap_id,
            "status": self.status.value,
        }
        if self.node_id is not None:
            data["nodeId"] = self.node_id
        return data


@dataclass
class WorkflowProgress:
    steps: list[StepProgress]

    def to_dict(self) -> dict[str, Any]:
        return {"steps": [step.to_dict() for step in self.steps]}


def _non_empty_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _step_from_scheduled(event: WorkflowEvent) -> StepProgress:
    payload = event.payload if isinstance(event.payload, Mapping) else {}
    correlation = payload.get("correlation")
    node_id = _non_empty_str(correlation.get("nodeId")) if isinstance(correlation, Mapping) else None
    return StepProgress(
        seq=event.seq,
        activity_id=_non_empty_str(event.activity_id) or f"activity-{event.seq}",
        cap_id=_non_empty_str(payload.get("capId")) or UNKNOWN_CAPABILITY,
        node_id=node_id,
    )


def project_progress(
    events: Iterable[WorkflowEvent],
    activity_type: str = DEFAULT_ACTIVITY_TYPE,
) -> WorkflowProgress:
    """
    Fold a workflow history into step progress.

    Args:
        events: History events, in any order
        activity_type: Activity type that counts as a capability step

    Returns:
        WorkflowProgress with steps sorted by sequence id
    """
    steps: dict[int, StepProgress] = {}

    for event in sorted(events, key=lambda e: e.seq):
        if event.event_type is WorkflowEventType.SCHEDULED:
            if event.activity_type == activity_type and event.seq not in steps:
                steps[event.seq] = _step_from_scheduled(event)
            continue

        target = _TRANSITIONS.get(event.event_type)
        if target is None or event.scheduled_seq is None:
            continue
        step = steps.get(event.scheduled_seq)
        if step is None or step.status.is_terminal:
            continue
        step.status = target

    return WorkflowProgress(steps=[steps[seq] for seq in sorted(steps)])


# =============================================================================
# Engine history decoding
# =============================================================================

_ACTIVITY_KINDS = {
    "SCHEDULED": WorkflowEventType.SCHEDULED,
    "STARTED": WorkflowEventType.STARTED,
    "COMPLETED": WorkflowEventType.COMPLETED,
    "FAILED": WorkflowEventType.FAILED,
    "TIMED_OUT": WorkflowEventType.TIMED_OUT,
    "CANCELED": WorkflowEventType.CANCELED,
}

_EXECUTION_KINDS = {
    "STARTED": WorkflowEventType.WORKFLOW_STARTED,
    "TERMINATED": WorkflowEventType.WORKFLOW_TERMINATED,
}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_kind(camel: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", camel).upper()


def _camel_kind(kind: str) -> str:
    return "".join(part.capitalize() for part in kind.split("_"))


def _parse_event_type(raw: str) -> tuple[str, str] | None:
    """Return ``("activity"|"execution", KIND)`` for supported event types."""
    if raw.startswith("EVENT_TYPE_ACTIVITY_TASK_"):
        return "activity", raw[len("EVENT_TYPE_ACTIVITY_TASK_") :]
    if raw.startswith("EVENT_TYPE_WORKFLOW_EXECUTION_"):
        return "execution", raw[len("EVENT_TYPE_WORKFLOW_EXECUTION_") :]
    if raw.startswith("ActivityTask"):
        return "activity", _snake_kind(raw[len("ActivityTask") :])
    if raw.startswith("WorkflowExecution"):
        return "execution", _snake_kind(raw[len("WorkflowExecution") :])
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


def _b64_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None


def decode_payload(payload: Any) -> Any:
    """Decode one ``json/plain`` engine payload, or return None."""
    if not isinstance(payload, Mapping):
        return None
    metadata = payload.get("metadata")
    encoding = _b64_text(metadata.get("encoding")) if isinstance(metadata, Mapping) else None
    if encoding != "json/plain":
        return None
    text = _b64_text(payload.get("data"))
    if text is None:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _first_input(attrs: Mapping[str, Any]) -> Any:
    raw = attrs.get("input")
    if isinstance(raw, Mapping):
        raw = raw.get("payloads")
    if isinstance(raw, list) and raw:
        return decode_payload(raw[0])
    return None


def decode_history_event(raw: Any) -> WorkflowEvent | None:
    """
    Decode one raw engine history event.

    Returns None for events the projector has no use for, or that are
    missing an event id.
    """
    if not isinstance(raw, Mapping):
        return None
    seq = _as_int(raw.get("eventId"))
    event_type = raw.get("eventType")
    if seq is None or not isinstance(event_type, str):
        return None

    parsed = _parse_event_type(event_type)
    if parsed is None:
        return None
    family, kind = parsed

    if family == "execution":
        mapped = _EXECUTION_KINDS.get(kind)
        return WorkflowEvent(seq=seq, event_type=mapped) if mapped else None

    mapped = _ACTIVITY_KINDS.get(kind)
    if mapped is None:
        return None
    attrs = raw.get(f"activityTask{_camel_kind(kind)}EventAttributes")
    if not isinstance(attrs, Mapping):
        attrs = {}

    if mapped is WorkflowEventType.SCHEDULED:
        activity_type = attrs.get("activityType")
        name = activity_type.get("name") if isinstance(activity_type, Mapping) else None
        return WorkflowEvent(
            seq=seq,
            event_type=mapped,
            activity_type=name if isinstance(name, str) else None,
            activity_id=_non_empty_str(attrs.get("activityId")),
            payload=_first_input(attrs),
        )

    return WorkflowEvent(
        seq=seq,
        event_type=mapped,
        scheduled_seq=_as_int(attrs.get("scheduledEventId")),
    )


def decode_history(raw: Any) -> list[WorkflowEvent]:
    """
    Decode an engine history document.

    Accepts a list of events, ``{"events": [...]}`` or
    ``{"history": {"events": [...]}}``.
    """
    if isinstance(raw, Mapping):
        if isinstance(raw.get("history"), Mapping):
            raw = raw["history"]
        raw = raw.get("events")
    if not isinstance(raw, list):
        return []
    events = (decode_history_event(item) for item in raw)
    return [event for event in events if event is not None]


def encode_payload(value: Any) -> dict[str, Any]:
    """Encode a value the way the engine stores ``json/plain`` payloads."""
    return {
        "metadata": {"encoding": base64.b64encode(b"json/plain").decode("ascii")},
        "data": base64.b64encode(json.dumps(value).encode("utf-8")).decode("ascii"),
    }


__all__ = [
    "DEFAULT_ACTIVITY_TYPE",
    "UNKNOWN_CAPABILITY",
    "WorkflowEventType",
    "StepStatus",
    "WorkflowEvent",
    "StepProgress",
    "WorkflowProgress",
    "project_progress",
    "decode_payload",
    "decode_history_event",
    "decode_history",
    "encode_payload",
]
