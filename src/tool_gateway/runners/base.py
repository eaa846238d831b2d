"""
Runner collaborator interfaces.

The dispatch router talks to two collaborators:

- a capability runner, which executes a tool and returns its result
- a workflow runner, which starts durable executions on an external engine,
  reads their event history and terminates them

Both are structural protocols so embedding code can supply its own.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..envelope import CallerContext
from ..progress import WorkflowEvent


@dataclass(frozen=True)
class CapabilityRequest:
    """What a capability runner receives for one call."""

    tool_id: str
    args: Mapping[str, Any]
    trace_id: str
    context: CallerContext


@dataclass
class CapabilityOutcome:
    """A capability result plus optional runner metadata."""

    result: Any
    meta: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"result": self.result}
        if self.meta:
            data["meta"] = self.meta
        return data


@dataclass(frozen=True)
class WorkflowStartRequest:
    workflow_type: str
    workflow_id: str
    args: Mapping[str, Any]
    memo: Mapping[str, Any] = field(default_factory=dict)
    task_queue: str | None = None


@dataclass(frozen=True)
class WorkflowHandle:
    """Acknowledgment of a workflow start."""

    workflow_id: str
    run_id: str

    def to_dict(self) -> dict[str, str]:
        return {"workflow_id": self.workflow_id, "run_id": self.run_id}


@runtime_checkable
class CapabilityRunner(Protocol):
    async def run(self, request: CapabilityRequest) -> CapabilityOutcome: ...


@runtime_checkable
class WorkflowRunner(Protocol):
    async def start(self, request: WorkflowStartRequest) -> WorkflowHandle: ...

    async def history(self, workflow_id: str) -> list[WorkflowEvent]: ...

    async def terminate(self, workflow_id: str, reason: str | None = None) -> None: ...

    async def open(self) -> None: ...

    async def close(self) -> None: ...


@runtime_checkable
class WorkflowResultRunner(WorkflowRunner, Protocol):
    """A workflow runner that can also wait for a run's result."""

    async def result(
        self,
        workflow_id: str,
        run_id: str | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> Any: ...


__all__ = [
    "CapabilityRequest",
    "CapabilityOutcome",
    "WorkflowStartRequest",
    "WorkflowHandle",
    "CapabilityRunner",
    "WorkflowRunner",
    "WorkflowResultRunner",
]
