"""
In-memory workflow engine double.

Suitable for local runs and tests. It never executes anything: it records
starts, keeps a per-workflow event history that collaborators (or tests)
append to, and honors terminate requests.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from ..errors import WorkflowAlreadyStartedError, WorkflowNotFoundError
from ..progress import WorkflowEvent, WorkflowEventType
from .base import WorkflowHandle, WorkflowStartRequest

logger = logging.getLogger(__name__)


@dataclass
class WorkflowRun:
    workflow_id: str
    run_id: str
    workflow_type: str
    args: dict[str, Any]
    memo: dict[str, Any]
    task_queue: str | None = None
    status: str = "running"
    events: list[WorkflowEvent] = field(default_factory=list)

    @property
    def next_seq(self) -> int:
        return self.events[-1].seq + 1 if self.events else 1


class InMemoryWorkflowRunner:
    """
    Example:
        ```python
        runner = InMemoryWorkflowRunner()
        handle = await runner.start(WorkflowStartRequest("deploy", "deploy-1", {}))
        scheduled = await runner.append_event(
            handle.workflow_id,
            WorkflowEventType.SCHEDULED,
            activity_type="executeCapability",
            payload={"capId": "cap.one"},
        )
        await runner.append_event(handle.workflow_id, WorkflowEventType.STARTED, scheduled_seq=scheduled.seq)
        ```
    """

    def __init__(self) -> None:
        self._runs: dict[str, WorkflowRun] = {}
        self._lock = asyncio.Lock()
        self.start_calls: list[WorkflowStartRequest] = []

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    def get_run(self, workflow_id: str) -> WorkflowRun | None:
        return self._runs.get(workflow_id)

    async def start(self, request: WorkflowStartRequest) -> WorkflowHandle:
        async with self._lock:
            self.start_calls.append(request)
            if request.workflow_id in self._runs:
                raise WorkflowAlreadyStartedError(request.workflow_id)
            run = WorkflowRun(
                workflow_id=request.workflow_id,
                run_id=str(uuid.uuid4()),
                workflow_type=request.workflow_type,
                args=dict(request.args),
                memo=dict(request.memo),
                task_queue=request.task_queue,
            )
            run.events.append(WorkflowEvent(seq=1, event_type=WorkflowEventType.WORKFLOW_STARTED))
            self._runs[request.workflow_id] = run

        logger.info("Started workflow %s (%s) run %s", run.workflow_id, run.workflow_type, run.run_id)
        return WorkflowHandle(workflow_id=run.workflow_id, run_id=run.run_id)

    async def history(self, workflow_id: str) -> list[WorkflowEvent]:
        async with self._lock:
            run = self._runs.get(workflow_id)
            if run is None:
                raise WorkflowNotFoundError(workflow_id)
            return list(run.events)

    async def append_event(
        self,
        workflow_id: str,
        event_type: WorkflowEventType,
        **fields: Any,
    ) -> WorkflowEvent:
        """Append an event with the next sequence id and return it."""
        async with self._lock:
            run = self._runs.get(workflow_id)
            if run is None:
                raise WorkflowNotFoundError(workflow_id)
            event = WorkflowEvent(seq=run.next_seq, event_type=event_type, **fields)
            run.events.append(event)
            return event

    async def terminate(self, workflow_id: str, reason: str | None = None) -> None:
        async with self._lock:
            run = self._runs.get(workflow_id)
            if run is None:
                raise WorkflowNotFoundError(workflow_id)
            if run.status == "terminated":
                return
            run.status = "terminated"
            run.events.append(
                WorkflowEvent(
                    seq=run.next_seq,
                    event_type=WorkflowEventType.WORKFLOW_TERMINATED,
                    payload={"reason": reason} if reason else None,
                )
            )
        logger.info("Terminated workflow %s%s", workflow_id, f": {reason}" if reason else "")


__all__ = ["WorkflowRun", "InMemoryWorkflowRunner"]
