"""
Capability runner that executes CAPABILITY tools on the workflow engine.

Each call starts one execution of a generic capability workflow with input
``{"capId": <tool id>, "args": <arguments>}``. Two behaviors:

- ``await``: wait for the execution's result and return it, with the run
  reference in ``meta``
- ``start``: return the run reference as the result without waiting
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from ..config import CallerDefaults
from ..config.base import CapabilityBehavior
from ..envelope import build_caller_memo
from ..hashing import workflow_execution_id
from .base import CapabilityOutcome, CapabilityRequest, WorkflowResultRunner, WorkflowStartRequest

logger = logging.getLogger(__name__)

DEFAULT_CAPABILITY_WORKFLOW_TYPE = "executeCapabilityWorkflow"

StatusUrlFactory = Callable[[str, str], str | None]


class EngineCapabilityRunner:
    """
    Example:
        ```python
        engine = HttpWorkflowRunner(settings.workflow.engine_url)
        runner = EngineCapabilityRunner(
            engine,
            behavior="await",
            task_queue=settings.workflow.task_queue,
            status_url=settings.workflow.status_url,
        )
        outcome = await runner.run(request)
        ```
    """

    def __init__(
        self,
        engine: WorkflowResultRunner,
        *,
        behavior: CapabilityBehavior = "await",
        workflow_type: str = DEFAULT_CAPABILITY_WORKFLOW_TYPE,
        task_queue: str | None = None,
        caller_defaults: CallerDefaults | None = None,
        status_url: StatusUrlFactory | None = None,
        result_timeout_seconds: float | None = None,
    ):
        if behavior not in ("await", "start"):
            raise ValueError(f"Invalid capability behavior: {behavior}")
        self.engine = engine
        self.behavior = behavior
        self.workflow_type = workflow_type
        self.task_queue = task_queue
        self.caller_defaults = caller_defaults or CallerDefaults()
        self.status_url = status_url
        self.result_timeout_seconds = result_timeout_seconds

    async def run(self, request: CapabilityRequest) -> CapabilityOutcome:
        handle = await self.engine.start(
            WorkflowStartRequest(
                workflow_type=self.workflow_type,
                workflow_id=workflow_execution_id(request.tool_id, request.trace_id, request.args),
                args={"capId": request.tool_id, "args": request.args},
                memo=build_caller_memo(request.context, request.trace_id, self.caller_defaults),
                task_queue=self.task_queue,
            )
        )

        ref: dict[str, Any] = handle.to_dict()
        if self.status_url is not None and (url := self.status_url(handle.workflow_id, handle.run_id)):
            ref["status_url"] = url

        if self.behavior == "start":
            logger.debug("Started capability %s as %s", request.tool_id, handle.workflow_id)
            return CapabilityOutcome(result=ref)

        result = await self.engine.result(
            handle.workflow_id,
            handle.run_id,
            timeout_seconds=self.result_timeout_seconds,
        )
        logger.debug("Capability %s completed on the engine as %s", request.tool_id, handle.workflow_id)
        return CapabilityOutcome(result=result, meta=ref)


__all__ = ["DEFAULT_CAPABILITY_WORKFLOW_TYPE", "EngineCapabilityRunner"]
