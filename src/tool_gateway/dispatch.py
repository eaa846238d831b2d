"""
Dispatch router.

Turns one ``tools/call`` request into one :class:`ToolCallResult`. The
checks run in a fixed order and every rejection is resolved locally,
before any runner is touched:

1. Unknown tool            -> UNKNOWN_TOOL
2. Caller context          -> UNAUTHORIZED
3. Argument schema         -> SCHEMA_INVALID
4. Approval gate           -> APPROVAL_REQUIRED
5. Capability run or workflow start

Runner failures are normalized; no exception escapes ``call_tool``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .approval import ApprovalGate
from .config import CallerDefaults, WorkflowConfig
from .envelope import CallerContext, EnvelopeAuthenticator, build_caller_memo
from .errors import EnvelopeError, ErrorCode, RunnerNotConfiguredError
from .hashing import workflow_execution_id
from .ledger import UsageEvent, UsageLedger
from .logging import StructuredLogger, ToolCallLog, generate_trace_id, get_logger, timed
from .manifest import ToolDescriptor, ToolKind, ToolManifest
from .normalizer import ErrorMapRegistry, NormalizedError, normalize_error
from .progress import project_progress
from .runners.base import (
    CapabilityRequest,
    CapabilityRunner,
    WorkflowRunner,
    WorkflowStartRequest,
)
from .serialization import compact_json_dumps, json_safe
from .validation import SchemaValidator


@dataclass
class ToolCallRequest:
    name: str
    arguments: Any = None
    meta: Mapping[str, Any] | None = None


@dataclass
class ToolCallResult:
    """
    Outcome of one call.

    ``structured_content`` always carries ``trace_id``.
    """

    is_error: bool
    structured_content: dict[str, Any] = field(default_factory=dict)

    @property
    def trace_id(self) -> str | None:
        return self.structured_content.get("trace_id")

    @property
    def error(self) -> str | None:
        return self.structured_content.get("error") if self.is_error else None

    @classmethod
    def success(cls, content: dict[str, Any]) -> ToolCallResult:
        return cls(is_error=False, structured_content=content)

    @classmethod
    def failure(cls, content: dict[str, Any]) -> ToolCallResult:
        return cls(is_error=True, structured_content=content)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": [{"type": "text", "text": compact_json_dumps(self.structured_content)}],
            "structuredContent": self.structured_content,
            "isError": self.is_error,
        }


class DispatchRouter:
    """
    Routes validated, authorized calls to the capability or workflow runner.

    Example:
        ```python
        router = DispatchRouter(
            manifest,
            authenticator=EnvelopeAuthenticator(settings.envelope, settings.caller),
            capability_runner=LocalCapabilityRunner(error_maps),
            workflow_runner=InMemoryWorkflowRunner(),
            error_maps=error_maps,
        )
        result = await router.call_tool(ToolCallRequest("demo.echo", {"x": 1}))
        ```
    """

    def __init__(
        self,
        manifest: ToolManifest,
        *,
        authenticator: EnvelopeAuthenticator,
        capability_runner: CapabilityRunner | None = None,
        workflow_runner: WorkflowRunner | None = None,
        error_maps: ErrorMapRegistry | None = None,
        ledger: UsageLedger | None = None,
        approval_gate: ApprovalGate | None = None,
        workflow_config: WorkflowConfig | None = None,
        caller_defaults: CallerDefaults | None = None,
        logger: StructuredLogger | None = None,
    ):
        self.manifest = manifest
        self.authenticator = authenticator
        self.capability_runner = capability_runner
        self.workflow_runner = workflow_runner
        self.error_maps = error_maps or ErrorMapRegistry()
        self.ledger = ledger
        self.approval_gate = approval_gate or ApprovalGate()
        self.workflow_config = workflow_config or WorkflowConfig()
        self.caller_defaults = caller_defaults or CallerDefaults()
        self.validator = SchemaValidator(manifest)
        self._logger = logger or get_logger()

    def list_tools(self) -> list[ToolDescriptor]:
        return self.manifest.list_tools()

    # ------------------------------------------------------------------
    # tools/call
    # ------------------------------------------------------------------

    async def call_tool(self, request: ToolCallRequest) -> ToolCallResult:
        trace_id = generate_trace_id()

        tool = self.manifest.get(request.name)
        if tool is None:
            self._log_rejection(request.name, trace_id, ErrorCode.UNKNOWN_TOOL)
            return ToolCallResult.failure(
                {"error": ErrorCode.UNKNOWN_TOOL.value, "tool": request.name, "trace_id": trace_id}
            )

        try:
            context = self.authenticator.resolve(request.meta, trace_id)
        except EnvelopeError as e:
            self._log_rejection(tool.id, trace_id, ErrorCode.UNAUTHORIZED, details=e.reason)
            return ToolCallResult.failure(
                {"error": ErrorCode.UNAUTHORIZED.value, "trace_id": trace_id, "details": e.reason}
            )
        trace_id = context.trace_id or trace_id

        args = request.arguments if request.arguments is not None else {}
        validation = self.validator.validate(tool.id, args)
        if not validation:
            self._log_rejection(tool.id, trace_id, ErrorCode.SCHEMA_INVALID, details=validation.summary)
            return ToolCallResult.failure(
                {
                    "error": ErrorCode.SCHEMA_INVALID.value,
                    "tool": tool.id,
                    "trace_id": trace_id,
                    "details": validation.details,
                }
            )

        decision = self.approval_gate.evaluate(tool)
        if not decision.allowed:
            self._log_rejection(tool.id, trace_id, ErrorCode.APPROVAL_REQUIRED)
            return ToolCallResult.failure(
                {
                    "error": ErrorCode.APPROVAL_REQUIRED.value,
                    "tool": tool.id,
                    "data_classification": decision.data_classification,
                    "trace_id": trace_id,
                }
            )

        return await self._execute(tool, args, context, trace_id)

    async def _execute(
        self,
        tool: ToolDescriptor,
        args: Any,
        context: CallerContext,
        trace_id: str,
    ) -> ToolCallResult:
        workflow_id: str | None = None
        normalized: NormalizedError | None = None
        result: ToolCallResult

        with timed() as timer:
            try:
                if tool.kind is ToolKind.WORKFLOW:
                    workflow_id = workflow_execution_id(tool.id, trace_id, args)
                    result = await self._start_workflow(tool, args, context, trace_id, workflow_id)
                else:
                    result = await self._run_capability(tool, args, context, trace_id)
            except Exception as e:
                normalized = self.error_maps.normalize(tool.id, e)
                self._logger.warning(
                    "Runner failed",
                    trace_id=trace_id,
                    tool=tool.id,
                    error_type=type(e).__name__,
                    **_log_fields(normalized),
                )
                result = ToolCallResult.failure(self._failure_content(normalized, trace_id, tool=tool.id))

        self._logger.log_tool_call(
            ToolCallLog(
                tool=tool.id,
                trace_id=trace_id,
                kind=tool.kind.value,
                duration_ms=timer.elapsed_ms,
                success=not result.is_error,
                error=normalized.message if normalized else None,
                category=normalized.category.value if normalized else None,
                workflow_id=workflow_id,
            )
        )
        if self.ledger is not None:
            await self.ledger.record(
                UsageEvent(
                    tool=tool.id,
                    kind=tool.kind.value,
                    trace_id=trace_id,
                    budget_key=context.budget_key,
                    success=not result.is_error,
                    duration_ms=timer.elapsed_ms,
                    category=normalized.category.value if normalized else None,
                    workflow_id=workflow_id,
                )
            )
        return result

    async def _run_capability(
        self,
        tool: ToolDescriptor,
        args: Any,
        context: CallerContext,
        trace_id: str,
    ) -> ToolCallResult:
        if self.capability_runner is None:
            raise RunnerNotConfiguredError(ToolKind.CAPABILITY.value)

        outcome = await self.capability_runner.run(
            CapabilityRequest(tool_id=tool.id, args=args, trace_id=trace_id, context=context)
        )
        content: dict[str, Any] = {"trace_id": trace_id, "result": json_safe(outcome.result)}
        if outcome.meta:
            content["meta"] = json_safe(outcome.meta)
        return ToolCallResult.success(content)

    async def _start_workflow(
        self,
        tool: ToolDescriptor,
        args: Any,
        context: CallerContext,
        trace_id: str,
        workflow_id: str,
    ) -> ToolCallResult:
        if self.workflow_runner is None:
            raise RunnerNotConfiguredError(ToolKind.WORKFLOW.value)

        handle = await self.workflow_runner.start(
            WorkflowStartRequest(
                workflow_type=tool.effective_workflow_type,
                workflow_id=workflow_id,
                args=args,
                memo=self._build_memo(context, trace_id),
                task_queue=self.workflow_config.task_queue,
            )
        )
        content: dict[str, Any] = {
            "trace_id": trace_id,
            "workflow_id": handle.workflow_id,
            "run_id": handle.run_id,
        }
        status_url = self._status_url(handle.workflow_id, handle.run_id)
        if status_url:
            content["status_url"] = status_url
        return ToolCallResult.success(content)

    def _build_memo(self, context: CallerContext, trace_id: str) -> dict[str, Any]:
        return build_caller_memo(context, trace_id, self.caller_defaults)

    def _status_url(self, workflow_id: str, run_id: str) -> str | None:
        return self.workflow_config.status_url(workflow_id, run_id)

    # ------------------------------------------------------------------
    # Workflow progress and cancellation
    # ------------------------------------------------------------------

    async def workflow_progress(self, workflow_id: str, meta: Mapping[str, Any] | None = None) -> ToolCallResult:
        """Read a workflow's history and project step progress."""
        trace_id = generate_trace_id()
        try:
            context = self.authenticator.resolve(meta, trace_id)
        except EnvelopeError as e:
            return self._unauthorized(trace_id, e, workflow_id=workflow_id)
        trace_id = context.trace_id or trace_id

        with self._logger.trace_context(trace_id, extra={"workflow_id": workflow_id}):
            try:
                if self.workflow_runner is None:
                    raise RunnerNotConfiguredError(ToolKind.WORKFLOW.value)
                events = await self.workflow_runner.history(workflow_id)
            except Exception as e:
                normalized = normalize_error(e)
                self._logger.warning("Workflow history read failed", **_log_fields(normalized))
                return ToolCallResult.failure(self._failure_content(normalized, trace_id, workflow_id=workflow_id))

            progress = project_progress(events, self.workflow_config.progress_activity_type)
            self._logger.debug("Projected workflow progress", steps=len(progress.steps), events=len(events))

        return ToolCallResult.success({"trace_id": trace_id, "workflow_id": workflow_id, **progress.to_dict()})

    async def cancel_workflow(
        self,
        workflow_id: str,
        reason: str | None = None,
        meta: Mapping[str, Any] | None = None,
    ) -> ToolCallResult:
        """Ask the workflow engine to terminate a run."""
        trace_id = generate_trace_id()
        try:
            context = self.authenticator.resolve(meta, trace_id)
        except EnvelopeError as e:
            return self._unauthorized(trace_id, e, workflow_id=workflow_id)
        trace_id = context.trace_id or trace_id

        with self._logger.trace_context(trace_id, initiator_id=context.initiator_id, extra={"workflow_id": workflow_id}):
            try:
                if self.workflow_runner is None:
                    raise RunnerNotConfiguredError(ToolKind.WORKFLOW.value)
                await self.workflow_runner.terminate(workflow_id, reason)
            except Exception as e:
                normalized = normalize_error(e)
                self._logger.warning("Workflow terminate failed", **_log_fields(normalized))
                return ToolCallResult.failure(self._failure_content(normalized, trace_id, workflow_id=workflow_id))

            self._logger.info("Workflow terminated", reason=reason)

        return ToolCallResult.success({"trace_id": trace_id, "workflow_id": workflow_id, "status": "terminated"})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _failure_content(normalized: NormalizedError, trace_id: str, **ids: str) -> dict[str, Any]:
        content: dict[str, Any] = {
            "error": normalized.message,
            "category": normalized.category.value,
            "retryable": normalized.retryable,
            **ids,
            "trace_id": trace_id,
        }
        if normalized.original_code is not None:
            content["original_code"] = normalized.original_code
        return content

    def _unauthorized(self, trace_id: str, error: EnvelopeError, **ids: str) -> ToolCallResult:
        self._logger.warning("Call rejected", trace_id=trace_id, error=ErrorCode.UNAUTHORIZED.value, details=error.reason, **ids)
        return ToolCallResult.failure(
            {"error": ErrorCode.UNAUTHORIZED.value, **ids, "trace_id": trace_id, "details": error.reason}
        )

    def _log_rejection(self, tool: str, trace_id: str, code: ErrorCode, details: str | None = None) -> None:
        self._logger.log_tool_call(
            ToolCallLog(
                tool=tool,
                trace_id=trace_id,
                success=False,
                error=code.value if details is None else f"{code.value}: {details}",
            )
        )


def _log_fields(normalized: NormalizedError) -> dict[str, Any]:
    fields = normalized.to_dict()
    fields["error"] = fields.pop("message")
    return fields


__all__ = ["ToolCallRequest", "ToolCallResult", "DispatchRouter"]
