"""
Error taxonomy for tool-gateway.

This module provides:
- Wire-level error codes surfaced to callers
- A gateway exception hierarchy carrying HTTP-like status codes
- Structured context for debugging

Exceptions raised by runners are never sent to callers as-is; they are
normalized by :mod:`tool_gateway.normalizer` first. The ``status_code``
carried by the classes below is what the normalizer keys on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes resolved locally by the gateway."""

    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    UNAUTHORIZED = "UNAUTHORIZED"
    APPROVAL_REQUIRED = "APPROVAL_REQUIRED"
    SCHEMA_INVALID = "SCHEMA_INVALID"


class JsonRpcErrorCode(int, Enum):
    """JSON-RPC 2.0 protocol error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


@dataclass
class ErrorContext:
    """Structured context for error debugging."""

    trace_id: str | None = None
    tool: str | None = None
    workflow_id: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "trace_id": self.trace_id,
            "tool": self.tool,
            "workflow_id": self.workflow_id,
            "operation": self.operation,
            **self.extra,
        }
        return {k: v for k, v in data.items() if v is not None}


class GatewayError(Exception):
    """
    Base exception for all gateway errors.

    Attributes:
        message: Human-readable error message
        status_code: HTTP-like status code, if the failure has one
        context: Structured debugging context
        cause: Original exception that caused this error
    """

    status_code: int | None = None

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.context = context or ErrorContext()
        self.cause = cause

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"[{self.status_code}] {self.message}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# Startup Errors
# =============================================================================


class ConfigError(GatewayError):
    """Gateway configuration is invalid or incomplete."""


class ManifestError(GatewayError):
    """Tool manifest could not be loaded or is malformed."""


# =============================================================================
# Envelope Errors
# =============================================================================


class EnvelopeError(GatewayError):
    """A call envelope is missing or failed verification."""

    status_code = 401

    def __init__(self, reason: str, message: str | None = None, **kwargs):
        super().__init__(message or f"Envelope rejected: {reason}", **kwargs)
        self.reason = reason


# =============================================================================
# Runner Errors
# =============================================================================


class RunnerError(GatewayError):
    """Base class for failures reported by runner collaborators."""


class RunnerNotConfiguredError(RunnerError):
    """No runner is configured for the tool's execution kind."""

    def __init__(self, kind: str, **kwargs):
        super().__init__(f"No {kind.lower()} runner configured", **kwargs)
        self.kind = kind


class RunnerUnavailableError(RunnerError):
    """The runner backend could not be reached."""

    status_code = 503

    def __init__(self, message: str = "Runner backend unavailable", **kwargs):
        super().__init__(message, **kwargs)


class CapabilityNotFoundError(RunnerError):
    """No capability handler is registered for a tool id."""

    status_code = 404

    def __init__(self, tool_id: str, **kwargs):
        super().__init__(f"Capability not registered: {tool_id}", **kwargs)
        self.tool_id = tool_id


class WorkflowNotFoundError(RunnerError):
    """The workflow engine does not know the workflow id."""

    status_code = 404

    def __init__(self, workflow_id: str, **kwargs):
        super().__init__(f"Workflow not found: {workflow_id}", **kwargs)
        self.workflow_id = workflow_id


class WorkflowAlreadyStartedError(RunnerError):
    """The workflow engine rejected a start for an existing workflow id."""

    status_code = 409

    def __init__(self, workflow_id: str, **kwargs):
        super().__init__(f"Workflow already started: {workflow_id}", **kwargs)
        self.workflow_id = workflow_id


class WorkflowFailedError(RunnerError):
    """A workflow closed without a result (failed, timed out, canceled or terminated)."""

    def __init__(self, workflow_id: str, status: str, message: str | None = None, **kwargs):
        if status in ("TIMED_OUT", "RUNNING"):
            kwargs.setdefault("status_code", 504)
        super().__init__(message or f"Workflow {workflow_id} closed with status {status}", **kwargs)
        self.workflow_id = workflow_id
        self.close_status = status


__all__ = [
    "ErrorCode",
    "JsonRpcErrorCode",
    "ErrorContext",
    "GatewayError",
    "ConfigError",
    "ManifestError",
    "EnvelopeError",
    "RunnerError",
    "RunnerNotConfiguredError",
    "RunnerUnavailableError",
    "CapabilityNotFoundError",
    "WorkflowNotFoundError",
    "WorkflowAlreadyStartedError",
    "WorkflowFailedError",
]
