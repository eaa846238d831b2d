"""
Tool Gateway - manifest-backed tool invocation over JSON-RPC.

This package exposes a catalog of typed tools to callers over a
newline-delimited JSON-RPC transport (stdio):
- Signed call envelopes for caller identity
- Argument validation against each tool's JSON Schema
- Approval gating by data classification
- Dispatch to an in-process capability runner or a durable workflow engine
- Normalized, retry-relevant error categories
- Step progress projected from workflow event history

Example:
    ```python
    from tool_gateway import GatewayRuntime, Settings, ToolCallRequest

    runtime = GatewayRuntime.from_settings(Settings.from_env(), manifest_path="manifest.json")
    async with runtime:
        result = await runtime.router.call_tool(ToolCallRequest("demo.echo", {"x": 1}))
        print(result.structured_content)
    ```
"""

__version__ = "0.1.0"

from .approval import ApprovalDecision, ApprovalGate, requires_approval
from .config import Settings, load_env
from .dispatch import DispatchRouter, ToolCallRequest, ToolCallResult
from .envelope import CallEnvelope, CallerContext, EnvelopeAuthenticator, sign_envelope, verify_envelope
from .errors import (
    CapabilityNotFoundError,
    ConfigError,
    EnvelopeError,
    ErrorCode,
    GatewayError,
    ManifestError,
    RunnerError,
    RunnerNotConfiguredError,
    RunnerUnavailableError,
    WorkflowAlreadyStartedError,
    WorkflowNotFoundError,
)
from .ledger import UsageEvent, UsageLedger, UsageRecord
from .logging import StructuredLogger, configure_logging, get_logger
from .manifest import DataClassification, ToolDescriptor, ToolKind, ToolManifest
from .normalizer import ErrorCategory, ErrorMapRegistry, NormalizedError, normalize_error
from .progress import (
    StepProgress,
    StepStatus,
    WorkflowEvent,
    WorkflowEventType,
    WorkflowProgress,
    decode_history,
    project_progress,
)
from .runners import (
    CapabilityOutcome,
    CapabilityRequest,
    CapabilityRunner,
    HttpWorkflowRunner,
    InMemoryWorkflowRunner,
    LocalCapabilityRunner,
    WorkflowHandle,
    WorkflowRunner,
    WorkflowStartRequest,
)
from .runtime import GatewayRuntime
from .server import JsonRpcHandler, serve, serve_stdio
from .validation import SchemaValidator, ValidationResult

__all__ = [
    "__version__",
    # Manifest & validation
    "ToolKind",
    "DataClassification",
    "ToolDescriptor",
    "ToolManifest",
    "SchemaValidator",
    "ValidationResult",
    # Envelopes & approval
    "CallerContext",
    "CallEnvelope",
    "EnvelopeAuthenticator",
    "sign_envelope",
    "verify_envelope",
    "ApprovalGate",
    "ApprovalDecision",
    "requires_approval",
    # Errors
    "ErrorCode",
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
    "ErrorCategory",
    "NormalizedError",
    "ErrorMapRegistry",
    "normalize_error",
    # Dispatch
    "DispatchRouter",
    "ToolCallRequest",
    "ToolCallResult",
    # Runners
    "CapabilityRunner",
    "WorkflowRunner",
    "CapabilityRequest",
    "CapabilityOutcome",
    "WorkflowStartRequest",
    "WorkflowHandle",
    "LocalCapabilityRunner",
    "InMemoryWorkflowRunner",
    "HttpWorkflowRunner",
    # Progress
    "WorkflowEventType",
    "WorkflowEvent",
    "StepStatus",
    "StepProgress",
    "WorkflowProgress",
    "project_progress",
    "decode_history",
    # Ledger
    "UsageEvent",
    "UsageRecord",
    "UsageLedger",
    # Runtime & transport
    "GatewayRuntime",
    "JsonRpcHandler",
    "serve",
    "serve_stdio",
    # Config & logging
    "Settings",
    "load_env",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]
