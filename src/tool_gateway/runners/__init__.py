"""
Runner collaborators: capability execution and workflow engine access.
"""

from .base import (
    CapabilityOutcome,
    CapabilityRequest,
    CapabilityRunner,
    WorkflowHandle,
    WorkflowResultRunner,
    WorkflowRunner,
    WorkflowStartRequest,
)
from .engine import DEFAULT_CAPABILITY_WORKFLOW_TYPE, EngineCapabilityRunner
from .http import HttpWorkflowRunner
from .local import CapabilityHandler, LocalCapabilityRunner, echo_handler
from .memory import InMemoryWorkflowRunner, WorkflowRun

__all__ = [
    # Interfaces
    "CapabilityRunner",
    "WorkflowRunner",
    "WorkflowResultRunner",
    "CapabilityRequest",
    "CapabilityOutcome",
    "WorkflowStartRequest",
    "WorkflowHandle",
    # Implementations
    "CapabilityHandler",
    "LocalCapabilityRunner",
    "echo_handler",
    "InMemoryWorkflowRunner",
    "WorkflowRun",
    "HttpWorkflowRunner",
    "EngineCapabilityRunner",
    "DEFAULT_CAPABILITY_WORKFLOW_TYPE",
]
