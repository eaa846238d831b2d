"""
Gateway-specific configuration sections.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import quote

from .base import CapabilityBehavior, CapabilityRunnerType, WorkflowBackendType

DATA_CLASSIFICATIONS = ("PUBLIC", "INTERNAL", "CONFIDENTIAL", "RESTRICTED")


@dataclass
class EnvelopeConfig:
    """Configuration for signed call envelopes."""

    secret: str | None = None
    require: bool = False

    def __post_init__(self):
        if self.secret is not None and not self.secret.strip():
            self.secret = None


@dataclass
class CallerDefaults:
    """Caller context fields used when a call carries no verified envelope."""

    initiator_id: str = "gateway:anonymous"
    roles: list[str] = field(default_factory=list)
    token_ref: str = ""
    app_id: str = "tool-gateway"
    environment: str = "local"
    cost_center: str | None = None
    data_classification: str | None = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.initiator_id.strip():
            raise ValueError("initiator_id cannot be empty")
        if self.data_classification is not None and self.data_classification not in DATA_CLASSIFICATIONS:
            raise ValueError(
                f"Invalid data classification: {self.data_classification}. Must be one of {DATA_CLASSIFICATIONS}"
            )


@dataclass
class WorkflowConfig:
    """Configuration for the workflow runner collaborator."""

    backend: WorkflowBackendType = "memory"

    # Engine HTTP API (backend="http")
    engine_url: str = "http://localhost:7243"
    namespace: str = "default"
    task_queue: str = "gateway-tools"
    timeout_seconds: float = 10.0

    # Base URL used to build status links; empty disables them
    ui_url: str = "http://localhost:8233"

    # Activity type the progress projector turns into steps
    progress_activity_type: str = "executeCapability"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.backend not in ("none", "memory", "http"):
            raise ValueError(f"Invalid workflow backend: {self.backend}")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.backend == "http" and not self.engine_url.startswith(("http://", "https://")):
            raise ValueError("engine_url must be a valid HTTP(S) URL")
        if not self.namespace:
            raise ValueError("namespace cannot be empty")

    def status_url(self, workflow_id: str, run_id: str) -> str | None:
        """Link to a run in the engine UI, or None when ``ui_url`` is empty."""
        base = self.ui_url.rstrip("/")
        if not base:
            return None
        ns = quote(self.namespace, safe="")
        return f"{base}/namespaces/{ns}/workflows/{quote(workflow_id, safe='')}/{quote(run_id, safe='')}"


@dataclass
class CapabilityConfig:
    """
    Configuration for the capability runner.

    ``runner="engine"`` runs CAPABILITY tools as engine executions of
    ``workflow_type``. With ``behavior="await"`` the call waits for the
    execution's result; with ``"start"`` it returns the run reference.
    """

    runner: CapabilityRunnerType = "local"
    behavior: CapabilityBehavior = "await"
    workflow_type: str = "executeCapabilityWorkflow"
    result_timeout_seconds: float = 300.0

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.runner not in ("local", "engine"):
            raise ValueError(f"Invalid capability runner: {self.runner}")
        if self.behavior not in ("await", "start"):
            raise ValueError(f"Invalid capability behavior: {self.behavior}")
        if not self.workflow_type:
            raise ValueError("workflow_type cannot be empty")
        if self.result_timeout_seconds <= 0:
            raise ValueError("result_timeout_seconds must be positive")


__all__ = ["DATA_CLASSIFICATIONS", "EnvelopeConfig", "CallerDefaults", "WorkflowConfig", "CapabilityConfig"]
