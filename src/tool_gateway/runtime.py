"""
Gateway runtime: builds the gateway from settings and owns its resources.
"""

from __future__ import annotations

from pathlib import Path

from .approval import ApprovalGate
from .config import Settings
from .dispatch import DispatchRouter
from .envelope import EnvelopeAuthenticator
from .errors import ConfigError
from .ledger import UsageLedger
from .logging import StructuredLogger, get_logger
from .manifest import ToolManifest
from .normalizer import ErrorMapRegistry
from .runners import (
    CapabilityRunner,
    EngineCapabilityRunner,
    HttpWorkflowRunner,
    InMemoryWorkflowRunner,
    LocalCapabilityRunner,
    WorkflowResultRunner,
    WorkflowRunner,
)
from .server import JsonRpcHandler, serve_stdio


def build_workflow_runner(settings: Settings) -> WorkflowRunner | None:
    workflow = settings.workflow
    if workflow.backend == "none":
        return None
    if workflow.backend == "http":
        return HttpWorkflowRunner(
            workflow.engine_url,
            namespace=workflow.namespace,
            task_queue=workflow.task_queue,
            timeout_seconds=workflow.timeout_seconds,
        )
    return InMemoryWorkflowRunner()


def build_capability_runner(settings: Settings, workflow_runner: WorkflowRunner | None) -> CapabilityRunner | None:
    """
    Build the engine-backed capability runner when configured.

    Returns None for the in-process runner, which the runtime builds itself.

    Raises:
        ConfigError: If the engine runner is selected but the workflow
            runner cannot wait for results
    """
    capability = settings.capability
    if capability.runner != "engine":
        return None
    if not isinstance(workflow_runner, WorkflowResultRunner):
        raise ConfigError("Capability runner 'engine' needs a workflow runner that can wait for results")
    return EngineCapabilityRunner(
        workflow_runner,
        behavior=capability.behavior,
        workflow_type=capability.workflow_type,
        task_queue=settings.workflow.task_queue,
        caller_defaults=settings.caller,
        status_url=settings.workflow.status_url,
        result_timeout_seconds=capability.result_timeout_seconds,
    )


class GatewayRuntime:
    """
    Composes settings, manifest, runners, ledger, router and transport.

    The workflow runner is an explicit resource: ``open()`` acquires it and
    ``close()`` releases it. Use as ``async with`` to get both.

    Example:
        ```python
        runtime = GatewayRuntime.from_settings(Settings.from_env())
        async with runtime:
            await runtime.serve_stdio()
        ```
    """

    def __init__(
        self,
        settings: Settings,
        manifest: ToolManifest,
        *,
        capability_runner: CapabilityRunner | None = None,
        workflow_runner: WorkflowRunner | None = None,
        error_maps: ErrorMapRegistry | None = None,
        ledger: UsageLedger | None = None,
        logger: StructuredLogger | None = None,
    ):
        self.settings = settings
        self.manifest = manifest
        self.error_maps = error_maps or ErrorMapRegistry()
        self.capability_runner = capability_runner or LocalCapabilityRunner(self.error_maps)
        self.workflow_runner = workflow_runner
        self.ledger = ledger or UsageLedger()
        self._logger = logger or get_logger()
        self._opened = False

        self.router = DispatchRouter(
            manifest,
            authenticator=EnvelopeAuthenticator(settings.envelope, settings.caller),
            capability_runner=self.capability_runner,
            workflow_runner=self.workflow_runner,
            error_maps=self.error_maps,
            ledger=self.ledger,
            approval_gate=ApprovalGate(),
            workflow_config=settings.workflow,
            caller_defaults=settings.caller,
            logger=self._logger,
        )
        self.handler = JsonRpcHandler(self.router, logger=self._logger)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        manifest_path: str | Path | None = None,
        **kwargs,
    ) -> GatewayRuntime:
        """
        Load the manifest and wire the configured runners.

        Raises:
            ConfigError: If no manifest path is configured or envelope
                settings are inconsistent
            ManifestError: If the manifest cannot be loaded
        """
        path = manifest_path or settings.manifest_path
        if path is None:
            raise ConfigError("No manifest configured (set GATEWAY_MANIFEST_PATH or pass --manifest)")
        manifest = ToolManifest.from_file(path)
        kwargs.setdefault("workflow_runner", build_workflow_runner(settings))
        kwargs.setdefault("capability_runner", build_capability_runner(settings, kwargs["workflow_runner"]))
        return cls(settings, manifest, **kwargs)

    async def open(self) -> None:
        if self._opened:
            return
        if self.workflow_runner is not None:
            await self.workflow_runner.open()
        self._opened = True
        self._logger.info(
            "Gateway runtime opened",
            tools=len(self.manifest),
            manifest_version=self.manifest.version,
            workflow_backend=self.settings.workflow.backend,
            capability_runner=self.settings.capability.runner,
            require_envelope=self.settings.envelope.require,
        )

    async def close(self) -> None:
        if not self._opened:
            return
        try:
            if self.workflow_runner is not None:
                await self.workflow_runner.close()
        finally:
            self._opened = False
            self._logger.info("Gateway runtime closed", usage=self.ledger.summary())

    async def __aenter__(self) -> GatewayRuntime:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def serve_stdio(self) -> int:
        return await serve_stdio(self.handler)


__all__ = ["GatewayRuntime", "build_workflow_runner", "build_capability_runner"]
