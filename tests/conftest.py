"""
Shared test fixtures for tool-gateway tests.

This module provides:
- A sample manifest covering every tool kind and classification
- Router factories wired to local and in-memory runners
- Signed envelope helpers
"""

from __future__ import annotations

from typing import Any

import pytest

from tool_gateway.config import CallerDefaults, EnvelopeConfig, WorkflowConfig
from tool_gateway.dispatch import DispatchRouter
from tool_gateway.envelope import CallerContext, EnvelopeAuthenticator, sign_envelope
from tool_gateway.ledger import UsageLedger
from tool_gateway.manifest import ToolManifest
from tool_gateway.normalizer import ErrorMapRegistry
from tool_gateway.runners import InMemoryWorkflowRunner, LocalCapabilityRunner

SECRET = "test-envelope-secret-0123456789"

# =============================================================================
# Manifest Factories
# =============================================================================


def make_manifest_data() -> dict[str, Any]:
    return {
        "version": "2.3.0",
        "generated_at": "2026-01-15T00:00:00Z",
        "tools": [
            {
                "id": "demo.echo",
                "type": "CAPABILITY",
                "description": "Echo x back as y",
                "data_classification": "PUBLIC",
                "json_schema": {
                    "type": "object",
                    "properties": {"x": {"type": "number"}},
                    "required": ["x"],
                    "additionalProperties": False,
                },
            },
            {
                "id": "cap.flaky",
                "type": "CAPABILITY",
                "description": "Fails in configurable ways",
                "data_classification": "INTERNAL",
                "json_schema": {"type": "object"},
            },
            {
                "id": "ops.deploy",
                "type": "WORKFLOW",
                "description": "Deploy a service",
                "data_classification": "CONFIDENTIAL",
                "workflow_type": "deployWorkflow",
                "json_schema": {
                    "type": "object",
                    "properties": {"service": {"type": "string"}},
                    "required": ["service"],
                },
            },
            {
                "id": "secrets.rotate",
                "type": "CAPABILITY",
                "description": "Rotate a root key",
                "data_classification": "RESTRICTED",
                "json_schema": {"type": "object"},
            },
            {
                "id": "secrets.purge",
                "type": "BLUEPRINT",
                "description": "Purge secrets",
                "data_classification": "RESTRICTED",
                "json_schema": {"type": "object"},
            },
        ],
    }


def make_context(**overrides: Any) -> CallerContext:
    values: dict[str, Any] = {
        "initiator_id": "user:alice",
        "roles": frozenset({"operator"}),
        "app_id": "console",
        "environment": "staging",
    }
    values.update(overrides)
    return CallerContext(**values)


def make_envelope_meta(secret: str = SECRET, **overrides: Any) -> dict[str, Any]:
    """Build a ``meta`` object carrying a signed envelope."""
    return {"envelope": sign_envelope(make_context(**overrides), secret).to_dict()}


def make_router(
    manifest: ToolManifest,
    *,
    secret: str | None = None,
    require: bool = False,
    capability_runner: Any = None,
    workflow_runner: Any = None,
    ledger: UsageLedger | None = None,
    error_maps: ErrorMapRegistry | None = None,
    workflow_config: WorkflowConfig | None = None,
) -> DispatchRouter:
    error_maps = error_maps or ErrorMapRegistry()
    defaults = CallerDefaults(initiator_id="gateway:test", roles=["reader"], cost_center="cc-default")
    return DispatchRouter(
        manifest,
        authenticator=EnvelopeAuthenticator(EnvelopeConfig(secret=secret, require=require), defaults),
        capability_runner=capability_runner if capability_runner is not None else LocalCapabilityRunner(error_maps),
        workflow_runner=workflow_runner if workflow_runner is not None else InMemoryWorkflowRunner(),
        error_maps=error_maps,
        ledger=ledger,
        workflow_config=workflow_config,
        caller_defaults=defaults,
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def manifest_data() -> dict[str, Any]:
    return make_manifest_data()


@pytest.fixture
def manifest(manifest_data) -> ToolManifest:
    return ToolManifest.from_dict(manifest_data)


@pytest.fixture
def error_maps() -> ErrorMapRegistry:
    return ErrorMapRegistry()


@pytest.fixture
def capability_runner(error_maps) -> LocalCapabilityRunner:
    return LocalCapabilityRunner(error_maps)


@pytest.fixture
def workflow_runner() -> InMemoryWorkflowRunner:
    return InMemoryWorkflowRunner()


@pytest.fixture
def ledger() -> UsageLedger:
    return UsageLedger()


@pytest.fixture
def router(manifest, capability_runner, workflow_runner, ledger, error_maps) -> DispatchRouter:
    return make_router(
        manifest,
        secret=SECRET,
        capability_runner=capability_runner,
        workflow_runner=workflow_runner,
        ledger=ledger,
        error_maps=error_maps,
    )
