"""
Tool manifest: the static catalog of tools the gateway exposes.

A manifest is loaded once at startup and never mutated afterwards. Each
entry becomes an immutable :class:`ToolDescriptor` keyed by tool id.

Manifest documents look like::

    {
      "version": "1.0.0",
      "generated_at": "2026-01-01T00:00:00Z",
      "tools": [
        {
          "id": "demo.echo",
          "type": "CAPABILITY",
          "description": "Echo x back as y",
          "data_classification": "PUBLIC",
          "json_schema": {"type": "object", "properties": {"x": {"type": "number"}}, "required": ["x"]}
        }
      ]
    }
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from .errors import ManifestError

logger = logging.getLogger(__name__)


class ToolKind(str, Enum):
    """How a tool executes."""

    CAPABILITY = "CAPABILITY"
    WORKFLOW = "WORKFLOW"


class DataClassification(str, Enum):
    """Sensitivity tier of the data a tool touches."""

    PUBLIC = "PUBLIC"
    INTERNAL = "INTERNAL"
    CONFIDENTIAL = "CONFIDENTIAL"
    RESTRICTED = "RESTRICTED"

    @classmethod
    def normalize(cls, value: Any) -> DataClassification:
        """Coerce a raw value, falling back to INTERNAL for unknown tiers."""
        if isinstance(value, cls):
            return value
        raw = value.upper() if isinstance(value, str) else ""
        try:
            return cls(raw)
        except ValueError:
            return cls.INTERNAL


_KIND_ALIASES = {
    "CAPABILITY": ToolKind.CAPABILITY,
    "WORKFLOW": ToolKind.WORKFLOW,
    "BLUEPRINT": ToolKind.WORKFLOW,
}


@dataclass(frozen=True)
class ToolDescriptor:
    """
    Immutable description of one tool.

    Attributes:
        id: Unique tool id (the MCP tool name)
        kind: CAPABILITY (synchronous) or WORKFLOW (durable background run)
        argument_schema: JSON Schema (2020-12) for the call arguments
        data_classification: Sensitivity tier; RESTRICTED requires approval
        description: Human-readable description
        workflow_type: Engine workflow type started for WORKFLOW tools
    """

    id: str
    kind: ToolKind
    argument_schema: Mapping[str, Any]
    data_classification: DataClassification
    description: str = ""
    workflow_type: str | None = None
    domain: str | None = None
    tags: tuple[str, ...] = ()
    is_idempotent: bool | None = None

    @property
    def effective_workflow_type(self) -> str:
        return self.workflow_type or self.id

    def to_mcp_tool(self) -> dict[str, Any]:
        """Render for ``tools/list``."""
        data: dict[str, Any] = {
            "name": self.id,
            "description": self.description,
            "inputSchema": _thaw(self.argument_schema),
            "kind": self.kind.value,
            "data_classification": self.data_classification.value,
        }
        if self.domain:
            data["domain"] = self.domain
        if self.tags:
            data["tags"] = list(self.tags)
        if self.is_idempotent is not None:
            data["is_idempotent"] = self.is_idempotent
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ToolDescriptor:
        """Build a descriptor from one manifest entry."""
        tool_id = data.get("id")
        if not isinstance(tool_id, str) or not tool_id.strip():
            raise ManifestError(f"Manifest entry is missing an id: {dict(data)!r}")
        tool_id = tool_id.strip()

        raw_kind = data.get("kind", data.get("type", "CAPABILITY"))
        kind = _KIND_ALIASES.get(str(raw_kind).upper())
        if kind is None:
            raise ManifestError(f"Unknown tool type for {tool_id}: {raw_kind!r}")

        schema = data.get("json_schema", data.get("input_schema", {"type": "object"}))
        if not isinstance(schema, Mapping):
            raise ManifestError(f"Schema for {tool_id} must be an object")
        try:
            Draft202012Validator.check_schema(schema)
        except SchemaError as e:
            raise ManifestError(f"Invalid schema for {tool_id}: {e.message}") from e

        workflow_type = data.get("workflow_type")
        if workflow_type is not None and not isinstance(workflow_type, str):
            raise ManifestError(f"workflow_type for {tool_id} must be a string")

        tags = data.get("tags") or ()
        is_idempotent = data.get("is_idempotent")

        return cls(
            id=tool_id,
            kind=kind,
            argument_schema=_freeze(schema),
            data_classification=DataClassification.normalize(data.get("data_classification")),
            description=str(data.get("description", "")),
            workflow_type=workflow_type,
            domain=data.get("domain") if isinstance(data.get("domain"), str) else None,
            tags=tuple(t for t in tags if isinstance(t, str)),
            is_idempotent=is_idempotent if isinstance(is_idempotent, bool) else None,
        )


@dataclass(frozen=True)
class ToolManifest:
    """Read-only catalog of tool descriptors keyed by id."""

    tools: tuple[ToolDescriptor, ...]
    version: str = "0"
    generated_at: str | None = None
    _by_id: Mapping[str, ToolDescriptor] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_id: dict[str, ToolDescriptor] = {}
        for tool in self.tools:
            if tool.id in by_id:
                raise ManifestError(f"Duplicate tool id in manifest: {tool.id}")
            by_id[tool.id] = tool
        object.__setattr__(self, "_by_id", MappingProxyType(by_id))

    def get(self, tool_id: str) -> ToolDescriptor | None:
        """Look up a descriptor by id."""
        return self._by_id.get(tool_id)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._by_id

    def __len__(self) -> int:
        return len(self.tools)

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self.tools)

    def list_tools(self) -> list[ToolDescriptor]:
        return list(self.tools)

    def info(self) -> dict[str, Any]:
        data: dict[str, Any] = {"version": self.version}
        if self.generated_at:
            data["generated_at"] = self.generated_at
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ToolManifest:
        tools = data.get("tools")
        if not isinstance(tools, list):
            raise ManifestError("Manifest must contain a 'tools' list")
        generated_at = data.get("generated_at")
        return cls(
            tools=tuple(ToolDescriptor.from_dict(entry) for entry in tools),
            version=str(data.get("version", "0")),
            generated_at=str(generated_at) if generated_at is not None else None,
        )

    @classmethod
    def from_file(cls, path: str | Path) -> ToolManifest:
        """
        Load a manifest from a JSON or YAML file.

        Raises:
            ManifestError: If the file is missing, unparseable or malformed
        """
        path = Path(path)
        if not path.exists():
            raise ManifestError(f"Manifest file not found: {path}")

        suffix = path.suffix.lower()
        try:
            with open(path, encoding="utf-8") as f:
                if suffix in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                elif suffix == ".json":
                    data = json.load(f)
                else:
                    raise ManifestError(f"Unsupported manifest format: {suffix}")
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ManifestError(f"Could not parse manifest {path}: {e}") from e

        if not isinstance(data, Mapping):
            raise ManifestError(f"Manifest {path} must be an object")

        manifest = cls.from_dict(data)
        logger.info("Loaded %d tools from manifest %s (version %s)", len(manifest), path, manifest.version)
        return manifest


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


__all__ = [
    "ToolKind",
    "DataClassification",
    "ToolDescriptor",
    "ToolManifest",
]
