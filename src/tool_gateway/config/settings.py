"""
Settings master configuration and global helpers.
"""

from __future__ import annotations

import dataclasses
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from dotenv import find_dotenv, load_dotenv

from .gateway import CallerDefaults, CapabilityConfig, EnvelopeConfig, WorkflowConfig
from .logging import LoggingConfig
from .schema import CONFIG_SCHEMA

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _env_str(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    """
    Master configuration for the gateway.

    Aggregates all configuration sections into a single object that can be
    loaded from environment variables, files, or constructed programmatically.
    """

    manifest_path: Path | None = None

    # Signed call envelopes
    envelope: EnvelopeConfig = field(default_factory=EnvelopeConfig)

    # Caller context used when no envelope is supplied
    caller: CallerDefaults = field(default_factory=CallerDefaults)

    # Workflow runner collaborator
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)

    # Capability runner collaborator
    capability: CapabilityConfig = field(default_factory=CapabilityConfig)

    # Logging configuration
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        if isinstance(self.manifest_path, str):
            self.manifest_path = Path(self.manifest_path)
        if self.capability.runner == "engine" and self.workflow.backend != "http":
            raise ValueError("capability runner 'engine' requires workflow backend 'http'")

    @classmethod
    def from_env(cls, prefix: str = "GATEWAY_") -> Settings:
        """
        Load settings from environment variables.

        Example:
            GATEWAY_MANIFEST_PATH=manifest.json
            GATEWAY_ENVELOPE_SECRET=...
            GATEWAY_REQUIRE_ENVELOPE=true
            GATEWAY_WORKFLOW_BACKEND=http
            GATEWAY_CAPABILITY_RUNNER=engine
            GATEWAY_CAPABILITY_BEHAVIOR=await
        """
        envelope: dict[str, Any] = {}
        if (secret := _env_str(f"{prefix}ENVELOPE_SECRET")) is not None:
            envelope["secret"] = secret
        if (require := _env_bool(f"{prefix}REQUIRE_ENVELOPE")) is not None:
            envelope["require"] = require

        caller: dict[str, Any] = {}
        for key in ("initiator_id", "token_ref", "app_id", "environment", "cost_center"):
            if (value := _env_str(f"{prefix}{key.upper()}")) is not None:
                caller[key] = value
        if (roles := _env_str(f"{prefix}ROLES")) is not None:
            caller["roles"] = _csv(roles)
        if (classification := _env_str(f"{prefix}DATA_CLASSIFICATION")) is not None:
            caller["data_classification"] = classification.upper()

        workflow: dict[str, Any] = {}
        if (backend := _env_str(f"{prefix}WORKFLOW_BACKEND")) is not None:
            workflow["backend"] = backend.lower()
        for key in ("engine_url", "namespace", "task_queue", "ui_url"):
            value = os.getenv(f"{prefix}WORKFLOW_{key.upper()}")
            if value is not None:
                workflow[key] = value.strip()
        if (timeout := _env_str(f"{prefix}WORKFLOW_TIMEOUT_SECONDS")) is not None:
            workflow["timeout_seconds"] = float(timeout)
        if (activity_type := _env_str(f"{prefix}PROGRESS_ACTIVITY_TYPE")) is not None:
            workflow["progress_activity_type"] = activity_type

        capability: dict[str, Any] = {}
        for key in ("runner", "behavior"):
            if (value := _env_str(f"{prefix}CAPABILITY_{key.upper()}")) is not None:
                capability[key] = value.lower()
        if (workflow_type := _env_str(f"{prefix}CAPABILITY_WORKFLOW_TYPE")) is not None:
            capability["workflow_type"] = workflow_type
        if (result_timeout := _env_str(f"{prefix}CAPABILITY_RESULT_TIMEOUT_SECONDS")) is not None:
            capability["result_timeout_seconds"] = float(result_timeout)

        logging_cfg: dict[str, Any] = {}
        if (level := _env_str(f"{prefix}LOG_LEVEL")) is not None:
            logging_cfg["level"] = level.upper()
        if (log_format := _env_str(f"{prefix}LOG_FORMAT")) is not None:
            logging_cfg["format"] = log_format.lower()

        return cls(
            manifest_path=_env_str(f"{prefix}MANIFEST_PATH"),
            envelope=EnvelopeConfig(**envelope),
            caller=CallerDefaults(**caller),
            workflow=WorkflowConfig(**workflow),
            capability=CapabilityConfig(**capability),
            logging=LoggingConfig(**logging_cfg),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> Settings:
        """
        Load settings from a YAML or TOML file.

        Args:
            path: Path to configuration file (.yaml, .yml, or .toml)

        Returns:
            Settings object with values from file
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        suffix = path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        elif suffix == ".toml":
            with open(path, "rb") as f:
                data = tomllib.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {suffix}")

        settings = cls._from_dict(data)
        if settings.manifest_path is not None and not settings.manifest_path.is_absolute():
            settings.manifest_path = path.parent / settings.manifest_path
        return settings

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Settings:
        """
        Create Settings from a dictionary, validating it against the
        configuration schema first.
        """
        try:
            jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ValueError(f"Configuration validation failed: {e.message}") from e

        return cls(
            manifest_path=data.get("manifest_path"),
            envelope=EnvelopeConfig(**data.get("envelope", {})),
            caller=CallerDefaults(**data.get("caller", {})),
            workflow=WorkflowConfig(**data.get("workflow", {})),
            capability=CapabilityConfig(**data.get("capability", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary, with the envelope secret redacted."""

        def convert(obj):
            if dataclasses.is_dataclass(obj):
                return {k: convert(v) for k, v in dataclasses.asdict(obj).items()}
            elif isinstance(obj, Path):
                return str(obj)
            return obj

        data = convert(self)
        if data["envelope"]["secret"]:
            data["envelope"]["secret"] = "***"
        return data


def load_env(path: str | None = None, *, override: bool = False) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        path: Optional path to a .env file. If not provided, uses find_dotenv().
        override: Whether to override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    env_path = path or find_dotenv(usecwd=True)
    if not env_path:
        return False
    return load_dotenv(env_path, override=override)


__all__ = ["Settings", "load_env"]
