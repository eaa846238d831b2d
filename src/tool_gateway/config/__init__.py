"""
Configuration system for tool-gateway.

This package provides typed configuration classes with:
- Dataclass-based settings with validation
- Environment variable loading (optionally from a .env file)
- YAML/TOML file loading
"""

from .base import CapabilityBehavior, CapabilityRunnerType, LogFormat, LogLevel, WorkflowBackendType
from .gateway import DATA_CLASSIFICATIONS, CallerDefaults, CapabilityConfig, EnvelopeConfig, WorkflowConfig
from .logging import LoggingConfig
from .settings import Settings, load_env

__all__ = [
    # Types
    "LogLevel",
    "LogFormat",
    "WorkflowBackendType",
    "CapabilityRunnerType",
    "CapabilityBehavior",
    # Sections
    "DATA_CLASSIFICATIONS",
    "EnvelopeConfig",
    "CallerDefaults",
    "WorkflowConfig",
    "CapabilityConfig",
    "LoggingConfig",
    # Master config
    "Settings",
    "load_env",
]
