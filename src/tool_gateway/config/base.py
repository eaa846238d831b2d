"""
Base types for configuration.
"""

from __future__ import annotations

from typing import Literal

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["text", "json"]
WorkflowBackendType = Literal["none", "memory", "http"]
CapabilityRunnerType = Literal["local", "engine"]
CapabilityBehavior = Literal["await", "start"]


__all__ = ["LogLevel", "LogFormat", "WorkflowBackendType", "CapabilityRunnerType", "CapabilityBehavior"]
