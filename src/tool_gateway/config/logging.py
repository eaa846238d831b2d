"""
Logging configuration.
"""

from __future__ import annotations

from dataclasses import dataclass

from .base import LogFormat, LogLevel


@dataclass
class LoggingConfig:
    """Configuration for diagnostic logging (always written to stderr)."""

    level: LogLevel = "INFO"
    format: LogFormat = "json"

    def __post_init__(self):
        """Validate configuration after initialization."""
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if self.level not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")
        valid_formats = ("text", "json")
        if self.format not in valid_formats:
            raise ValueError(f"Invalid log format: {self.format}. Must be one of {valid_formats}")


__all__ = ["LoggingConfig"]
