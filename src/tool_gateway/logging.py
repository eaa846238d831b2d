"""
Structured Logging for the tool gateway.

This module provides:
- Structured JSON logging with consistent fields
- Tool call logging with trace correlation
- Timing helpers

All output goes to stderr. Stdout belongs to the protocol stream and must
never carry diagnostics.
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import IO, Any

# =============================================================================
# Log Record Types
# =============================================================================


@dataclass
class LogContext:
    """Context information attached to log records."""

    trace_id: str | None = None
    tool: str | None = None
    initiator_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        d.update(self.extra)
        return d

    def with_update(self, **kwargs) -> LogContext:
        """Create a new context with updated values."""
        return LogContext(
            trace_id=kwargs.get("trace_id", self.trace_id),
            tool=kwargs.get("tool", self.tool),
            initiator_id=kwargs.get("initiator_id", self.initiator_id),
            extra={**self.extra, **kwargs.get("extra", {})},
        )


@dataclass
class ToolCallLog:
    """Log record for one dispatched tool call."""

    tool: str
    trace_id: str
    kind: str | None = None

    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    duration_ms: float | None = None

    success: bool = True
    error: str | None = None
    category: str | None = None
    workflow_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """
    Logger with structured output and context tracking.

    Example:
        ```python
        logger = StructuredLogger("tool_gateway")

        with logger.trace_context(trace_id, tool="demo.echo"):
            logger.info("dispatching")
        ```
    """

    def __init__(
        self,
        name: str = "tool_gateway",
        level: str = "INFO",
        json_output: bool = True,
        stream: IO[str] | None = None,
    ):
        self.name = name
        self.json_output = json_output

        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper()))
        self._logger.propagate = False

        self._context: LogContext = LogContext()

        if not self._logger.handlers:
            handler = logging.StreamHandler(stream or sys.stderr)
            handler.setFormatter(JSONFormatter() if json_output else TextFormatter())
            self._logger.addHandler(handler)

    @property
    def context(self) -> LogContext:
        return self._context

    def set_context(self, **kwargs) -> None:
        """Update the current log context."""
        self._context = self._context.with_update(**kwargs)

    @contextmanager
    def trace_context(
        self,
        trace_id: str | None = None,
        **kwargs,
    ) -> Iterator[str]:
        """
        Context manager for trace correlation.

        Args:
            trace_id: Trace ID (auto-generated if not provided)
            **kwargs: Additional context fields

        Yields:
            The trace ID
        """
        trace_id = trace_id or generate_trace_id()
        old_context = self._context

        try:
            self._context = old_context.with_update(trace_id=trace_id, **kwargs)
            yield trace_id
        finally:
            self._context = old_context

    def _log(
        self,
        level: int,
        message: str,
        event_type: str | None = None,
        data: dict[str, Any] | None = None,
        exc_info: bool = False,
    ) -> None:
        record_data = {
            "message": message,
            **self._context.to_dict(),
        }

        if event_type:
            record_data["event_type"] = event_type

        if data:
            record_data.update(data)

        if self.json_output:
            self._logger.log(level, json.dumps(record_data, default=str), exc_info=exc_info)
        else:
            extras = " ".join(f"{k}={v}" for k, v in record_data.items() if k != "message")
            self._logger.log(level, f"{message} {extras}".rstrip(), exc_info=exc_info)

    def debug(self, message: str, **kwargs) -> None:
        self._log(logging.DEBUG, message, data=kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, data=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log(logging.WARNING, message, data=kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log(logging.ERROR, message, data=kwargs)

    def exception(self, message: str, **kwargs) -> None:
        """Log an error with the active exception's traceback."""
        self._log(logging.ERROR, message, data=kwargs, exc_info=True)

    def log_tool_call(self, tool_log: ToolCallLog) -> None:
        """Log a dispatched tool call."""
        level = logging.INFO if tool_log.success else logging.WARNING
        message = f"Tool '{tool_log.tool}' dispatched"
        if tool_log.duration_ms is not None:
            message += f" ({tool_log.duration_ms:.0f}ms)"
        self._log(level, message, event_type="tool_call", data=tool_log.to_dict())


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }

        try:
            message_data = json.loads(record.getMessage())
            if isinstance(message_data, dict):
                log_data.update(message_data)
            else:
                log_data["message"] = record.getMessage()
        except (json.JSONDecodeError, TypeError):
            log_data["message"] = record.getMessage()

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        text = f"{timestamp} {record.levelname:8} {record.getMessage()}"
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


# =============================================================================
# Utilities
# =============================================================================


def generate_trace_id() -> str:
    """Generate a unique trace ID."""
    return f"trace_{uuid.uuid4().hex[:16]}"


def redact_secret(secret: str | None) -> str:
    """Redact a secret for safe logging."""
    if not secret:
        return "<not set>"
    if len(secret) <= 8:
        return "***"
    return f"{secret[:2]}...{secret[-2:]}"


@dataclass
class Timer:
    """Simple timer for measuring durations."""

    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None

    def stop(self) -> float:
        """Stop the timer and return duration in milliseconds."""
        self.end_time = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> float:
        """Elapsed time in milliseconds."""
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000


@contextmanager
def timed() -> Iterator[Timer]:
    """Context manager for timing operations."""
    timer = Timer()
    try:
        yield timer
    finally:
        timer.stop()


# =============================================================================
# Global Logger
# =============================================================================

_default_logger: StructuredLogger | None = None


def get_logger(name: str = "tool_gateway") -> StructuredLogger:
    """Get or create a structured logger."""
    global _default_logger
    if _default_logger is None or _default_logger.name != name:
        _default_logger = StructuredLogger(name)
    return _default_logger


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    **kwargs: Any,
) -> StructuredLogger:
    """Configure the default logger and route stdlib loggers to stderr."""
    global _default_logger
    root = logging.getLogger()
    if not any(getattr(h, "_tool_gateway", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JSONFormatter() if json_output else TextFormatter())
        handler._tool_gateway = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper()))
    _default_logger = StructuredLogger(level=level, json_output=json_output, **kwargs)
    return _default_logger


__all__ = [
    "LogContext",
    "ToolCallLog",
    "StructuredLogger",
    "JSONFormatter",
    "TextFormatter",
    "Timer",
    "timed",
    "generate_trace_id",
    "redact_secret",
    "get_logger",
    "configure_logging",
]
