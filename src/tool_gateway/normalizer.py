"""
Error normalization.

Every failure a runner reports is reduced to a small, retry-relevant
taxonomy before it leaves the gateway. Precedence, first match wins:

1. A structured HTTP-like status code on the error
2. The tool's own error map, if one is registered
3. Regex fallback over the error message
4. FATAL

Normalization is a pure function of ``(error, error_map)``: no I/O, no
clock, no randomness.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    RATE_LIMIT = "RATE_LIMIT"
    AUTH_FAILURE = "AUTH_FAILURE"
    RETRYABLE = "RETRYABLE"
    FATAL = "FATAL"

    @property
    def retryable(self) -> bool:
        return self in (ErrorCategory.RATE_LIMIT, ErrorCategory.RETRYABLE)


ErrorMap = Callable[[BaseException], "ErrorCategory | str"]

NO_MATCH_REASON = "No status code, error map or message pattern matched"


@dataclass(frozen=True)
class NormalizedError:
    """Retry-relevant view of a failure. ``retryable`` follows from ``category``."""

    category: ErrorCategory
    message: str
    original_code: str | int | None = None
    non_retryable_reason: str | None = None

    @property
    def retryable(self) -> bool:
        return self.category.retryable

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "category": self.category.value,
            "retryable": self.retryable,
            "message": self.message,
        }
        if self.original_code is not None:
            data["original_code"] = self.original_code
        if self.non_retryable_reason is not None:
            data["non_retryable_reason"] = self.non_retryable_reason
        return data


_REGEX_RULES: tuple[tuple[re.Pattern[str], ErrorCategory], ...] = (
    (re.compile(r"rate.?limit|throttl", re.IGNORECASE), ErrorCategory.RATE_LIMIT),
    (re.compile(r"unauthorized|auth.*fail|invalid.*token", re.IGNORECASE), ErrorCategory.AUTH_FAILURE),
    (re.compile(r"timeout|unavailable|retry\s+later", re.IGNORECASE), ErrorCategory.RETRYABLE),
)

_STATUS_ATTRS = ("status_code", "statusCode", "http_status", "status")


def category_from_status(status: int) -> ErrorCategory | None:
    if status in (401, 403):
        return ErrorCategory.AUTH_FAILURE
    if status == 429:
        return ErrorCategory.RATE_LIMIT
    if status >= 500 or status == 408:
        return ErrorCategory.RETRYABLE
    if 400 <= status < 500:
        return ErrorCategory.FATAL
    return None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _status_code(error: BaseException) -> int | None:
    for attr in _STATUS_ATTRS:
        value = getattr(error, attr, None)
        if _is_int(value):
            return value
    code = getattr(error, "code", None)
    return code if _is_int(code) else None


def _original_code(error: BaseException, status: int | None) -> str | int | None:
    if status is not None:
        return status
    code = getattr(error, "code", None)
    return code if isinstance(code, str) else None


def error_message(error: BaseException) -> str:
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error) or type(error).__name__


def _apply_error_map(error: BaseException, error_map: ErrorMap) -> ErrorCategory | None:
    try:
        raw = error_map(error)
    except Exception:
        return None
    if isinstance(raw, ErrorCategory):
        return raw
    try:
        return ErrorCategory(raw)
    except (TypeError, ValueError):
        return None


def normalize_error(error: BaseException, error_map: ErrorMap | None = None) -> NormalizedError:
    """
    Map an arbitrary exception onto the gateway taxonomy.

    Args:
        error: The exception a runner raised
        error_map: Optional tool-specific classifier

    Returns:
        NormalizedError (total: never raises)
    """
    message = error_message(error)
    status = _status_code(error)
    original_code = _original_code(error, status)

    if status is not None:
        category = category_from_status(status)
        if category is not None:
            return NormalizedError(
                category=category,
                message=message,
                original_code=original_code,
                non_retryable_reason=None if category.retryable else f"HTTP status {status}",
            )

    if error_map is not None:
        category = _apply_error_map(error, error_map)
        if category is not None:
            return NormalizedError(
                category=category,
                message=message,
                original_code=original_code,
                non_retryable_reason=None if category.retryable else "Classified by tool error map",
            )

    for pattern, category in _REGEX_RULES:
        if pattern.search(message):
            return NormalizedError(
                category=category,
                message=message,
                original_code=original_code,
                non_retryable_reason=None if category.retryable else f"Message matched /{pattern.pattern}/",
            )

    return NormalizedError(
        category=ErrorCategory.FATAL,
        message=message,
        original_code=original_code,
        non_retryable_reason=NO_MATCH_REASON,
    )


class ErrorMapRegistry:
    """Tool-specific error maps keyed by tool id."""

    def __init__(self) -> None:
        self._maps: dict[str, ErrorMap] = {}

    def register(self, tool_id: str, error_map: ErrorMap) -> None:
        if not callable(error_map):
            raise TypeError("error_map must be callable")
        self._maps[tool_id] = error_map

    def unregister(self, tool_id: str) -> None:
        self._maps.pop(tool_id, None)

    def get(self, tool_id: str) -> ErrorMap | None:
        return self._maps.get(tool_id)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._maps

    def normalize(self, tool_id: str, error: BaseException) -> NormalizedError:
        return normalize_error(error, self.get(tool_id))


__all__ = [
    "ErrorCategory",
    "ErrorMap",
    "NormalizedError",
    "ErrorMapRegistry",
    "category_from_status",
    "error_message",
    "normalize_error",
]
