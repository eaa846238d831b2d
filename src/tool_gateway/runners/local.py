"""
In-process capability runner.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Union

from ..errors import CapabilityNotFoundError
from ..normalizer import ErrorMap, ErrorMapRegistry
from .base import CapabilityOutcome, CapabilityRequest

logger = logging.getLogger(__name__)

CapabilityHandler = Callable[
    [Mapping[str, Any], CapabilityRequest],
    Union[Any, Awaitable[Any]],
]


async def echo_handler(args: Mapping[str, Any], request: CapabilityRequest) -> dict[str, Any]:
    """Built-in ``demo.echo``: returns ``{"y": x}``."""
    return {"y": args.get("x")}


class LocalCapabilityRunner:
    """
    Registry of capability handlers keyed by tool id.

    Handlers receive ``(args, request)`` and may be sync or async. A handler
    may return a :class:`CapabilityOutcome` to attach metadata; any other
    return value becomes the result.

    Example:
        ```python
        runner = LocalCapabilityRunner(error_maps)

        async def lookup(args, request):
            return {"owner": await directory.owner_of(args["service"])}

        runner.register("catalog.owner", lookup, error_map=classify_directory_error)
        ```
    """

    def __init__(self, error_maps: ErrorMapRegistry | None = None, *, include_builtins: bool = True):
        self._handlers: dict[str, CapabilityHandler] = {}
        self.error_maps = error_maps or ErrorMapRegistry()
        if include_builtins:
            self.register("demo.echo", echo_handler)

    def register(
        self,
        tool_id: str,
        handler: CapabilityHandler,
        error_map: ErrorMap | None = None,
    ) -> None:
        if not callable(handler):
            raise TypeError("handler must be callable")
        if tool_id in self._handlers:
            logger.debug("Replacing capability handler for %s", tool_id)
        self._handlers[tool_id] = handler
        if error_map is not None:
            self.error_maps.register(tool_id, error_map)

    def unregister(self, tool_id: str) -> None:
        self._handlers.pop(tool_id, None)
        self.error_maps.unregister(tool_id)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._handlers

    @property
    def tool_ids(self) -> list[str]:
        return sorted(self._handlers)

    async def run(self, request: CapabilityRequest) -> CapabilityOutcome:
        handler = self._handlers.get(request.tool_id)
        if handler is None:
            raise CapabilityNotFoundError(request.tool_id)

        result = handler(request.args, request)
        if inspect.isawaitable(result):
            result = await result

        if isinstance(result, CapabilityOutcome):
            return result
        return CapabilityOutcome(result=result)


__all__ = ["CapabilityHandler", "LocalCapabilityRunner", "echo_handler"]
