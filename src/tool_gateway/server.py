"""
JSON-RPC 2.0 transport over newline-delimited streams.

This module provides:
- JsonRpcHandler: maps one decoded message to at most one response
- serve: the read/dispatch/write loop over an asyncio.StreamReader
- serve_stdio: the loop wired to the process's stdin/stdout

Transport Rules
---------------
Each message is exactly one line. The loop handles one line at a time and
awaits its response before reading the next, so responses leave in request
order. Stdout carries protocol lines only; all diagnostics go to stderr via
logging. A bad line (unparseable, oversized, not an object) produces an error
response for that line and the loop carries on.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import sys
import threading
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import IO, Any, Union

from . import __version__
from .dispatch import DispatchRouter, ToolCallRequest, ToolCallResult
from .errors import JsonRpcErrorCode
from .logging import StructuredLogger, get_logger
from .serialization import compact_json_dumps

DEFAULT_PROTOCOL_VERSION = "2025-11-25"
DEFAULT_MAX_LINE_BYTES = 4 * 1024 * 1024
_READ_CHUNK = 64 * 1024

JsonRpcId = Union[str, int, None]
LineWriter = Callable[[str], Union[Awaitable[None], None]]


class JsonRpcError(Exception):
    """Protocol-level failure for one request."""

    def __init__(self, code: JsonRpcErrorCode, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Invalid JSON constant: {name}")


def _ok(request_id: JsonRpcId, result: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _err(request_id: JsonRpcId, code: JsonRpcErrorCode, message: str, data: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": int(code), "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def _params(message: Mapping[str, Any]) -> Mapping[str, Any]:
    params = message.get("params")
    if params is None:
        return {}
    if not isinstance(params, Mapping):
        raise JsonRpcError(JsonRpcErrorCode.INVALID_PARAMS, "Invalid params: expected an object")
    return params


def _required_str(params: Mapping[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str) or not value.strip():
        raise JsonRpcError(JsonRpcErrorCode.INVALID_PARAMS, f"Invalid params: missing {key}")
    return value.strip()


def _meta(params: Mapping[str, Any]) -> Mapping[str, Any] | None:
    meta = params.get("meta")
    return meta if isinstance(meta, Mapping) else None


class JsonRpcHandler:
    """
    Handles decoded JSON-RPC messages for the gateway.

    Returns ``None`` for notifications (messages without an ``id``).
    """

    def __init__(
        self,
        router: DispatchRouter,
        *,
        server_name: str = "tool-gateway",
        server_version: str = __version__,
        logger: StructuredLogger | None = None,
    ):
        self.router = router
        self.server_name = server_name
        self.server_version = server_version
        self._logger = logger or get_logger()
        self._methods: dict[str, Callable[[Mapping[str, Any]], Awaitable[Any]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
            "workflows/progress": self._workflows_progress,
            "workflows/cancel": self._workflows_cancel,
        }

    async def handle_line(self, line: str | bytes) -> dict[str, Any] | None:
        """Decode one line and handle it. Blank lines yield nothing."""
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError:
                self._logger.warning("Discarding line that is not valid UTF-8")
                return _err(None, JsonRpcErrorCode.PARSE_ERROR, "Parse error: invalid UTF-8")
        if not line.strip():
            return None
        try:
            message = json.loads(line, parse_constant=_reject_constant)
        except (ValueError, RecursionError) as e:
            self._logger.warning("Discarding unparseable line", error=str(e))
            return _err(None, JsonRpcErrorCode.PARSE_ERROR, "Parse error")
        return await self.handle(message)

    async def handle(self, message: Any) -> dict[str, Any] | None:
        if not isinstance(message, dict):
            return _err(None, JsonRpcErrorCode.INVALID_REQUEST, "Invalid Request: expected an object")

        is_notification = "id" not in message
        request_id = message.get("id")
        if request_id is not None and (isinstance(request_id, bool) or not isinstance(request_id, (str, int))):
            return _err(None, JsonRpcErrorCode.INVALID_REQUEST, "Invalid Request: bad id")

        method = message.get("method")
        if not isinstance(method, str) or not method:
            return _err(request_id, JsonRpcErrorCode.INVALID_REQUEST, "Invalid Request: missing method")

        handler = self._methods.get(method)
        if handler is None:
            if is_notification:
                if not method.startswith("notifications/"):
                    self._logger.debug("Ignoring unknown notification", method=method)
                return None
            return _err(request_id, JsonRpcErrorCode.METHOD_NOT_FOUND, f"Method not found: {method}")

        if is_notification:
            self._logger.debug("Ignoring notification for request method", method=method)
            return None

        try:
            result = await handler(_params(message))
        except JsonRpcError as e:
            return _err(request_id, e.code, e.message, e.data)
        except Exception:
            self._logger.exception("Unhandled error while handling request", method=method)
            return _err(request_id, JsonRpcErrorCode.INTERNAL_ERROR, "Internal error")
        return _ok(request_id, result)

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    async def _initialize(self, params: Mapping[str, Any]) -> dict[str, Any]:
        protocol_version = params.get("protocolVersion")
        if not isinstance(protocol_version, str) or not protocol_version:
            protocol_version = DEFAULT_PROTOCOL_VERSION
        return {
            "protocolVersion": protocol_version,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": self.server_name, "version": self.server_version},
            "manifest": self.router.manifest.info(),
        }

    async def _ping(self, params: Mapping[str, Any]) -> dict[str, Any]:
        return {}

    async def _tools_list(self, params: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "tools": [tool.to_mcp_tool() for tool in self.router.list_tools()],
            "manifest": self.router.manifest.info(),
        }

    async def _tools_call(self, params: Mapping[str, Any]) -> dict[str, Any]:
        request = ToolCallRequest(
            name=_required_str(params, "name"),
            arguments=params.get("arguments"),
            meta=_meta(params),
        )
        result: ToolCallResult = await self.router.call_tool(request)
        return result.to_dict()

    async def _workflows_progress(self, params: Mapping[str, Any]) -> dict[str, Any]:
        workflow_id = _required_str(params, "workflow_id")
        result = await self.router.workflow_progress(workflow_id, meta=_meta(params))
        return result.to_dict()

    async def _workflows_cancel(self, params: Mapping[str, Any]) -> dict[str, Any]:
        workflow_id = _required_str(params, "workflow_id")
        reason = params.get("reason")
        result = await self.router.cancel_workflow(
            workflow_id,
            reason=reason if isinstance(reason, str) and reason else None,
            meta=_meta(params),
        )
        return result.to_dict()


# =============================================================================
# Transport loop
# =============================================================================


async def iter_lines(reader: asyncio.StreamReader, max_line_bytes: int) -> AsyncIterator[bytes | None]:
    """
    Yield newline-delimited lines without their terminator.

    A line longer than ``max_line_bytes`` is discarded in full and reported
    as a single ``None``.
    """
    buffer = bytearray()
    overflow = False
    while True:
        chunk = await reader.read(_READ_CHUNK)
        if not chunk:
            if overflow:
                yield None
            elif buffer:
                yield bytes(buffer)
            return
        buffer.extend(chunk)

        while (idx := buffer.find(b"\n")) >= 0:
            line = bytes(buffer[:idx])
            del buffer[: idx + 1]
            if overflow or len(line) > max_line_bytes:
                overflow = False
                yield None
            else:
                yield line

        if len(buffer) > max_line_bytes:
            overflow = True
            buffer.clear()


async def serve(
    handler: JsonRpcHandler,
    reader: asyncio.StreamReader,
    write: LineWriter,
    *,
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
) -> int:
    """
    Serve requests until the reader reaches EOF.

    Returns:
        Number of responses written
    """
    logger = get_logger()
    written = 0
    async for line in iter_lines(reader, max_line_bytes):
        if line is None:
            logger.warning("Discarding line over the size limit", max_line_bytes=max_line_bytes)
            response: dict[str, Any] | None = _err(None, JsonRpcErrorCode.PARSE_ERROR, "Parse error: line too long")
        else:
            try:
                response = await handler.handle_line(line.rstrip(b"\r"))
            except Exception:
                logger.exception("Unhandled error while handling line")
                response = _err(None, JsonRpcErrorCode.INTERNAL_ERROR, "Internal error")
        if response is None:
            continue

        try:
            payload = compact_json_dumps(response)
        except ValueError:
            logger.exception("Response is not serializable as JSON")
            payload = compact_json_dumps(_err(response.get("id"), JsonRpcErrorCode.INTERNAL_ERROR, "Internal error"))

        outcome = write(payload + "\n")
        if inspect.isawaitable(outcome):
            await outcome
        written += 1
    return written


def _start_feeder(source: IO[bytes], reader: asyncio.StreamReader, loop: asyncio.AbstractEventLoop) -> threading.Thread:
    """Feed a blocking byte stream into ``reader`` from a daemon thread."""

    def run() -> None:
        try:
            while chunk := source.read1(_READ_CHUNK):
                loop.call_soon_threadsafe(reader.feed_data, chunk)
        finally:
            loop.call_soon_threadsafe(reader.feed_eof)

    thread = threading.Thread(target=run, name="tool-gateway-stdin", daemon=True)
    thread.start()
    return thread


async def serve_stdio(handler: JsonRpcHandler, *, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES) -> int:
    """Serve over the process's stdin/stdout until stdin closes."""
    reader = asyncio.StreamReader()
    stdout = sys.stdout
    _start_feeder(sys.stdin.buffer, reader, asyncio.get_running_loop())

    def write(line: str) -> None:
        stdout.write(line)
        stdout.flush()

    return await serve(handler, reader, write, max_line_bytes=max_line_bytes)


__all__ = [
    "DEFAULT_PROTOCOL_VERSION",
    "DEFAULT_MAX_LINE_BYTES",
    "JsonRpcError",
    "JsonRpcHandler",
    "iter_lines",
    "serve",
    "serve_stdio",
]
