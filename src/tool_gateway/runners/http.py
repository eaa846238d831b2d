"""
Workflow runner backed by a workflow engine's HTTP API.

Endpoints (relative to the engine base URL)::

    POST /api/v1/namespaces/{ns}/workflows/{id}            start
    GET  /api/v1/namespaces/{ns}/workflows/{id}/history    event history
    POST /api/v1/namespaces/{ns}/workflows/{id}/terminate  terminate
    GET  /api/v1/namespaces/{ns}/workflows/{id}/result     wait for the close
                                                           status and result

The client session is an explicit resource: ``open()`` creates it,
``close()`` releases it. Calls made before ``open()`` open it lazily.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from ..errors import (
    RunnerError,
    RunnerUnavailableError,
    WorkflowAlreadyStartedError,
    WorkflowFailedError,
    WorkflowNotFoundError,
)
from ..progress import WorkflowEvent, decode_history
from .base import WorkflowHandle, WorkflowStartRequest

logger = logging.getLogger(__name__)


class HttpWorkflowRunner:
    """
    Example:
        ```python
        async with HttpWorkflowRunner("http://engine:7243", namespace="ops") as runner:
            handle = await runner.start(request)
        ```
    """

    def __init__(
        self,
        base_url: str,
        *,
        namespace: str = "default",
        task_queue: str | None = None,
        timeout_seconds: float = 10.0,
        headers: dict[str, str] | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.namespace = namespace
        self.task_queue = task_queue
        self.timeout_seconds = timeout_seconds
        self.headers = dict(headers or {})
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> HttpWorkflowRunner:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def open(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Content-Type": "application/json", **self.headers},
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            )

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            await self.open()
        assert self._session is not None
        return self._session

    def _workflow_url(self, workflow_id: str, suffix: str = "") -> str:
        ns = quote(self.namespace, safe="")
        wid = quote(workflow_id, safe="")
        return f"{self.base_url}/api/v1/namespaces/{ns}/workflows/{wid}{suffix}"

    async def _request(
        self,
        method: str,
        url: str,
        workflow_id: str,
        body: dict[str, Any] | None = None,
        *,
        params: dict[str, str] | None = None,
        timeout_seconds: float | None = None,
    ) -> Any:
        session = await self._get_session()
        kwargs: dict[str, Any] = {}
        if params:
            kwargs["params"] = params
        if timeout_seconds is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout_seconds)
        try:
            async with session.request(method, url, json=body, **kwargs) as response:
                text = await response.text()
                if response.status >= 400:
                    raise _error_for_status(response.status, text, workflow_id)
                if not text:
                    return {}
                try:
                    return json.loads(text)
                except json.JSONDecodeError as e:
                    raise RunnerError(f"Engine returned invalid JSON from {method} {url}", cause=e) from e
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise RunnerUnavailableError(f"Workflow engine unavailable: {str(e) or type(e).__name__}", cause=e) from e

    async def start(self, request: WorkflowStartRequest) -> WorkflowHandle:
        body: dict[str, Any] = {
            "workflowType": request.workflow_type,
            "input": [dict(request.args)],
            "memo": dict(request.memo),
        }
        task_queue = request.task_queue or self.task_queue
        if task_queue:
            body["taskQueue"] = task_queue

        data = await self._request("POST", self._workflow_url(request.workflow_id), request.workflow_id, body)
        run_id = (data.get("runId") or data.get("run_id")) if isinstance(data, dict) else None
        if not isinstance(run_id, str) or not run_id:
            raise RunnerError(f"Engine did not return a run id for {request.workflow_id}")
        logger.info("Engine started workflow %s run %s", request.workflow_id, run_id)
        return WorkflowHandle(workflow_id=request.workflow_id, run_id=run_id)

    async def history(self, workflow_id: str) -> list[WorkflowEvent]:
        data = await self._request("GET", self._workflow_url(workflow_id, "/history"), workflow_id)
        return decode_history(data)

    async def result(
        self,
        workflow_id: str,
        run_id: str | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> Any:
        """
        Wait for a run to close and return its result.

        The engine answers with ``{"status": ..., "result": ...}`` once the
        run closes. Any status other than COMPLETED raises
        ``WorkflowFailedError`` carrying the engine's failure message.
        """
        data = await self._request(
            "GET",
            self._workflow_url(workflow_id, "/result"),
            workflow_id,
            params={"runId": run_id} if run_id else None,
            timeout_seconds=timeout_seconds,
        )
        if not isinstance(data, dict):
            raise RunnerError(f"Engine returned an invalid result for {workflow_id}")

        status = str(data.get("status") or "").upper()
        if status == "COMPLETED":
            return data.get("result")

        failure = data.get("failure")
        message = failure.get("message") if isinstance(failure, dict) else data.get("message")
        logger.info("Workflow %s closed with status %s", workflow_id, status or "UNKNOWN")
        raise WorkflowFailedError(
            workflow_id,
            status or "UNKNOWN",
            message if isinstance(message, str) and message else None,
        )

    async def terminate(self, workflow_id: str, reason: str | None = None) -> None:
        body = {"reason": reason} if reason else {}
        await self._request("POST", self._workflow_url(workflow_id, "/terminate"), workflow_id, body)


def _error_for_status(status: int, text: str, workflow_id: str) -> RunnerError:
    message = text.strip() or f"HTTP {status}"
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        message = payload["message"]

    if status == 404:
        return WorkflowNotFoundError(workflow_id)
    if status == 409:
        return WorkflowAlreadyStartedError(workflow_id)
    return RunnerError(message, status_code=status)


__all__ = ["HttpWorkflowRunner"]
