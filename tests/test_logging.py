"""
Tests for structured logging.
"""

import io
import json
import uuid

import pytest

from tool_gateway.logging import (
    LogContext,
    StructuredLogger,
    Timer,
    ToolCallLog,
    generate_trace_id,
    redact_secret,
    timed,
)


def make_logger(json_output=True, level="DEBUG"):
    stream = io.StringIO()
    logger = StructuredLogger(f"tool_gateway_test.{uuid.uuid4().hex}", level=level, json_output=json_output, stream=stream)
    return logger, stream


def records(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestStructuredLogger:
    def test_json_output(self):
        logger, stream = make_logger()

        logger.info("dispatching", tool="demo.echo")

        (record,) = records(stream)
        assert record["message"] == "dispatching"
        assert record["tool"] == "demo.echo"
        assert record["level"] == "INFO"

    def test_level_filtering(self):
        logger, stream = make_logger(level="WARNING")

        logger.info("hidden")
        logger.warning("shown")

        assert [r["message"] for r in records(stream)] == ["shown"]

    def test_trace_context_restored(self):
        logger, stream = make_logger()

        with logger.trace_context("trace-1", tool="demo.echo", extra={"workflow_id": "wf"}) as trace_id:
            assert trace_id == "trace-1"
            logger.info("inside")
        logger.info("outside")

        inside, outside = records(stream)
        assert inside["trace_id"] == "trace-1"
        assert inside["workflow_id"] == "wf"
        assert "trace_id" not in outside

    def test_trace_context_generates_id(self):
        logger, _ = make_logger()

        with logger.trace_context() as trace_id:
            assert trace_id.startswith("trace_")

    def test_log_tool_call(self):
        logger, stream = make_logger()

        logger.log_tool_call(ToolCallLog(tool="demo.echo", trace_id="t", duration_ms=12.3))
        logger.log_tool_call(ToolCallLog(tool="cap.flaky", trace_id="t", success=False, error="boom", category="FATAL"))

        ok, failed = records(stream)
        assert ok["event_type"] == "tool_call"
        assert ok["level"] == "INFO"
        assert "(12ms)" in ok["message"]
        assert failed["level"] == "WARNING"
        assert failed["category"] == "FATAL"

    def test_exception_includes_traceback(self):
        logger, stream = make_logger()

        try:
            raise RuntimeError("kaboom")
        except RuntimeError:
            logger.exception("failed")

        (record,) = records(stream)
        assert "kaboom" in record["exception"]

    def test_text_output(self):
        logger, stream = make_logger(json_output=False)

        logger.warning("slow call", tool="demo.echo")

        line = stream.getvalue().strip()
        assert "WARNING" in line
        assert "slow call tool=demo.echo" in line


class TestHelpers:
    def test_log_context_merges_extra(self):
        ctx = LogContext(trace_id="t").with_update(extra={"a": 1})

        assert ctx.to_dict() == {"trace_id": "t", "a": 1}

    def test_generate_trace_id_unique(self):
        assert generate_trace_id() != generate_trace_id()

    @pytest.mark.parametrize(
        "secret,expected",
        [(None, "<not set>"), ("", "<not set>"), ("short", "***"), ("abcdefghijkl", "ab...kl")],
    )
    def test_redact_secret(self, secret, expected):
        assert redact_secret(secret) == expected

    def test_timed(self):
        with timed() as timer:
            pass

        assert isinstance(timer, Timer)
        assert timer.end_time is not None
        assert timer.elapsed_ms >= 0

    def test_tool_call_log_omits_none(self):
        data = ToolCallLog(tool="demo.echo", trace_id="t").to_dict()

        assert "error" not in data
        assert data["success"] is True
