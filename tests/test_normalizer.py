"""
Tests for error normalization.
"""

import asyncio

import pytest

from tool_gateway.errors import CapabilityNotFoundError, RunnerError, RunnerUnavailableError
from tool_gateway.normalizer import (
    NO_MATCH_REASON,
    ErrorCategory,
    ErrorMapRegistry,
    NormalizedError,
    category_from_status,
    error_message,
    normalize_error,
)


class StatusError(Exception):
    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class CamelStatusError(Exception):
    def __init__(self, message: str, statusCode: int):
        super().__init__(message)
        self.statusCode = statusCode


class CodeError(Exception):
    def __init__(self, message: str, code):
        super().__init__(message)
        self.code = code


class TestStatusCodes:
    @pytest.mark.parametrize(
        "status,category",
        [
            (401, ErrorCategory.AUTH_FAILURE),
            (403, ErrorCategory.AUTH_FAILURE),
            (429, ErrorCategory.RATE_LIMIT),
            (408, ErrorCategory.RETRYABLE),
            (500, ErrorCategory.RETRYABLE),
            (503, ErrorCategory.RETRYABLE),
            (400, ErrorCategory.FATAL),
            (404, ErrorCategory.FATAL),
            (409, ErrorCategory.FATAL),
        ],
    )
    def test_category_from_status(self, status, category):
        assert category_from_status(status) is category

    def test_non_error_status_has_no_category(self):
        assert category_from_status(200) is None
        assert category_from_status(302) is None

    def test_429_is_retryable_rate_limit(self):
        result = normalize_error(StatusError("slow down", 429))

        assert result.category is ErrorCategory.RATE_LIMIT
        assert result.retryable is True
        assert result.original_code == 429

    def test_401_is_not_retryable(self):
        result = normalize_error(StatusError("nope", 401))

        assert result.category is ErrorCategory.AUTH_FAILURE
        assert result.retryable is False
        assert result.non_retryable_reason

    def test_camel_case_status_attribute(self):
        result = normalize_error(CamelStatusError("busy", 503))

        assert result.category is ErrorCategory.RETRYABLE

    def test_numeric_code_attribute(self):
        assert normalize_error(CodeError("x", 429)).category is ErrorCategory.RATE_LIMIT

    def test_string_code_kept_as_original_code(self):
        result = normalize_error(CodeError("something odd", "E_WEIRD"))

        assert result.original_code == "E_WEIRD"
        assert result.category is ErrorCategory.FATAL

    def test_bool_status_is_ignored(self):
        err = StatusError("plain failure", 0)
        err.status_code = True

        assert normalize_error(err).category is ErrorCategory.FATAL

    def test_status_beats_error_map_and_message(self):
        result = normalize_error(
            StatusError("rate limit exceeded", 401),
            lambda e: ErrorCategory.RETRYABLE,
        )

        assert result.category is ErrorCategory.AUTH_FAILURE

    def test_gateway_errors_carry_status(self):
        assert normalize_error(RunnerUnavailableError()).category is ErrorCategory.RETRYABLE
        assert normalize_error(CapabilityNotFoundError("x")).category is ErrorCategory.FATAL


class TestErrorMap:
    def test_error_map_used_without_status(self):
        result = normalize_error(ValueError("quota"), lambda e: ErrorCategory.RATE_LIMIT)

        assert result.category is ErrorCategory.RATE_LIMIT
        assert result.retryable is True

    def test_error_map_may_return_strings(self):
        result = normalize_error(ValueError("x"), lambda e: "RETRYABLE")

        assert result.category is ErrorCategory.RETRYABLE

    def test_error_map_fatal_is_not_retryable(self):
        result = normalize_error(ValueError("timeout"), lambda e: ErrorCategory.FATAL)

        assert result.category is ErrorCategory.FATAL
        assert result.retryable is False

    def test_raising_error_map_falls_through_to_regex(self):
        def broken(e):
            raise RuntimeError("map bug")

        result = normalize_error(ValueError("request timeout"), broken)

        assert result.category is ErrorCategory.RETRYABLE

    def test_invalid_category_falls_through(self):
        result = normalize_error(ValueError("throttled"), lambda e: "MAYBE")

        assert result.category is ErrorCategory.RATE_LIMIT


class TestRegexFallback:
    @pytest.mark.parametrize(
        "message,category",
        [
            ("Rate limit exceeded", ErrorCategory.RATE_LIMIT),
            ("rate-limit hit", ErrorCategory.RATE_LIMIT),
            ("request throttled", ErrorCategory.RATE_LIMIT),
            ("Unauthorized", ErrorCategory.AUTH_FAILURE),
            ("auth check failed", ErrorCategory.AUTH_FAILURE),
            ("invalid API token", ErrorCategory.AUTH_FAILURE),
            ("connect timeout", ErrorCategory.RETRYABLE),
            ("service unavailable", ErrorCategory.RETRYABLE),
            ("please retry later", ErrorCategory.RETRYABLE),
        ],
    )
    def test_patterns(self, message, category):
        assert normalize_error(RuntimeError(message)).category is category

    def test_rate_limit_wins_over_later_patterns(self):
        result = normalize_error(RuntimeError("rate limit: service unavailable"))

        assert result.category is ErrorCategory.RATE_LIMIT

    def test_empty_timeout_error_uses_class_name(self):
        result = normalize_error(asyncio.TimeoutError())

        assert result.message == "TimeoutError"
        assert result.category is ErrorCategory.RETRYABLE


class TestDefault:
    def test_unmatched_is_fatal_with_reason(self):
        result = normalize_error(KeyError("missing"))

        assert result.category is ErrorCategory.FATAL
        assert result.retryable is False
        assert result.non_retryable_reason == NO_MATCH_REASON

    def test_deterministic(self):
        err = RuntimeError("something broke")
        error_map = lambda e: "FATAL"  # noqa: E731

        first = normalize_error(err, error_map)
        assert all(normalize_error(err, error_map) == first for _ in range(5))

    @pytest.mark.parametrize("category", list(ErrorCategory))
    def test_retryable_iff_rate_limit_or_retryable(self, category):
        normalized = NormalizedError(category=category, message="m")

        assert normalized.retryable == (category in (ErrorCategory.RATE_LIMIT, ErrorCategory.RETRYABLE))


class TestMessages:
    def test_message_attribute_preferred(self):
        err = RunnerError("engine rejected", status_code=422)

        assert error_message(err) == "engine rejected"

    def test_to_dict_omits_missing(self):
        data = normalize_error(RuntimeError("throttled")).to_dict()

        assert data == {"category": "RATE_LIMIT", "retryable": True, "message": "throttled"}


class TestErrorMapRegistry:
    def test_register_and_normalize(self):
        registry = ErrorMapRegistry()
        registry.register("cap.one", lambda e: ErrorCategory.RETRYABLE)

        assert "cap.one" in registry
        assert registry.normalize("cap.one", ValueError("x")).category is ErrorCategory.RETRYABLE
        assert registry.normalize("cap.two", ValueError("x")).category is ErrorCategory.FATAL

    def test_unregister(self):
        registry = ErrorMapRegistry()
        registry.register("cap.one", lambda e: "RETRYABLE")
        registry.unregister("cap.one")

        assert registry.get("cap.one") is None

    def test_rejects_non_callable(self):
        with pytest.raises(TypeError):
            ErrorMapRegistry().register("cap.one", "RETRYABLE")
