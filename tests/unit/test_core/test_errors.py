"""Tests for error_to_response and the error mapping registry."""

import pytest

from llm_doc_optimizer.core.error_strategies import ErrorContext, ErrorStrategyManager
from llm_doc_optimizer.core.errors import (
    ERROR_MAPPINGS,
    USER_MESSAGES,
    AuthenticationError,
    BudgetExceededError,
    BulkheadFullError,
    CircuitBreakerError,
    CompletionError,
    ContextWindowError,
    DegradedServiceError,
    RateLimitError,
    RateLimitExceededError,
    ServerError,
    error_to_response,
    lookup_mapping,
)
from llm_doc_optimizer.core.rate_limit import RateLimitInfo
from llm_doc_optimizer.core.responses import ErrorCode, ErrorType


class CustomServerError(ServerError):
    pass


class TestLookupMapping:
    """Tests for lookup_mapping."""

    def test_most_specific_class_wins(self):
        assert lookup_mapping(RateLimitError()) == (ErrorCode.RATE_LIMITED, ErrorType.RATE_LIMIT)
        assert lookup_mapping(CompletionError("x")) == (ErrorCode.SERVICE_UNAVAILABLE, ErrorType.AI_PROVIDER)

    def test_subclasses_inherit_mapping(self):
        assert lookup_mapping(CustomServerError()) == ERROR_MAPPINGS[ServerError]

    def test_unknown_error(self):
        assert lookup_mapping(ValueError("x")) is None

    def test_every_mapped_code_has_a_message(self):
        for code, _ in ERROR_MAPPINGS.values():
            assert code in USER_MESSAGES


class TestErrorToResponse:
    """Tests for error_to_response."""

    def test_unknown_error_returns_none(self):
        assert error_to_response(KeyError("x")) is None

    def test_message_is_user_safe(self):
        envelope = error_to_response(AuthenticationError("Incorrect API key provided: sk-live-123"))
        assert envelope["success"] is False
        assert envelope["error"] == USER_MESSAGES[ErrorCode.AUTHENTICATION_FAILED]
        assert "sk-live" not in str(envelope)
        assert envelope["data"]["error_code"] == "AUTHENTICATION_FAILED"
        assert envelope["data"]["error_type"] == "authentication"

    def test_dependency_retry_after(self):
        envelope = error_to_response(RateLimitError(retry_after=9))
        assert envelope["data"]["retry_after"] == 9

    def test_rate_limit_exceeded_includes_window(self):
        info = RateLimitInfo(allowed=False, remaining=0, reset_time=1_700_000_060.0, limit=100, retry_after=42.0)
        envelope = error_to_response(RateLimitExceededError("Rate limit exceeded", info, identifier="u1"))
        assert envelope["data"]["retry_after"] == 42.0
        assert envelope["meta"]["rate_limit"] == {"limit": 100, "remaining": 0, "reset_time": 1_700_000_060.0}

    def test_budget_exceeded_uses_reason(self):
        envelope = error_to_response(BudgetExceededError("Daily token limit exceeded", period="daily"))
        assert envelope["error"] == "Daily token limit exceeded"
        assert envelope["data"]["error_code"] == "BUDGET_EXCEEDED"

    @pytest.mark.parametrize(
        "error,code",
        [
            (BulkheadFullError(), "RESOURCE_BUSY"),
            (CircuitBreakerError("open", retry_after=30.0), "CIRCUIT_OPEN"),
            (ContextWindowError(), "CONTEXT_TOO_LARGE"),
            (MemoryError(), "RESOURCE_EXHAUSTED"),
        ],
    )
    def test_codes(self, error, code):
        assert error_to_response(error)["data"]["error_code"] == code

    def test_degraded_error_keeps_strategy_details(self):
        strategy = ErrorStrategyManager().analyze_error(ServerError(), ErrorContext(operation="optimize"))
        error = DegradedServiceError(strategy.user_message, code=strategy.code, strategy=strategy)
        envelope = error_to_response(error)
        assert envelope["error"] == strategy.user_message
        assert envelope["data"]["error_code"] == "SERVICE_UNAVAILABLE"
        assert envelope["data"]["error_type_hint"] == "server_error"
        assert envelope["data"]["severity"] == "high"
