"""Error-to-ErrorCode mapping registry.

Provides a centralized mapping from exception types to (ErrorCode, ErrorType)
tuples so that every terminal failure yields a stable, user-safe envelope.

Usage:
    from llm_doc_optimizer.core.errors.base import error_to_response

    try:
        outcome = await service.complete(request, identifier=user_id)
    except Exception as e:
        result = error_to_response(e)
        if result is not None:
            return result
        raise  # Unknown error, re-raise
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple, Type

from llm_doc_optimizer.core.errors.completion import (
    AuthenticationError,
    CompletionError,
    CompletionTimeoutError,
    ContentFilterError,
    ContextWindowError,
    ModelNotFoundError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    ServerError,
)
from llm_doc_optimizer.core.errors.resilience import (
    BudgetExceededError,
    BulkheadFullError,
    CircuitBreakerError,
    DeadlineExceededError,
    DegradedServiceError,
    RateLimitExceededError,
)
from llm_doc_optimizer.core.responses import ErrorCode, ErrorType, error_response

logger = logging.getLogger(__name__)

ERROR_MAPPINGS: Dict[Type[Exception], Tuple[ErrorCode, ErrorType]] = {
    # --- Completion dependency errors ---
    RateLimitError: (ErrorCode.RATE_LIMITED, ErrorType.RATE_LIMIT),
    QuotaExceededError: (ErrorCode.QUOTA_EXCEEDED, ErrorType.RATE_LIMIT),
    AuthenticationError: (ErrorCode.AUTHENTICATION_FAILED, ErrorType.AUTHENTICATION),
    ModelNotFoundError: (ErrorCode.MODEL_UNAVAILABLE, ErrorType.NOT_FOUND),
    ContentFilterError: (ErrorCode.CONTENT_REJECTED, ErrorType.AI_PROVIDER),
    ContextWindowError: (ErrorCode.CONTEXT_TOO_LARGE, ErrorType.PAYLOAD_TOO_LARGE),
    ServerError: (ErrorCode.SERVICE_UNAVAILABLE, ErrorType.UNAVAILABLE),
    NetworkError: (ErrorCode.NETWORK_ERROR, ErrorType.UNAVAILABLE),
    CompletionTimeoutError: (ErrorCode.TIMEOUT, ErrorType.UNAVAILABLE),
    CompletionError: (ErrorCode.SERVICE_UNAVAILABLE, ErrorType.AI_PROVIDER),
    # --- Resilience errors ---
    CircuitBreakerError: (ErrorCode.CIRCUIT_OPEN, ErrorType.UNAVAILABLE),
    BulkheadFullError: (ErrorCode.RESOURCE_BUSY, ErrorType.UNAVAILABLE),
    DeadlineExceededError: (ErrorCode.TIMEOUT, ErrorType.UNAVAILABLE),
    RateLimitExceededError: (ErrorCode.RATE_LIMITED, ErrorType.RATE_LIMIT),
    BudgetExceededError: (ErrorCode.BUDGET_EXCEEDED, ErrorType.RATE_LIMIT),
    # --- Local failures ---
    MemoryError: (ErrorCode.RESOURCE_EXHAUSTED, ErrorType.INTERNAL),
}

# User-safe messages for mapped errors whose own text may carry dependency details.
USER_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.RATE_LIMITED: "Service is experiencing high demand. Please try again in a few moments.",
    ErrorCode.QUOTA_EXCEEDED: "Usage quota has been reached. Please try again later.",
    ErrorCode.BUDGET_EXCEEDED: "Token budget exceeded.",
    ErrorCode.RESOURCE_BUSY: "Service is busy. Please try again shortly.",
    ErrorCode.AUTHENTICATION_FAILED: "Authentication failed. Please check your API key.",
    ErrorCode.MODEL_UNAVAILABLE: "The requested model is not available.",
    ErrorCode.CONTENT_REJECTED: "The document content could not be processed.",
    ErrorCode.CONTEXT_TOO_LARGE: "Document is too large to process. Please try with a smaller document.",
    ErrorCode.SERVICE_UNAVAILABLE: "The AI service is temporarily unavailable. Please try again later.",
    ErrorCode.NETWORK_ERROR: "Could not reach the AI service. Please try again later.",
    ErrorCode.TIMEOUT: "Request timed out. Please try again with a smaller document.",
    ErrorCode.CIRCUIT_OPEN: "Service is temporarily disabled due to multiple failures. Please try again later.",
    ErrorCode.RESOURCE_EXHAUSTED: "Server is temporarily overloaded. Please try again later.",
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred. Our team has been notified.",
}


def lookup_mapping(exc: BaseException) -> Optional[Tuple[ErrorCode, ErrorType]]:
    """Return the mapping for the most specific registered base of ``exc``."""
    for klass in type(exc).__mro__:
        mapping = ERROR_MAPPINGS.get(klass)
        if mapping is not None:
            return mapping
    return None


def error_to_response(exc: Exception) -> Optional[dict]:
    """Convert a known exception to a standard error response dict, or None if unknown.

    Walks the exception's MRO against ERROR_MAPPINGS. The envelope's ``error``
    field is always a user-safe message; the exception text itself is logged
    at debug level only.

    Args:
        exc: The exception to convert.

    Returns:
        A dict with ``success``/``data``/``error``/``meta`` keys, or None if
        no registered type matches.
    """
    if isinstance(exc, DegradedServiceError):
        data: Dict[str, Any] = {}
        if exc.strategy is not None:
            data["error_type_hint"] = exc.strategy.category.value
            data["severity"] = exc.strategy.severity.value
        return error_response(exc.user_message, error_code=exc.code, data=data).to_dict()

    mapping = lookup_mapping(exc)
    if mapping is None:
        return None

    code, error_type = mapping
    data = {}
    rate_limit = None
    message = USER_MESSAGES.get(code, USER_MESSAGES[ErrorCode.INTERNAL_ERROR])

    if isinstance(exc, RateLimitExceededError):
        data["retry_after"] = exc.retry_after
        rate_limit = {
            "limit": exc.info.limit,
            "remaining": exc.info.remaining,
            "reset_time": exc.info.reset_time,
        }
    elif isinstance(exc, BudgetExceededError):
        message = exc.reason
    else:
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is not None:
            data["retry_after"] = retry_after

    logger.debug("Mapped %s to %s: %s", type(exc).__name__, code.value, exc)
    return error_response(message, error_code=code, error_type=error_type, data=data, rate_limit=rate_limit).to_dict()
