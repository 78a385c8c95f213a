"""Error classification for retry and circuit breaker decisions.

Every failure seen by the resilience layer is mapped onto exactly one
``ErrorCategory``, and every category carries a fixed retry/breaker
disposition. Typed completion errors are matched by class, then by status
code; message sniffing is a last resort reserved for untyped exceptions.
"""

import asyncio
import logging
from typing import Dict, Optional, Tuple

import httpx

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
)
from llm_doc_optimizer.core.resilience.models import ErrorCategory, ErrorClassification

logger = logging.getLogger(__name__)

# category -> (retryable, trips_breaker)
CATEGORY_DISPOSITIONS: Dict[ErrorCategory, Tuple[bool, bool]] = {
    ErrorCategory.RATE_LIMITED: (True, False),
    ErrorCategory.QUOTA_EXCEEDED: (False, False),
    ErrorCategory.MODEL_UNAVAILABLE: (False, False),
    ErrorCategory.CONTENT_REJECTED: (False, False),
    ErrorCategory.CONTEXT_TOO_LARGE: (False, False),
    ErrorCategory.AUTHENTICATION_FAILED: (False, True),
    ErrorCategory.SERVER_ERROR: (True, True),
    ErrorCategory.NETWORK_ERROR: (True, True),
    ErrorCategory.TIMEOUT: (True, True),
    ErrorCategory.CIRCUIT_OPEN: (False, False),
    ErrorCategory.RESOURCE_EXHAUSTED: (False, False),
    ErrorCategory.UNKNOWN: (False, False),
}

# Most specific first: QuotaExceededError must win over its 429 status code.
_TYPED_CATEGORIES: Tuple[Tuple[type, ErrorCategory], ...] = (
    (QuotaExceededError, ErrorCategory.QUOTA_EXCEEDED),
    (RateLimitError, ErrorCategory.RATE_LIMITED),
    (AuthenticationError, ErrorCategory.AUTHENTICATION_FAILED),
    (ModelNotFoundError, ErrorCategory.MODEL_UNAVAILABLE),
    (ContextWindowError, ErrorCategory.CONTEXT_TOO_LARGE),
    (ContentFilterError, ErrorCategory.CONTENT_REJECTED),
    (ServerError, ErrorCategory.SERVER_ERROR),
    (NetworkError, ErrorCategory.NETWORK_ERROR),
    (CompletionTimeoutError, ErrorCategory.TIMEOUT),
    (CircuitBreakerError, ErrorCategory.CIRCUIT_OPEN),
    (DeadlineExceededError, ErrorCategory.TIMEOUT),
    (BudgetExceededError, ErrorCategory.QUOTA_EXCEEDED),
    (BulkheadFullError, ErrorCategory.RESOURCE_EXHAUSTED),
    (asyncio.TimeoutError, ErrorCategory.TIMEOUT),
    (httpx.TimeoutException, ErrorCategory.TIMEOUT),
    (httpx.TransportError, ErrorCategory.NETWORK_ERROR),
    (ConnectionError, ErrorCategory.NETWORK_ERROR),
    (MemoryError, ErrorCategory.RESOURCE_EXHAUSTED),
)

_MESSAGE_HINTS: Tuple[Tuple[Tuple[str, ...], ErrorCategory], ...] = (
    (("rate limit", "too many requests"), ErrorCategory.RATE_LIMITED),
    (("insufficient_quota", "quota"), ErrorCategory.QUOTA_EXCEEDED),
    (("too large", "context length", "maximum context"), ErrorCategory.CONTEXT_TOO_LARGE),
    (("timeout", "timed out", "etimedout"), ErrorCategory.TIMEOUT),
    (("econnreset", "econnrefused", "enotfound", "network", "connection"), ErrorCategory.NETWORK_ERROR),
    (("unauthorized", "invalid api key", "incorrect api key"), ErrorCategory.AUTHENTICATION_FAILED),
    (("out of memory",), ErrorCategory.RESOURCE_EXHAUSTED),
)


def category_for_status(status_code: int, message: str = "") -> Optional[ErrorCategory]:
    """Map an HTTP-like status code to a category, or None if it carries no signal."""
    if status_code == 429:
        return ErrorCategory.RATE_LIMITED
    if status_code == 402:
        return ErrorCategory.QUOTA_EXCEEDED
    if status_code in (401, 403):
        return ErrorCategory.AUTHENTICATION_FAILED
    if status_code == 404:
        return ErrorCategory.MODEL_UNAVAILABLE
    if status_code == 413:
        return ErrorCategory.CONTEXT_TOO_LARGE
    if status_code in (400, 422):
        lowered = message.lower()
        if "context length" in lowered or "too large" in lowered or "maximum context" in lowered:
            return ErrorCategory.CONTEXT_TOO_LARGE
        return ErrorCategory.CONTENT_REJECTED
    if status_code == 408:
        return ErrorCategory.TIMEOUT
    if 500 <= status_code < 600:
        return ErrorCategory.SERVER_ERROR
    return None


def _status_code_of(error: BaseException) -> Optional[int]:
    status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def categorize_error(error: BaseException) -> ErrorCategory:
    """Map any exception onto the closed ``ErrorCategory`` taxonomy."""
    for error_type, category in _TYPED_CATEGORIES:
        if isinstance(error, error_type):
            return category

    status = _status_code_of(error)
    if status is not None:
        category = category_for_status(status, str(error))
        if category is not None:
            return category

    if isinstance(error, CompletionError):
        # Typed but carrying no usable status: treat as a dependency failure.
        return ErrorCategory.SERVER_ERROR

    message = str(error).lower()
    for needles, category in _MESSAGE_HINTS:
        if any(needle in message for needle in needles):
            return category

    return ErrorCategory.UNKNOWN


def classify_error(error: BaseException) -> ErrorClassification:
    """Default classifier used by ``RetryExecutor``.

    Args:
        error: The exception raised by an attempt

    Returns:
        ErrorClassification with the category's fixed disposition and the
        dependency's retry-after hint, when it supplied one
    """
    category = categorize_error(error)
    retryable, trips_breaker = CATEGORY_DISPOSITIONS[category]
    retry_after = getattr(error, "retry_after", None)
    backoff = float(retry_after) if isinstance(retry_after, (int, float)) and retry_after > 0 else None
    return ErrorClassification(
        retryable=retryable,
        trips_breaker=trips_breaker,
        backoff_seconds=backoff,
        category=category,
    )
