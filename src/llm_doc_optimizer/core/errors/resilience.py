"""Resilience error classes.

These failures are synthesized by the flow-control layer itself rather than
derived from a dependency error, so callers can special-case them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from llm_doc_optimizer.core.error_strategies import ErrorRecoveryStrategy
    from llm_doc_optimizer.core.rate_limit import RateLimitInfo
    from llm_doc_optimizer.core.resilience.models import CircuitState


class CircuitBreakerError(Exception):
    """Circuit breaker is open and rejecting requests.

    Attributes:
        breaker_name: Name of the circuit breaker.
        state: Current state of the breaker.
        retry_after: Seconds until the recovery timeout elapses.
    """

    def __init__(
        self,
        message: str,
        breaker_name: Optional[str] = None,
        state: Optional[CircuitState] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.breaker_name = breaker_name
        self.state = state
        self.retry_after = retry_after


class BulkheadFullError(Exception):
    """Bulkhead is at capacity and its wait queue is full.

    Attributes:
        bulkhead_name: Name of the bulkhead.
        max_concurrency: Configured concurrency cap.
        max_queue_size: Configured queue capacity.
    """

    def __init__(
        self,
        message: str = "Bulkhead queue is full",
        bulkhead_name: Optional[str] = None,
        max_concurrency: Optional[int] = None,
        max_queue_size: Optional[int] = None,
    ):
        super().__init__(message)
        self.bulkhead_name = bulkhead_name
        self.max_concurrency = max_concurrency
        self.max_queue_size = max_queue_size


class DeadlineExceededError(Exception):
    """An attempt did not finish before its adaptive deadline.

    Attributes:
        timeout_seconds: The deadline that was exceeded.
        operation: Name of the operation that timed out.
    """

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
        self.operation = operation


class RateLimitExceededError(Exception):
    """Caller exceeded its request or token window.

    Attributes:
        info: The limiter decision that denied the call.
        limit_type: ``"requests"`` or ``"tokens"``.
        identifier: Caller identity that was limited.
    """

    def __init__(
        self,
        message: str,
        info: RateLimitInfo,
        *,
        limit_type: str = "requests",
        identifier: Optional[str] = None,
    ):
        super().__init__(message)
        self.info = info
        self.limit_type = limit_type
        self.identifier = identifier

    @property
    def retry_after(self) -> float:
        return self.info.retry_after


class BudgetExceededError(Exception):
    """Caller's daily or monthly token budget would be exceeded.

    Attributes:
        reason: Which limit was violated (daily before monthly).
        period: ``"daily"`` or ``"monthly"``.
        budget: Budget snapshot at decision time.
    """

    def __init__(
        self,
        reason: str,
        *,
        period: Optional[str] = None,
        budget: Any = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.period = period
        self.budget = budget


class DegradedServiceError(Exception):
    """Terminal failure after recovery and fallbacks were exhausted.

    ``str(exc)`` is the user-safe message. The underlying error is chained
    as ``__cause__`` and is only ever logged.

    Attributes:
        user_message: Message safe to show to the caller.
        code: Stable error code for the failure category.
        strategy: Strategy computed for the underlying error.
    """

    def __init__(
        self,
        user_message: str,
        *,
        code: str,
        strategy: Optional[ErrorRecoveryStrategy] = None,
    ):
        super().__init__(user_message)
        self.user_message = user_message
        self.code = code
        self.strategy = strategy
