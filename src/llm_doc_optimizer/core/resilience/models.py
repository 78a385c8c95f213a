"""Resilience data models, enums, and protocols.

Defines the core types used across the resilience sub-package:
- CircuitState enum for breaker state
- ErrorCategory enum, the closed error taxonomy
- ErrorClassification for retry/circuit-breaker decisions
- RetryOptions, RetryAttempt and RetryResult for the retry executor
- BreakerStatus for observability
- SleepFunc and Clock protocols for injectable time
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Protocol, TypeVar

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class ErrorCategory(str, Enum):
    """Closed taxonomy of failures seen at the completion boundary."""

    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    MODEL_UNAVAILABLE = "model_unavailable"
    CONTENT_REJECTED = "content_rejected"
    CONTEXT_TOO_LARGE = "context_too_large"
    AUTHENTICATION_FAILED = "authentication_failed"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    CIRCUIT_OPEN = "circuit_open"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    UNKNOWN = "unknown"


@dataclass
class ErrorClassification:
    """Classification result for an error.

    Determines how the resilience layer should handle a specific error.
    ``backoff_seconds`` carries a dependency-supplied retry-after hint.
    """

    retryable: bool
    trips_breaker: bool
    backoff_seconds: Optional[float] = None
    category: ErrorCategory = ErrorCategory.UNKNOWN


@dataclass
class RetryOptions:
    """Backoff parameters for one retried call.

    Attributes:
        max_attempts: Total attempts including the first (1 disables retries)
        base_delay: Delay before the first retry (seconds)
        max_delay: Cap for any single delay (seconds)
        exponential_base: Growth factor between consecutive delays
        jitter: Scale each delay by a uniform factor in [0.5, 1.0]
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")


@dataclass
class RetryAttempt:
    """One failed attempt that was followed by a retry."""

    attempt: int
    delay: float
    error: BaseException
    category: ErrorCategory


@dataclass
class RetryResult(Generic[T]):
    """Successful outcome of a retried call."""

    value: T
    attempts: int
    retries: List[RetryAttempt] = field(default_factory=list)

    @property
    def retried_attempts(self) -> int:
        return len(self.retries)


@dataclass
class BreakerStatus:
    """Point-in-time view of a circuit breaker."""

    name: str
    state: CircuitState
    failure_count: int
    last_failure_time: Optional[float]
    is_healthy: bool
    trips: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


class SleepFunc(Protocol):
    """Protocol for injectable sleep function."""

    async def __call__(self, seconds: float) -> None: ...


class Clock(Protocol):
    """Protocol for injectable clocks (``time.monotonic``, ``time.time``)."""

    def __call__(self) -> float: ...
