"""Resilience primitives for calls to the completion dependency.

Re-exports the public API so consumers can import directly::

    from llm_doc_optimizer.core.resilience import (
        RetryExecutor,
        CircuitBreaker,
        Bulkhead,
        AdaptiveTimeout,
        classify_error,
    )
"""

from llm_doc_optimizer.core.resilience.bulkhead import Bulkhead, BulkheadStatus
from llm_doc_optimizer.core.resilience.circuit_breaker import CircuitBreaker
from llm_doc_optimizer.core.resilience.classification import (
    CATEGORY_DISPOSITIONS,
    categorize_error,
    category_for_status,
    classify_error,
)
from llm_doc_optimizer.core.resilience.manager import ResilienceManager, retry_options_from_config
from llm_doc_optimizer.core.resilience.models import (
    BreakerStatus,
    CircuitState,
    Clock,
    ErrorCategory,
    ErrorClassification,
    RetryAttempt,
    RetryOptions,
    RetryResult,
    SleepFunc,
)
from llm_doc_optimizer.core.resilience.retry import RetryExecutor, compute_backoff_delay
from llm_doc_optimizer.core.resilience.timeout import AdaptiveTimeout, run_with_deadline

__all__ = [
    # Models
    "BreakerStatus",
    "CircuitState",
    "Clock",
    "ErrorCategory",
    "ErrorClassification",
    "RetryAttempt",
    "RetryOptions",
    "RetryResult",
    "SleepFunc",
    # Classification
    "CATEGORY_DISPOSITIONS",
    "categorize_error",
    "category_for_status",
    "classify_error",
    # Components
    "AdaptiveTimeout",
    "Bulkhead",
    "BulkheadStatus",
    "CircuitBreaker",
    "RetryExecutor",
    "compute_backoff_delay",
    "run_with_deadline",
    # Manager
    "ResilienceManager",
    "retry_options_from_config",
]
