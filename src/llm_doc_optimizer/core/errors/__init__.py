"""Unified error hierarchy for llm-doc-optimizer.

Exception classes are defined in domain-specific modules within this
package; this __init__.py re-exports everything for convenient access.

Usage:
    # Import from domain modules for specificity
    from llm_doc_optimizer.core.errors.completion import RateLimitError

    # Or from the package
    from llm_doc_optimizer.core.errors import CircuitBreakerError, error_to_response
"""

# --- Base / Registry ---
from llm_doc_optimizer.core.errors.base import (
    ERROR_MAPPINGS,
    USER_MESSAGES,
    error_to_response,
    lookup_mapping,
)

# --- Completion dependency errors ---
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

# --- Resilience errors ---
from llm_doc_optimizer.core.errors.resilience import (
    BudgetExceededError,
    BulkheadFullError,
    CircuitBreakerError,
    DeadlineExceededError,
    DegradedServiceError,
    RateLimitExceededError,
)

__all__ = [
    # Base / Registry
    "ERROR_MAPPINGS",
    "USER_MESSAGES",
    "error_to_response",
    "lookup_mapping",
    # Completion
    "AuthenticationError",
    "CompletionError",
    "CompletionTimeoutError",
    "ContentFilterError",
    "ContextWindowError",
    "ModelNotFoundError",
    "NetworkError",
    "QuotaExceededError",
    "RateLimitError",
    "ServerError",
    # Resilience
    "BudgetExceededError",
    "BulkheadFullError",
    "CircuitBreakerError",
    "DeadlineExceededError",
    "DegradedServiceError",
    "RateLimitExceededError",
]
