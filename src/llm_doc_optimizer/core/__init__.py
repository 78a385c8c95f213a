"""Flow-control core for llm-doc-optimizer.

Retry with circuit breaking, rate limiting and token budgets, bulkheads
with adaptive timeouts, tiered caching, error strategies and health checks
for outbound completion calls.
"""

from llm_doc_optimizer.core.resilience import (
    AdaptiveTimeout,
    Bulkhead,
    CircuitBreaker,
    CircuitState,
    ErrorCategory,
    ResilienceManager,
    RetryExecutor,
    RetryOptions,
    RetryResult,
    classify_error,
)

from llm_doc_optimizer.core.rate_limit import (
    RateLimiter,
    RateLimitInfo,
    rate_limit_headers,
)

from llm_doc_optimizer.core.tokens import (
    TokenBudget,
    TokenLedger,
    calculate_cost,
    estimate_cost,
)

from llm_doc_optimizer.core.cache import (
    CacheKeyGenerator,
    MemoryCache,
    RedisCache,
    TieredCache,
    create_cache,
)

from llm_doc_optimizer.core.error_strategies import (
    ErrorContext,
    ErrorRecoveryStrategy,
    ErrorStrategyManager,
    Severity,
    get_error_strategy_manager,
    with_graceful_degradation,
)

from llm_doc_optimizer.core.error_reporter import ErrorReporter

from llm_doc_optimizer.core.health import (
    HealthChecker,
    HealthCheckResult,
    HealthReport,
    register_default_probes,
)

from llm_doc_optimizer.core.completion import (
    CompletionRequest,
    CompletionResponse,
    HttpCompletionClient,
    ResilientCompletionService,
)

__all__ = [
    "AdaptiveTimeout",
    "Bulkhead",
    "CircuitBreaker",
    "CircuitState",
    "ErrorCategory",
    "ResilienceManager",
    "RetryExecutor",
    "RetryOptions",
    "RetryResult",
    "classify_error",
    "RateLimiter",
    "RateLimitInfo",
    "rate_limit_headers",
    "TokenBudget",
    "TokenLedger",
    "calculate_cost",
    "estimate_cost",
    "CacheKeyGenerator",
    "MemoryCache",
    "RedisCache",
    "TieredCache",
    "create_cache",
    "ErrorContext",
    "ErrorRecoveryStrategy",
    "ErrorStrategyManager",
    "Severity",
    "get_error_strategy_manager",
    "with_graceful_degradation",
    "ErrorReporter",
    "HealthChecker",
    "HealthCheckResult",
    "HealthReport",
    "register_default_probes",
    "CompletionRequest",
    "CompletionResponse",
    "HttpCompletionClient",
    "ResilientCompletionService",
]
