"""Configuration for llm-doc-optimizer.

Loads settings from layered TOML files and environment variables.

Example:
    from llm_doc_optimizer.config import get_config

    config = get_config()
    config.setup_logging()
    print(config.rate_limit.max_requests)
"""

from llm_doc_optimizer.config.domains import (
    BulkheadConfig,
    CacheConfig,
    CompletionConfig,
    ErrorReportingConfig,
    ErrorStrategyConfig,
    HealthConfig,
    RateLimitConfig,
    RetryConfig,
    TimeoutConfig,
    TokenBudgetConfig,
)
from llm_doc_optimizer.config.service import ServiceConfig, get_config, set_config

__all__ = [
    "BulkheadConfig",
    "CacheConfig",
    "CompletionConfig",
    "ErrorReportingConfig",
    "ErrorStrategyConfig",
    "HealthConfig",
    "RateLimitConfig",
    "RetryConfig",
    "ServiceConfig",
    "TimeoutConfig",
    "TokenBudgetConfig",
    "get_config",
    "set_config",
]
