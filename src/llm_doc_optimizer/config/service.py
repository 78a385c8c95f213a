"""ServiceConfig dataclass and global configuration state.

This module defines the ``ServiceConfig`` class (field declarations and
simple accessors) and the global ``get_config`` / ``set_config`` helpers.
Loading and validation logic lives in the ``_ServiceConfigLoader`` mixin
(``loader.py``) which ``ServiceConfig`` inherits from.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

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
from llm_doc_optimizer.config.loader import _ServiceConfigLoader


@dataclass
class ServiceConfig(_ServiceConfigLoader):
    """Service configuration with support for env vars and TOML overrides."""

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = True

    # Completion dependency
    completion: CompletionConfig = field(default_factory=CompletionConfig)

    # Flow control
    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    tokens: TokenBudgetConfig = field(default_factory=TokenBudgetConfig)
    bulkhead: BulkheadConfig = field(default_factory=BulkheadConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)

    # Caching
    cache: CacheConfig = field(default_factory=CacheConfig)

    # Error handling and health
    error_strategy: ErrorStrategyConfig = field(default_factory=ErrorStrategyConfig)
    error_reporting: ErrorReportingConfig = field(default_factory=ErrorReportingConfig)
    health: HealthConfig = field(default_factory=HealthConfig)

    startup_warnings: List[str] = field(default_factory=list, repr=False)
    loaded_files: List[str] = field(default_factory=list, repr=False)

    def _add_startup_warning(self, message: str) -> None:
        if message and message not in self.startup_warnings:
            self.startup_warnings.append(message)

    def to_dict(self, *, redact: bool = True) -> Dict[str, Any]:
        """Return the effective configuration, with secrets masked by default."""
        from llm_doc_optimizer.core.observability.redaction import redact_sensitive_data

        data = asdict(self)
        data.pop("startup_warnings", None)
        data.pop("loaded_files", None)
        return redact_sensitive_data(data) if redact else data

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        level = getattr(logging, self.log_level, logging.INFO)

        if self.structured_logging:
            # JSON-style structured logging
            formatter = logging.Formatter(
                '{"timestamp":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
            )
        else:
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        handler = logging.StreamHandler()
        handler.setFormatter(formatter)

        root_logger = logging.getLogger("llm_doc_optimizer")
        root_logger.setLevel(level)
        root_logger.addHandler(handler)


# Global configuration instance
_config: Optional[ServiceConfig] = None


def get_config() -> ServiceConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ServiceConfig.from_env()
    return _config


def set_config(config: Optional[ServiceConfig]) -> None:
    """Set (or with None, clear) the global configuration instance."""
    global _config
    _config = config
