"""Per-concern configuration dataclasses.

Each dataclass maps to one TOML table (``[retry]``, ``[rate_limit]``, ...)
and knows how to build itself from the parsed table via ``from_toml_dict``.
All durations are in seconds.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from llm_doc_optimizer.config.parsing import (
    _parse_bool,
    _parse_positive_float,
    _parse_positive_int,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Retry and circuit breaker settings for the completion dependency.

    Attributes:
        max_attempts: Total attempts per call (1 disables retries)
        base_delay: Backoff delay before the first retry (seconds)
        max_delay: Upper bound for any single backoff delay (seconds)
        exponential_base: Growth factor between consecutive delays
        jitter: Scale each delay by a uniform factor in [0.5, 1.0]
        failure_threshold: Breaker-tripping failures before the circuit opens
        recovery_timeout: Seconds after the last failure before a probe is allowed
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    failure_threshold: int = 5
    recovery_timeout: float = 60.0

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "RetryConfig":
        """Create config from TOML dict (typically [retry] section).

        Args:
            data: Dict from TOML parsing

        Returns:
            RetryConfig instance
        """
        return cls(
            max_attempts=_parse_positive_int(data.get("max_attempts", 3), 3, field_name="retry.max_attempts"),
            base_delay=float(data.get("base_delay", 1.0)),
            max_delay=float(data.get("max_delay", 30.0)),
            exponential_base=float(data.get("exponential_base", 2.0)),
            jitter=_parse_bool(data.get("jitter", True)),
            failure_threshold=_parse_positive_int(
                data.get("failure_threshold", 5), 5, field_name="retry.failure_threshold"
            ),
            recovery_timeout=_parse_positive_float(
                data.get("recovery_timeout", 60.0), 60.0, field_name="retry.recovery_timeout"
            ),
        )


@dataclass
class RateLimitConfig:
    """Sliding-window admission limits per caller identity.

    Attributes:
        max_requests: Requests admitted per window
        window_seconds: Trailing window length
        max_tokens: Estimated tokens admitted per window
    """

    max_requests: int = 100
    window_seconds: float = 3600.0
    max_tokens: int = 50000

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "RateLimitConfig":
        return cls(
            max_requests=_parse_positive_int(
                data.get("max_requests", 100), 100, field_name="rate_limit.max_requests"
            ),
            window_seconds=_parse_positive_float(
                data.get("window_seconds", 3600.0), 3600.0, field_name="rate_limit.window_seconds"
            ),
            max_tokens=_parse_positive_int(data.get("max_tokens", 50000), 50000, field_name="rate_limit.max_tokens"),
        )


@dataclass
class TokenBudgetConfig:
    """Calendar token budgets per user.

    Attributes:
        daily_limit: Tokens allowed since local midnight
        monthly_limit: Tokens allowed since the first of the month
        retention_days: Spend events older than this are pruned
        timezone: IANA zone that defines day and month boundaries
    """

    daily_limit: int = 10000
    monthly_limit: int = 250000
    retention_days: int = 90
    timezone: str = "UTC"

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "TokenBudgetConfig":
        return cls(
            daily_limit=_parse_positive_int(data.get("daily_limit", 10000), 10000, field_name="tokens.daily_limit"),
            monthly_limit=_parse_positive_int(
                data.get("monthly_limit", 250000), 250000, field_name="tokens.monthly_limit"
            ),
            retention_days=_parse_positive_int(
                data.get("retention_days", 90), 90, field_name="tokens.retention_days"
            ),
            timezone=str(data.get("timezone", "UTC")),
        )


@dataclass
class BulkheadConfig:
    """Concurrency isolation for outbound completion calls."""

    max_concurrency: int = 10
    max_queue_size: int = 100

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "BulkheadConfig":
        max_queue_size = int(data.get("max_queue_size", 100))
        if max_queue_size < 0:
            logger.warning("bulkhead.max_queue_size must be >= 0, got %s. Using 0", max_queue_size)
            max_queue_size = 0
        return cls(
            max_concurrency=_parse_positive_int(
                data.get("max_concurrency", 10), 10, field_name="bulkhead.max_concurrency"
            ),
            max_queue_size=max_queue_size,
        )


@dataclass
class TimeoutConfig:
    """Adaptive per-attempt deadline settings.

    Attributes:
        base_timeout: Floor for the deadline, used until samples accumulate
        multiplier: Factor applied to the observed p95 latency
        max_samples: Size of the latency ring buffer
    """

    base_timeout: float = 30.0
    multiplier: float = 2.0
    max_samples: int = 50

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "TimeoutConfig":
        return cls(
            base_timeout=_parse_positive_float(
                data.get("base_timeout", 30.0), 30.0, field_name="timeout.base_timeout"
            ),
            multiplier=_parse_positive_float(data.get("multiplier", 2.0), 2.0, field_name="timeout.multiplier"),
            max_samples=_parse_positive_int(data.get("max_samples", 50), 50, field_name="timeout.max_samples"),
        )


@dataclass
class CacheConfig:
    """Two-tier cache settings.

    Attributes:
        enabled: Whether completion results are cached at all
        ttl: Default entry lifetime (seconds) in the shared tier
        l1_max_size: Entry cap for the in-process tier
        l1_max_ttl: Ceiling for any in-process entry lifetime
        l2_max_size: Entry cap for the in-process fallback shared tier
        redis_url: Shared tier location; in-process fallback when unset
        key_prefix: Namespace prepended to every shared-tier key
    """

    enabled: bool = True
    ttl: int = 3600
    l1_max_size: int = 1000
    l1_max_ttl: int = 300
    l2_max_size: int = 10000
    redis_url: Optional[str] = None
    key_prefix: str = "llm-doc-optimizer:"

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        return cls(
            enabled=_parse_bool(data.get("enabled", True)),
            ttl=_parse_positive_int(data.get("ttl", 3600), 3600, field_name="cache.ttl"),
            l1_max_size=_parse_positive_int(data.get("l1_max_size", 1000), 1000, field_name="cache.l1_max_size"),
            l1_max_ttl=_parse_positive_int(data.get("l1_max_ttl", 300), 300, field_name="cache.l1_max_ttl"),
            l2_max_size=_parse_positive_int(
                data.get("l2_max_size", 10000), 10000, field_name="cache.l2_max_size"
            ),
            redis_url=data.get("redis_url") or None,
            key_prefix=str(data.get("key_prefix", "llm-doc-optimizer:")),
        )


@dataclass
class ErrorStrategyConfig:
    """Error history, escalation and health-derivation settings."""

    history_size: int = 100
    escalation_window: float = 3600.0
    high_threshold: int = 10
    critical_threshold: int = 25
    health_window: float = 300.0
    health_threshold: int = 3
    rate_limit_wait: float = 60.0

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ErrorStrategyConfig":
        return cls(
            history_size=_parse_positive_int(
                data.get("history_size", 100), 100, field_name="error_strategy.history_size"
            ),
            escalation_window=float(data.get("escalation_window", 3600.0)),
            high_threshold=int(data.get("high_threshold", 10)),
            critical_threshold=int(data.get("critical_threshold", 25)),
            health_window=float(data.get("health_window", 300.0)),
            health_threshold=int(data.get("health_threshold", 3)),
            rate_limit_wait=float(data.get("rate_limit_wait", 60.0)),
        )


@dataclass
class ErrorReportingConfig:
    """Configuration for shipping error reports to an external collector.

    Attributes:
        enabled: Whether reports are sent at all
        endpoint: Collector URL receiving JSON batches
        api_key: Bearer credential for the collector
        batch_size: Reports buffered before an automatic flush
        include_stack_traces: Attach formatted tracebacks to reports
        include_sensitive_data: Skip redaction (never enable in production)
        timeout: HTTP timeout for the collector request (seconds)
    """

    enabled: bool = False
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    batch_size: int = 10
    include_stack_traces: bool = True
    include_sensitive_data: bool = False
    timeout: float = 10.0

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ErrorReportingConfig":
        return cls(
            enabled=_parse_bool(data.get("enabled", False)),
            endpoint=data.get("endpoint") or None,
            api_key=data.get("api_key") or None,
            batch_size=_parse_positive_int(data.get("batch_size", 10), 10, field_name="error_reporting.batch_size"),
            include_stack_traces=_parse_bool(data.get("include_stack_traces", True)),
            include_sensitive_data=_parse_bool(data.get("include_sensitive_data", False)),
            timeout=_parse_positive_float(data.get("timeout", 10.0), 10.0, field_name="error_reporting.timeout"),
        )


@dataclass
class HealthConfig:
    """Configuration for health probes.

    Attributes:
        enabled: Whether default probes are registered
        probe_timeout: Seconds a single probe may run before it counts as unhealthy
    """

    enabled: bool = True
    probe_timeout: float = 5.0

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "HealthConfig":
        return cls(
            enabled=_parse_bool(data.get("enabled", True)),
            probe_timeout=_parse_positive_float(data.get("probe_timeout", 5.0), 5.0, field_name="health.probe_timeout"),
        )


@dataclass
class CompletionConfig:
    """Completion API client settings.

    Attributes:
        api_key: Provider credential
        base_url: OpenAI-compatible API root
        model: Default model for requests that do not name one
        request_timeout: Client-side HTTP timeout (seconds)
        provider: Name used in logs and error attributes
    """

    api_key: Optional[str] = None
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    request_timeout: float = 60.0
    provider: str = "openai"

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "CompletionConfig":
        return cls(
            api_key=data.get("api_key") or None,
            base_url=str(data.get("base_url", "https://api.openai.com/v1")).rstrip("/"),
            model=str(data.get("model", "gpt-4o-mini")),
            request_timeout=_parse_positive_float(
                data.get("request_timeout", 60.0), 60.0, field_name="completion.request_timeout"
            ),
            provider=str(data.get("provider", "openai")),
        )
