"""Process-level wiring of the flow-control components.

``ServiceRuntime.from_config`` builds every shared component exactly once:
one limiter, one ledger, one cache, one resilience registry, one strategy
manager, one reporter and one health checker. Consumers receive them
explicitly (normally through ``get_completion_service``); nothing here is
a hidden global. ``aclose`` tears everything down at shutdown.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from llm_doc_optimizer.config import ServiceConfig
from llm_doc_optimizer.core.cache import TieredCache, create_cache
from llm_doc_optimizer.core.completion import CompletionClient, HttpCompletionClient, ResilientCompletionService
from llm_doc_optimizer.core.error_reporter import ErrorReporter
from llm_doc_optimizer.core.error_strategies import ErrorStrategyManager
from llm_doc_optimizer.core.health import HealthChecker, register_default_probes
from llm_doc_optimizer.core.rate_limit import RateLimiter
from llm_doc_optimizer.core.resilience import ResilienceManager, SleepFunc
from llm_doc_optimizer.core.tokens import TokenLedger

logger = logging.getLogger(__name__)

COMPLETION_DEPENDENCY = "completion_api"


@dataclass
class ServiceRuntime:
    """Every shared flow-control component of one process."""

    config: ServiceConfig
    client: CompletionClient
    limiter: RateLimiter
    ledger: TokenLedger
    resilience: ResilienceManager
    strategy_manager: ErrorStrategyManager
    reporter: ErrorReporter
    health: HealthChecker
    cache: Optional[TieredCache] = None
    _service: Optional[ResilientCompletionService] = field(default=None, repr=False)

    @classmethod
    def from_config(
        cls,
        config: ServiceConfig,
        client: Optional[CompletionClient] = None,
        *,
        sleep_func: Optional[SleepFunc] = None,
    ) -> "ServiceRuntime":
        """Construct the runtime described by ``config``.

        Args:
            config: Effective service configuration
            client: Completion client; an ``HttpCompletionClient`` is built if omitted
            sleep_func: Injectable async sleep for retries and recovery waits
        """
        strategy_kwargs: Dict[str, Any] = {}
        if sleep_func is not None:
            strategy_kwargs["sleep_func"] = sleep_func
        es = config.error_strategy

        runtime = cls(
            config=config,
            client=client or HttpCompletionClient(config.completion),
            limiter=RateLimiter(
                max_requests=config.rate_limit.max_requests,
                window_seconds=config.rate_limit.window_seconds,
                max_tokens=config.rate_limit.max_tokens,
            ),
            ledger=TokenLedger(
                daily_limit=config.tokens.daily_limit,
                monthly_limit=config.tokens.monthly_limit,
                retention_days=config.tokens.retention_days,
                tz=config.tokens.timezone,
            ),
            resilience=ResilienceManager(
                config.retry,
                config.bulkhead,
                config.timeout,
                sleep_func=sleep_func,
            ),
            strategy_manager=ErrorStrategyManager(
                history_size=es.history_size,
                escalation_window=es.escalation_window,
                high_threshold=es.high_threshold,
                critical_threshold=es.critical_threshold,
                health_window=es.health_window,
                health_threshold=es.health_threshold,
                rate_limit_wait=es.rate_limit_wait,
                **strategy_kwargs,
            ),
            reporter=ErrorReporter(config.error_reporting),
            health=HealthChecker(probe_timeout=config.health.probe_timeout),
            cache=create_cache(config.cache) if config.cache.enabled else None,
        )

        if config.health.enabled:
            register_default_probes(
                runtime.health,
                client=runtime.client,
                breaker=runtime.resilience.get_breaker(COMPLETION_DEPENDENCY),
                strategy_manager=runtime.strategy_manager,
                cache=runtime.cache,
            )

        logger.info(
            "Service runtime ready (model=%s, cache=%s, reporting=%s)",
            config.completion.model,
            "on" if runtime.cache is not None else "off",
            "on" if runtime.reporter.enabled else "off",
        )
        return runtime

    def get_completion_service(self) -> ResilientCompletionService:
        """The process's completion service, built on first use."""
        if self._service is None:
            self._service = ResilientCompletionService(
                self.client,
                limiter=self.limiter,
                ledger=self.ledger,
                bulkhead=self.resilience.get_bulkhead(COMPLETION_DEPENDENCY),
                executor=self.resilience.get_executor(COMPLETION_DEPENDENCY),
                strategy_manager=self.strategy_manager,
                cache=self.cache,
                reporter=self.reporter,
                cache_ttl=self.config.cache.ttl,
                default_model=self.config.completion.model,
            )
        return self._service

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of breaker, bulkhead, limiter, cache and outcome state."""
        status: Dict[str, Any] = {
            "breakers": {name: s.to_dict() for name, s in self.resilience.get_breaker_states().items()},
            "bulkheads": {name: s.to_dict() for name, s in self.resilience.get_bulkhead_states().items()},
            "rate_limiter": self.limiter.get_stats(),
            "tokens": self.ledger.get_global_stats(),
            "errors": self.strategy_manager.get_error_stats(),
            "cache": None,
            "completion": None,
        }
        if self.cache is not None:
            status["cache"] = {tier: m.to_dict() for tier, m in self.cache.get_metrics().items()}
        if self._service is not None:
            status["completion"] = {
                "metrics": self._service.get_metrics(),
                "health": self._service.get_health_status(),
            }
        return status

    async def aclose(self) -> None:
        """Flush pending error reports and close the cache and HTTP client."""
        try:
            await self.reporter.close()
        finally:
            if self.cache is not None:
                await self.cache.close()
            close = getattr(self.client, "aclose", None)
            if close is not None:
                await close()
        logger.info("Service runtime closed")
