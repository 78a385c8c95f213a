"""The composed, resilient path for one outbound completion call.

Admission runs first and rejects without touching the dependency: request
window, token window, then calendar budget. Admitted calls take a bulkhead
slot, consult the cache, and only on a miss go through the retry executor
(breaker-gated, each attempt bounded by the adaptive deadline). Successful
results are cached and their token spend recorded.

Terminal dependency failures are analyzed by the error strategy manager and
reported; the caller then receives either the strategy's fallback (a
degraded outcome) or a ``DegradedServiceError`` carrying only the
user-safe message. Admission rejections (rate limit, budget, bulkhead) are
raised as-is so callers can tell "slow down" apart from "broken".
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

from llm_doc_optimizer.core.cache import CacheKeyGenerator, TieredCache
from llm_doc_optimizer.core.completion.client import CompletionClient
from llm_doc_optimizer.core.completion.models import CompletionOutcome, CompletionRequest, CompletionResponse
from llm_doc_optimizer.core.context import get_correlation_id
from llm_doc_optimizer.core.error_reporter import ErrorReporter
from llm_doc_optimizer.core.error_strategies import ErrorContext, ErrorStrategyManager
from llm_doc_optimizer.core.errors.resilience import (
    BudgetExceededError,
    BulkheadFullError,
    DegradedServiceError,
    RateLimitExceededError,
)
from llm_doc_optimizer.core.observability import audit_log, get_metrics
from llm_doc_optimizer.core.rate_limit import RateLimiter
from llm_doc_optimizer.core.resilience import Bulkhead, ErrorCategory, RetryExecutor
from llm_doc_optimizer.core.tokens import TokenLedger

logger = logging.getLogger(__name__)

_RESPONSE_TIME_SAMPLES = 100


@dataclass
class ResilienceMetrics:
    """Outcome counters for the composed call path.

    ``retried_requests`` counts successful calls that needed at least one
    retry; ``average_response_time`` covers the last 100 calls in seconds.
    """

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    retried_requests: int = 0
    circuit_breaker_trips: int = 0
    timeouts: int = 0
    fallbacks_used: int = 0
    response_times: Deque[float] = field(default_factory=lambda: deque(maxlen=_RESPONSE_TIME_SAMPLES))

    @property
    def average_response_time(self) -> float:
        if not self.response_times:
            return 0.0
        return sum(self.response_times) / len(self.response_times)

    @property
    def success_rate(self) -> float:
        if not self.total_requests:
            return 1.0
        return self.successful_requests / self.total_requests

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "retried_requests": self.retried_requests,
            "circuit_breaker_trips": self.circuit_breaker_trips,
            "timeouts": self.timeouts,
            "fallbacks_used": self.fallbacks_used,
            "average_response_time": round(self.average_response_time, 4),
        }


class ResilientCompletionService:
    """Runs completions through admission control, caching and retries.

    Args:
        client: Completion dependency
        limiter: Request and token sliding windows
        ledger: Calendar token budgets and spend history
        bulkhead: Concurrency cap for dependency calls
        executor: Breaker-gated retry executor (with its adaptive timeout)
        strategy_manager: Turns terminal failures into strategies
        cache: Result cache; caching is off when omitted
        reporter: Error report sink; reporting is off when omitted
        cache_ttl: Lifetime of cached results in the shared tier (seconds)
        default_model: Model used when a request names none
    """

    def __init__(
        self,
        client: CompletionClient,
        *,
        limiter: RateLimiter,
        ledger: TokenLedger,
        bulkhead: Bulkhead,
        executor: RetryExecutor,
        strategy_manager: ErrorStrategyManager,
        cache: Optional[TieredCache] = None,
        reporter: Optional[ErrorReporter] = None,
        cache_ttl: int = 3600,
        default_model: str = "gpt-4o-mini",
    ) -> None:
        self.client = client
        self.limiter = limiter
        self.ledger = ledger
        self.bulkhead = bulkhead
        self.executor = executor
        self.strategy_manager = strategy_manager
        self.cache = cache
        self.reporter = reporter
        self.cache_ttl = cache_ttl
        self.default_model = default_model
        self.metrics = ResilienceMetrics()

    def _admit(self, identifier: str, estimated_tokens: int) -> None:
        decision = self.limiter.check_limits_and_budget(identifier, estimated_tokens, self.ledger)
        if decision.allowed:
            return
        if decision.limit_type == "budget":
            budget = decision.budget
            raise BudgetExceededError(
                decision.reason or "Token budget exceeded",
                period=budget.period if budget else None,
                budget=budget.budget if budget else None,
            )
        raise RateLimitExceededError(
            decision.reason or "Rate limit exceeded",
            decision.rate_limit,
            limit_type=decision.limit_type or "requests",
            identifier=identifier,
        )

    def _cache_key(self, request: CompletionRequest, model: str) -> str:
        options = dict(request.options)
        options["temperature"] = request.temperature
        options["max_tokens"] = request.max_tokens
        return CacheKeyGenerator.optimization(request.prompt_text, model, options)

    async def complete(
        self,
        request: CompletionRequest,
        *,
        identifier: str = "anonymous",
        context: Optional[ErrorContext] = None,
    ) -> CompletionOutcome:
        """Run one completion for ``identifier``.

        Args:
            request: The completion to run
            identifier: Caller identity for rate limits and budgets
            context: Failure context; ``metadata["original_content"]``
                enables the original-content fallback

        Returns:
            A fresh, cached or degraded outcome

        Raises:
            RateLimitExceededError: Request or token window exhausted
            BudgetExceededError: Daily or monthly budget exhausted
            BulkheadFullError: No slot and no queue space
            DegradedServiceError: Dependency failed and no fallback applies
        """
        model = request.model or self.default_model
        context = context or ErrorContext(operation="completion", user_id=identifier, model=model)

        self._admit(identifier, request.estimated_tokens)

        self.metrics.total_requests += 1
        started = time.perf_counter()
        trips_before = self.executor.breaker.trips
        try:
            outcome = await self.bulkhead.execute(lambda: self._run(request, model, identifier, context))
        except BulkheadFullError:
            self.metrics.total_requests -= 1
            raise
        except Exception as exc:
            self._record_failure(exc, started, trips_before)
            return await self._degrade(exc, context)

        self.metrics.successful_requests += 1
        self.metrics.response_times.append(time.perf_counter() - started)
        if outcome.attempts > 1:
            self.metrics.retried_requests += 1
        return outcome

    async def _run(
        self,
        request: CompletionRequest,
        model: str,
        identifier: str,
        context: ErrorContext,
    ) -> CompletionOutcome:
        use_cache = self.cache is not None and request.cacheable
        key = self._cache_key(request, model) if use_cache else None

        if use_cache:
            hit = await self.cache.get(key)
            if hit is not None:
                cached = CompletionResponse.model_validate(hit)
                get_metrics().counter("completion.cache_hit")
                return CompletionOutcome(content=cached.content, model=cached.model, usage=cached.usage, cached=True)

        result = await self.executor.execute(lambda: self.client.complete(request), context.operation)
        response: CompletionResponse = result.value

        if use_cache:
            await self.cache.set(key, response.model_dump(), self.cache_ttl)

        self.ledger.record_transaction(
            identifier,
            response.model,
            response.usage.prompt_tokens,
            response.usage.completion_tokens,
            operation=context.operation,
            request_id=get_correlation_id() or None,
            optimization_type=context.metadata.get("optimization_type"),
            document_count=context.metadata.get("document_count"),
        )
        return CompletionOutcome(
            content=response.content,
            model=response.model,
            usage=response.usage,
            attempts=result.attempts,
        )

    def _record_failure(self, exc: BaseException, started: float, trips_before: int) -> None:
        self.metrics.failed_requests += 1
        self.metrics.response_times.append(time.perf_counter() - started)
        self.metrics.circuit_breaker_trips += self.executor.breaker.trips - trips_before

    async def _degrade(self, exc: Exception, context: ErrorContext) -> CompletionOutcome:
        strategy = self.strategy_manager.analyze_error(exc, context)
        if strategy.category == ErrorCategory.TIMEOUT:
            self.metrics.timeouts += 1

        if self.reporter is not None:
            await self.reporter.report(exc, context, strategy)

        if strategy.fallback_value is not None:
            self.metrics.fallbacks_used += 1
            logger.warning("Serving fallback for %s after %s", context.operation, strategy.category.value)
            audit_log(
                "fallback_used",
                operation=context.operation,
                category=strategy.category.value,
                code=strategy.code,
                source="strategy",
            )
            return CompletionOutcome(
                content=str(strategy.fallback_value.get("optimized_content", "")),
                degraded=True,
                fallback=strategy.fallback_value,
                error_code=strategy.code,
            )

        logger.warning(
            "%s failed terminally [%s]: %s", context.operation, strategy.code, strategy.internal_message
        )
        raise DegradedServiceError(strategy.user_message, code=strategy.code, strategy=strategy) from exc

    def get_health_status(self) -> Dict[str, Any]:
        """Health verdict derived from the outcome counters."""
        m = self.metrics
        issues: List[str] = []
        if m.total_requests and m.success_rate < 0.95:
            issues.append(f"Low success rate: {m.success_rate * 100:.1f}%")
        if m.timeouts > 5:
            issues.append(f"High timeout count: {m.timeouts}")
        if m.average_response_time > 5.0:
            issues.append(f"Slow response time: {m.average_response_time:.2f}s")
        if m.circuit_breaker_trips > 0:
            issues.append(f"Circuit breaker tripped {m.circuit_breaker_trips} times")
        return {
            "healthy": not issues,
            "success_rate": m.success_rate,
            "average_response_time": m.average_response_time,
            "issues": issues,
        }

    def get_metrics(self) -> Dict[str, Any]:
        return self.metrics.to_dict()

    def reset_metrics(self) -> None:
        self.metrics = ResilienceMetrics()
