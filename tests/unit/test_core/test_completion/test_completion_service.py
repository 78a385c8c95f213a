"""Tests for ResilientCompletionService, the composed call path."""

import asyncio

import pytest

from llm_doc_optimizer.core.cache import MemoryCache, MemoryTier, TieredCache
from llm_doc_optimizer.core.completion import (
    CompletionRequest,
    CompletionResponse,
    ResilientCompletionService,
    TokenUsage,
)
from llm_doc_optimizer.core.context import correlation_context
from llm_doc_optimizer.core.error_strategies import ErrorContext, ErrorStrategyManager
from llm_doc_optimizer.core.errors.completion import AuthenticationError, ServerError
from llm_doc_optimizer.core.errors.resilience import (
    BudgetExceededError,
    BulkheadFullError,
    DeadlineExceededError,
    DegradedServiceError,
    RateLimitExceededError,
)
from llm_doc_optimizer.core.observability import get_metrics
from llm_doc_optimizer.core.rate_limit import RateLimiter
from llm_doc_optimizer.core.resilience import Bulkhead, CircuitBreaker, RetryExecutor, RetryOptions
from llm_doc_optimizer.core.tokens import TokenLedger


def _response(content="Tighter.", model="gpt-4o-mini", prompt_tokens=10, completion_tokens=5):
    return CompletionResponse(
        content=content,
        model=model,
        usage=TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        ),
        finish_reason="stop",
    )


def _request(**overrides):
    data = {"messages": [{"role": "user", "content": "Tighten this paragraph."}]}
    data.update(overrides)
    return CompletionRequest(**data)


class FakeClient:
    """Returns (or raises) queued results, then succeeds."""

    def __init__(self, *results):
        self.results = list(results)
        self.requests = []

    async def complete(self, request):
        self.requests.append(request)
        result = self.results.pop(0) if self.results else _response()
        if isinstance(result, BaseException):
            raise result
        return result

    async def health_check(self):
        return True


class FakeReporter:
    def __init__(self):
        self.reports = []

    async def report(self, error, context, strategy):
        self.reports.append((error, context, strategy))


class Harness:
    """Builds a service with fake time and small limits."""

    def __init__(self, clock, fake_sleep, client=None, **overrides):
        self.client = client or FakeClient()
        self.limiter = overrides.pop("limiter", None) or RateLimiter(max_requests=10, max_tokens=50000, clock=clock)
        self.ledger = overrides.pop("ledger", None) or TokenLedger(daily_limit=10000, monthly_limit=100000, clock=clock)
        self.breaker = CircuitBreaker("completion_api", failure_threshold=overrides.pop("failure_threshold", 5))
        self.executor = RetryExecutor(
            "completion_api",
            options=RetryOptions(max_attempts=3, base_delay=0.5, jitter=False),
            breaker=self.breaker,
            sleep_func=fake_sleep,
        )
        self.bulkhead = overrides.pop("bulkhead", None) or Bulkhead("completion_api")
        self.manager = ErrorStrategyManager(clock=clock, sleep_func=fake_sleep)
        self.service = ResilientCompletionService(
            self.client,
            limiter=self.limiter,
            ledger=self.ledger,
            bulkhead=self.bulkhead,
            executor=self.executor,
            strategy_manager=self.manager,
            **overrides,
        )


@pytest.fixture
def harness(clock, fake_sleep):
    def build(*results, **overrides):
        return Harness(clock, fake_sleep, FakeClient(*results), **overrides)

    return build


class TestSuccessPath:
    """Admitted calls that reach the dependency."""

    @pytest.mark.asyncio
    async def test_fresh_completion(self, harness):
        h = harness()
        outcome = await h.service.complete(_request(), identifier="user-1")

        assert outcome.content == "Tighter."
        assert outcome.attempts == 1
        assert outcome.cached is False
        assert outcome.degraded is False
        assert h.ledger.get_usage_stats("user-1")["total_tokens"] == 15

        metrics = h.service.get_metrics()
        assert metrics["total_requests"] == 1
        assert metrics["successful_requests"] == 1
        assert metrics["retried_requests"] == 0

    @pytest.mark.asyncio
    async def test_retry_then_success(self, harness, fake_sleep):
        h = harness(ServerError("503", status_code=503))
        outcome = await h.service.complete(_request(), identifier="user-1")

        assert outcome.attempts == 2
        assert len(h.client.requests) == 2
        assert fake_sleep.delays == [0.5]
        assert h.service.get_metrics()["retried_requests"] == 1

    @pytest.mark.asyncio
    async def test_records_correlation_id(self, harness):
        h = harness()
        async with correlation_context(request_id="req-42"):
            await h.service.complete(_request(), identifier="user-1")
        assert h.ledger.get_recent_transactions("user-1")[0].request_id == "req-42"

    @pytest.mark.asyncio
    async def test_default_model_used_for_context(self, harness):
        h = harness(AuthenticationError(), default_model="gpt-4")
        reporter = FakeReporter()
        h.service.reporter = reporter
        with pytest.raises(DegradedServiceError):
            await h.service.complete(_request(), identifier="user-1")
        _, context, _ = reporter.reports[0]
        assert context.model == "gpt-4"
        assert context.user_id == "user-1"


class TestAdmission:
    """Admission control runs before the dependency is touched."""

    @pytest.mark.asyncio
    async def test_request_window_denial(self, harness, clock):
        h = harness(limiter=RateLimiter(max_requests=1, clock=clock))
        await h.service.complete(_request(), identifier="user-1")

        with pytest.raises(RateLimitExceededError) as exc_info:
            await h.service.complete(_request(), identifier="user-1")

        assert exc_info.value.limit_type == "requests"
        assert exc_info.value.retry_after == 60.0
        assert len(h.client.requests) == 1
        assert h.service.get_metrics()["total_requests"] == 1

    @pytest.mark.asyncio
    async def test_token_window_denial(self, harness, clock):
        h = harness(limiter=RateLimiter(max_requests=10, max_tokens=100, clock=clock))
        with pytest.raises(RateLimitExceededError) as exc_info:
            await h.service.complete(_request(max_tokens=500), identifier="user-1")
        assert exc_info.value.limit_type == "tokens"
        assert h.client.requests == []

    @pytest.mark.asyncio
    async def test_budget_denial(self, harness, clock):
        h = harness(ledger=TokenLedger(daily_limit=100, monthly_limit=1000, clock=clock))
        with pytest.raises(BudgetExceededError) as exc_info:
            await h.service.complete(_request(max_tokens=500), identifier="user-1")
        assert exc_info.value.period == "daily"
        assert h.client.requests == []

    @pytest.mark.asyncio
    async def test_budget_denials_leave_rate_windows_untouched(self, harness, clock):
        h = harness(
            limiter=RateLimiter(max_requests=2, max_tokens=50000, clock=clock),
            ledger=TokenLedger(daily_limit=100, monthly_limit=1000, clock=clock),
        )
        before = h.limiter.get_stats()
        for _ in range(2):
            with pytest.raises(BudgetExceededError):
                await h.service.complete(_request(max_tokens=500, cacheable=False), identifier="user-1")
        assert h.limiter.get_stats() == before

        outcome = await h.service.complete(_request(max_tokens=10, cacheable=False), identifier="user-1")
        assert outcome.content == "Tighter."
        assert h.limiter.get_stats()["request_count"] == 1

    @pytest.mark.asyncio
    async def test_bulkhead_rejection_is_not_counted(self, clock, fake_sleep):
        gate = asyncio.Event()

        class SlowClient(FakeClient):
            async def complete(self, request):
                await gate.wait()
                return await super().complete(request)

        bulkhead = Bulkhead("completion_api", max_concurrency=1, max_queue_size=0)
        h = Harness(clock, fake_sleep, SlowClient(), bulkhead=bulkhead)
        first = asyncio.create_task(h.service.complete(_request(), identifier="user-1"))
        await asyncio.sleep(0)

        with pytest.raises(BulkheadFullError):
            await h.service.complete(_request(cacheable=False), identifier="user-2")

        gate.set()
        await first
        metrics = h.service.get_metrics()
        assert metrics["total_requests"] == 1
        assert metrics["failed_requests"] == 0


class TestCaching:
    """Cache consultation inside the bulkhead slot."""

    @pytest.fixture
    def cache(self, clock):
        return TieredCache(MemoryCache(clock=clock), MemoryTier(MemoryCache(clock=clock)))

    @pytest.mark.asyncio
    async def test_cache_hit_skips_dependency(self, harness, cache):
        h = harness(cache=cache)
        await h.service.complete(_request(), identifier="user-1")
        outcome = await h.service.complete(_request(), identifier="user-1")

        assert outcome.cached is True
        assert outcome.content == "Tighter."
        assert len(h.client.requests) == 1
        assert h.ledger.get_usage_stats("user-1")["total_requests"] == 1
        assert get_metrics().get_counter("completion.cache_hit") == 1

    @pytest.mark.asyncio
    async def test_options_change_the_key(self, harness, cache):
        h = harness(cache=cache)
        await h.service.complete(_request(temperature=0.1), identifier="user-1")
        await h.service.complete(_request(temperature=0.9), identifier="user-1")
        assert len(h.client.requests) == 2

    @pytest.mark.asyncio
    async def test_uncacheable_requests_bypass_cache(self, harness, cache):
        h = harness(cache=cache)
        await h.service.complete(_request(cacheable=False), identifier="user-1")
        await h.service.complete(_request(cacheable=False), identifier="user-1")
        assert len(h.client.requests) == 2


class TestDegradation:
    """Terminal failures become fallbacks or DegradedServiceError."""

    @pytest.mark.asyncio
    async def test_fallback_to_original_content(self, harness):
        h = harness(*[ServerError("503", status_code=503)] * 3)
        reporter = FakeReporter()
        h.service.reporter = reporter
        context = ErrorContext(operation="optimize", user_id="user-1", metadata={"original_content": "# Doc"})

        outcome = await h.service.complete(_request(), identifier="user-1", context=context)

        assert outcome.degraded is True
        assert outcome.content == "# Doc"
        assert outcome.fallback["status"] == "fallback"
        assert outcome.error_code == "SERVICE_UNAVAILABLE"
        assert len(h.client.requests) == 3
        assert len(reporter.reports) == 1

        metrics = h.service.get_metrics()
        assert metrics["failed_requests"] == 1
        assert metrics["fallbacks_used"] == 1

    @pytest.mark.asyncio
    async def test_degraded_error_without_fallback(self, harness):
        original = AuthenticationError("key rejected")
        h = harness(original)

        with pytest.raises(DegradedServiceError) as exc_info:
            await h.service.complete(_request(), identifier="user-1")

        assert exc_info.value.code == "AUTHENTICATION_FAILED"
        assert exc_info.value.__cause__ is original
        assert len(h.client.requests) == 1

    @pytest.mark.asyncio
    async def test_timeouts_are_counted(self, harness):
        h = harness(*[DeadlineExceededError("slow", timeout_seconds=1.0)] * 3)
        with pytest.raises(DegradedServiceError) as exc_info:
            await h.service.complete(_request(), identifier="user-1")
        assert exc_info.value.code == "TIMEOUT"
        assert h.service.get_metrics()["timeouts"] == 1

    @pytest.mark.asyncio
    async def test_breaker_trips_are_counted(self, harness):
        h = harness(AuthenticationError(), failure_threshold=1)
        with pytest.raises(DegradedServiceError):
            await h.service.complete(_request(), identifier="user-1")

        assert h.service.get_metrics()["circuit_breaker_trips"] == 1
        health = h.service.get_health_status()
        assert health["healthy"] is False
        assert "Circuit breaker tripped 1 times" in health["issues"]

    @pytest.mark.asyncio
    async def test_open_breaker_degrades_without_calling(self, harness):
        h = harness(failure_threshold=1)
        h.breaker.record_failure()

        with pytest.raises(DegradedServiceError) as exc_info:
            await h.service.complete(_request(), identifier="user-1")
        assert exc_info.value.code == "CIRCUIT_OPEN"
        assert h.client.requests == []


class TestHealthStatus:
    """Tests for get_health_status."""

    def test_healthy_when_idle(self, harness):
        health = harness().service.get_health_status()
        assert health == {"healthy": True, "success_rate": 1.0, "average_response_time": 0.0, "issues": []}

    @pytest.mark.asyncio
    async def test_low_success_rate(self, harness):
        h = harness(AuthenticationError())
        with pytest.raises(DegradedServiceError):
            await h.service.complete(_request(), identifier="user-1")
        await h.service.complete(_request(), identifier="user-1")

        health = h.service.get_health_status()
        assert health["success_rate"] == 0.5
        assert "Low success rate: 50.0%" in health["issues"]

    @pytest.mark.asyncio
    async def test_reset_metrics(self, harness):
        h = harness()
        await h.service.complete(_request(), identifier="user-1")
        h.service.reset_metrics()
        assert h.service.get_metrics()["total_requests"] == 0
