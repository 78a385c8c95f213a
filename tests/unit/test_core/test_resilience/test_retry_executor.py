"""Tests for RetryExecutor and backoff computation."""

import asyncio
import random

import pytest

from llm_doc_optimizer.core.errors.completion import (
    AuthenticationError,
    ContextWindowError,
    RateLimitError,
    ServerError,
)
from llm_doc_optimizer.core.errors.resilience import CircuitBreakerError, DeadlineExceededError
from llm_doc_optimizer.core.resilience import (
    AdaptiveTimeout,
    CircuitBreaker,
    CircuitState,
    ErrorCategory,
    RetryExecutor,
    RetryOptions,
    compute_backoff_delay,
)


class FlakyOperation:
    """Fails with the given errors in order, then returns ``value``."""

    def __init__(self, errors, value="ok"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


def _executor(fake_sleep, *, max_attempts=3, jitter=False, breaker=None, **kwargs):
    return RetryExecutor(
        "completion",
        options=RetryOptions(max_attempts=max_attempts, base_delay=1.0, max_delay=30.0, jitter=jitter),
        breaker=breaker or CircuitBreaker("completion", failure_threshold=5),
        rng=random.Random(42),
        sleep_func=fake_sleep,
        **kwargs,
    )


class TestComputeBackoffDelay:
    """Tests for compute_backoff_delay."""

    def test_exponential_without_jitter(self):
        options = RetryOptions(base_delay=1.0, exponential_base=2.0, max_delay=30.0, jitter=False)
        assert [compute_backoff_delay(n, options) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        options = RetryOptions(base_delay=1.0, max_delay=5.0, jitter=False)
        assert compute_backoff_delay(10, options) == 5.0

    def test_jitter_stays_in_half_to_full_range(self):
        options = RetryOptions(base_delay=4.0, jitter=True)
        rng = random.Random(7)
        for _ in range(50):
            delay = compute_backoff_delay(1, options, rng)
            assert 2.0 <= delay <= 4.0

    def test_jitter_is_deterministic_with_seeded_rng(self):
        options = RetryOptions(base_delay=1.0, jitter=True)
        first = [compute_backoff_delay(n, options, random.Random(42)) for n in (1, 2, 3)]
        second = [compute_backoff_delay(n, options, random.Random(42)) for n in (1, 2, 3)]
        assert first == second

    def test_rejects_attempt_zero(self):
        with pytest.raises(ValueError):
            compute_backoff_delay(0, RetryOptions())

    def test_options_validation(self):
        with pytest.raises(ValueError):
            RetryOptions(max_attempts=0)


class TestRetryExecutor:
    """Tests for RetryExecutor.execute."""

    @pytest.mark.asyncio
    async def test_success_first_try(self, fake_sleep):
        executor = _executor(fake_sleep)
        result = await executor.execute(FlakyOperation([]), "optimize")
        assert result.value == "ok"
        assert result.attempts == 1
        assert result.retried_attempts == 0
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self, fake_sleep):
        """Server errors are retried with exponential backoff."""
        operation = FlakyOperation([ServerError(), ServerError()])
        result = await _executor(fake_sleep).execute(operation, "optimize")
        assert result.value == "ok"
        assert result.attempts == 3
        assert operation.calls == 3
        assert fake_sleep.delays == [1.0, 2.0]
        assert [r.category for r in result.retries] == [ErrorCategory.SERVER_ERROR] * 2

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self, fake_sleep):
        last = ServerError("third")
        operation = FlakyOperation([ServerError("first"), ServerError("second"), last])
        with pytest.raises(ServerError) as exc_info:
            await _executor(fake_sleep).execute(operation, "optimize")
        assert exc_info.value is last
        assert operation.calls == 3
        assert len(fake_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self, fake_sleep):
        operation = FlakyOperation([ContextWindowError()])
        with pytest.raises(ContextWindowError):
            await _executor(fake_sleep).execute(operation, "optimize")
        assert operation.calls == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_retry_after_hint_raises_delay(self, fake_sleep):
        """A dependency retry-after larger than the backoff is honoured."""
        operation = FlakyOperation([RateLimitError(retry_after=12.0)])
        await _executor(fake_sleep).execute(operation, "optimize")
        assert fake_sleep.delays == [12.0]

    @pytest.mark.asyncio
    async def test_retry_after_hint_capped_at_max_delay(self, fake_sleep):
        operation = FlakyOperation([RateLimitError(retry_after=300.0)])
        await _executor(fake_sleep).execute(operation, "optimize")
        assert fake_sleep.delays == [30.0]

    @pytest.mark.asyncio
    async def test_rate_limits_do_not_trip_breaker(self, fake_sleep):
        breaker = CircuitBreaker("completion", failure_threshold=1)
        operation = FlakyOperation([RateLimitError(), RateLimitError()])
        await _executor(fake_sleep, breaker=breaker).execute(operation, "optimize")
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_auth_failure_trips_without_retry(self, fake_sleep):
        breaker = CircuitBreaker("completion", failure_threshold=1)
        operation = FlakyOperation([AuthenticationError()])
        with pytest.raises(AuthenticationError):
            await _executor(fake_sleep, breaker=breaker).execute(operation, "optimize")
        assert operation.calls == 1
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_stops_when_breaker_opens(self, fake_sleep):
        """Retrying stops as soon as a failure opens the circuit."""
        breaker = CircuitBreaker("completion", failure_threshold=2)
        operation = FlakyOperation([ServerError(), ServerError(), ServerError()])
        with pytest.raises(ServerError):
            await _executor(fake_sleep, max_attempts=5, breaker=breaker).execute(operation, "optimize")
        assert operation.calls == 2
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_open_breaker_rejects_without_calling(self, fake_sleep):
        breaker = CircuitBreaker("completion", failure_threshold=1)
        breaker.record_failure()
        operation = FlakyOperation([])
        with pytest.raises(CircuitBreakerError):
            await _executor(fake_sleep, breaker=breaker).execute(operation, "optimize")
        assert operation.calls == 0

    @pytest.mark.asyncio
    async def test_per_call_options_override(self, fake_sleep):
        operation = FlakyOperation([ServerError()])
        with pytest.raises(ServerError):
            await _executor(fake_sleep).execute(operation, "optimize", RetryOptions(max_attempts=1))
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_execute_with_retry_returns_value(self, fake_sleep):
        value = await _executor(fake_sleep).execute_with_retry(FlakyOperation([ServerError()], value=42))
        assert value == 42

    @pytest.mark.asyncio
    async def test_deadline_bounds_each_attempt(self, fake_sleep):
        """Attempts that outlive the adaptive deadline fail as timeouts."""

        async def hang():
            await asyncio.sleep(10)

        executor = _executor(
            fake_sleep,
            max_attempts=2,
            adaptive_timeout=AdaptiveTimeout(base_timeout=0.01),
        )
        with pytest.raises(DeadlineExceededError):
            await executor.execute(hang, "optimize")
        assert len(fake_sleep.delays) == 1

    @pytest.mark.asyncio
    async def test_success_feeds_adaptive_timeout(self, fake_sleep):
        timeout = AdaptiveTimeout(base_timeout=5.0)
        await _executor(fake_sleep, adaptive_timeout=timeout).execute(FlakyOperation([]), "optimize")
        assert timeout.sample_count == 1

    @pytest.mark.asyncio
    async def test_cancellation_releases_probe(self, fake_sleep, clock):
        breaker = CircuitBreaker("completion", failure_threshold=1, recovery_timeout=1.0, clock=clock)
        breaker.record_failure()
        clock.advance(2)
        started = asyncio.Event()

        async def hang():
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(_executor(fake_sleep, breaker=breaker).execute(hang, "optimize"))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert breaker.is_available() is True
