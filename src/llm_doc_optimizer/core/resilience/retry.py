"""Retry executor with exponential backoff, jitter and a circuit breaker.

``RetryExecutor`` wraps one logical dependency. Each attempt is gated by
the executor's ``CircuitBreaker`` and, when an ``AdaptiveTimeout`` is
attached, bounded by its current deadline. Failures are classified into
``ErrorCategory`` values whose fixed dispositions decide whether to retry
and whether the failure counts toward opening the circuit.
"""

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, List, Optional, TypeVar

from llm_doc_optimizer.core.errors.resilience import CircuitBreakerError
from llm_doc_optimizer.core.observability import audit_log, get_metrics
from llm_doc_optimizer.core.resilience.circuit_breaker import CircuitBreaker
from llm_doc_optimizer.core.resilience.classification import classify_error
from llm_doc_optimizer.core.resilience.models import (
    BreakerStatus,
    CircuitState,
    ErrorClassification,
    RetryAttempt,
    RetryOptions,
    RetryResult,
    SleepFunc,
)
from llm_doc_optimizer.core.resilience.timeout import AdaptiveTimeout, run_with_deadline

logger = logging.getLogger(__name__)

T = TypeVar("T")

Classifier = Callable[[BaseException], ErrorClassification]


def compute_backoff_delay(
    attempt: int,
    options: RetryOptions,
    rng: Optional[random.Random] = None,
) -> float:
    """Delay to sleep after failed attempt number ``attempt`` (1-based).

    ``min(max_delay, base_delay * exponential_base ** (attempt - 1))``, scaled
    by a uniform factor in [0.5, 1.0] when jitter is enabled.

    Example:
        >>> compute_backoff_delay(3, RetryOptions(base_delay=1.0, jitter=False))
        4.0
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    delay = min(options.max_delay, options.base_delay * (options.exponential_base ** (attempt - 1)))
    if options.jitter:
        delay *= 0.5 + 0.5 * (rng or random).random()
    return delay


class RetryExecutor:
    """Executes async operations with bounded retries behind a circuit breaker.

    Args:
        name: Dependency name used in logs and metrics
        options: Default retry options; per-call options override them
        breaker: Circuit breaker to consult; a default one is created if omitted
        classifier: Maps exceptions to retry/breaker dispositions
        adaptive_timeout: Supplies a per-attempt deadline and receives
            latencies of successful attempts
        rng: Injectable Random instance for deterministic jitter
        sleep_func: Injectable async sleep for time control in tests

    Example:
        >>> executor = RetryExecutor("completion", options=RetryOptions(max_attempts=4))
        >>> text = await executor.execute_with_retry(lambda: client.complete(req), "optimize")

    Testing example:
        >>> delays = []
        >>> async def fake_sleep(s): delays.append(s)
        >>> executor = RetryExecutor(rng=random.Random(42), sleep_func=fake_sleep)
    """

    def __init__(
        self,
        name: str = "default",
        *,
        options: Optional[RetryOptions] = None,
        breaker: Optional[CircuitBreaker] = None,
        classifier: Classifier = classify_error,
        adaptive_timeout: Optional[AdaptiveTimeout] = None,
        rng: Optional[random.Random] = None,
        sleep_func: Optional[SleepFunc] = None,
    ) -> None:
        self.name = name
        self.options = options or RetryOptions()
        self.breaker = breaker or CircuitBreaker(name)
        self.adaptive_timeout = adaptive_timeout
        self._classify = classifier
        self._rng = rng or random.Random()
        self._sleep = sleep_func or asyncio.sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        context_label: str = "operation",
        options: Optional[RetryOptions] = None,
    ) -> RetryResult[T]:
        """Run ``operation`` until it succeeds, fails terminally or attempts run out.

        Args:
            operation: Zero-argument factory returning a fresh awaitable per attempt
            context_label: Operation name for logs and audit records
            options: Per-call retry options (defaults to the executor's)

        Returns:
            RetryResult with the value, the attempt count and one
            RetryAttempt per retried failure

        Raises:
            CircuitBreakerError: If the breaker rejects an attempt
            Exception: The last underlying error when the failure is not
                retryable, attempts are exhausted, or the breaker opened
        """
        opts = options or self.options
        retries: List[RetryAttempt] = []
        metrics = get_metrics()

        for attempt in range(1, opts.max_attempts + 1):
            try:
                self.breaker.allow_request()
            except CircuitBreakerError:
                metrics.counter("retry.circuit_rejected", labels={"dependency": self.name})
                if retries:
                    raise CircuitBreakerError(
                        f"Circuit breaker '{self.breaker.name}' opened while retrying {context_label}",
                        breaker_name=self.breaker.name,
                        state=self.breaker.state,
                        retry_after=self.breaker.recovery_timeout,
                    ) from retries[-1].error
                raise

            deadline = self.adaptive_timeout.get_timeout() if self.adaptive_timeout else None
            started = time.perf_counter()
            try:
                value = await run_with_deadline(operation(), deadline, operation=context_label)
            except asyncio.CancelledError:
                self.breaker.release_probe()
                raise
            except Exception as exc:
                classification = self._classify(exc)
                if classification.trips_breaker:
                    self.breaker.record_failure()
                else:
                    self.breaker.release_probe()

                stop_reason = self._stop_reason(classification, attempt, opts)
                if stop_reason is not None:
                    logger.warning(
                        "%s failed after %d attempt(s) [%s, %s]: %s",
                        context_label,
                        attempt,
                        classification.category.value,
                        stop_reason,
                        exc,
                    )
                    metrics.counter(
                        "retry.exhausted",
                        labels={"dependency": self.name, "category": classification.category.value},
                    )
                    raise

                delay = compute_backoff_delay(attempt, opts, self._rng)
                if classification.backoff_seconds is not None:
                    delay = min(opts.max_delay, max(delay, classification.backoff_seconds))

                retries.append(
                    RetryAttempt(attempt=attempt, delay=delay, error=exc, category=classification.category)
                )
                logger.warning(
                    "%s attempt %d/%d failed [%s], retrying in %.2fs: %s",
                    context_label,
                    attempt,
                    opts.max_attempts,
                    classification.category.value,
                    delay,
                    exc,
                )
                audit_log(
                    "retry_attempt",
                    dependency=self.name,
                    operation=context_label,
                    attempt=attempt,
                    max_attempts=opts.max_attempts,
                    category=classification.category.value,
                    delay_seconds=round(delay, 3),
                )
                metrics.counter("retry.attempts", labels={"dependency": self.name})
                await self._sleep(delay)
                continue

            elapsed = time.perf_counter() - started
            self.breaker.record_success()
            if self.adaptive_timeout is not None:
                self.adaptive_timeout.record_response_time(elapsed)
            if retries:
                logger.info("%s succeeded on attempt %d after %d retries", context_label, attempt, len(retries))
            return RetryResult(value=value, attempts=attempt, retries=retries)

        # The loop always returns or raises; max_attempts >= 1 is validated.
        raise RuntimeError("RetryExecutor.execute: unexpected state")

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        context_label: str = "operation",
        options: Optional[RetryOptions] = None,
    ) -> T:
        """Like ``execute`` but returns only the operation's value."""
        result = await self.execute(operation, context_label, options)
        return result.value

    def _stop_reason(self, classification: ErrorClassification, attempt: int, opts: RetryOptions) -> Optional[str]:
        if not classification.retryable:
            return "not retryable"
        if self.breaker.state == CircuitState.OPEN:
            return "circuit open"
        if attempt >= opts.max_attempts:
            return "attempts exhausted"
        return None

    def get_status(self) -> BreakerStatus:
        return self.breaker.get_status()

    def reset(self) -> None:
        self.breaker.reset()
        if self.adaptive_timeout is not None:
            self.adaptive_timeout.reset()
