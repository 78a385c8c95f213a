"""Per-dependency registry of resilience components.

``ResilienceManager`` lazily creates one ``RetryExecutor`` (with its own
``CircuitBreaker`` and ``AdaptiveTimeout``) and one ``Bulkhead`` per named
dependency, all tuned from configuration. It is constructed once by the
service runtime and passed to consumers explicitly.
"""

import threading
from typing import Dict, Optional

from llm_doc_optimizer.config.domains import BulkheadConfig, RetryConfig, TimeoutConfig
from llm_doc_optimizer.core.resilience.bulkhead import Bulkhead, BulkheadStatus
from llm_doc_optimizer.core.resilience.circuit_breaker import CircuitBreaker
from llm_doc_optimizer.core.resilience.models import BreakerStatus, CircuitState, RetryOptions, SleepFunc
from llm_doc_optimizer.core.resilience.retry import RetryExecutor
from llm_doc_optimizer.core.resilience.timeout import AdaptiveTimeout


def retry_options_from_config(config: RetryConfig) -> RetryOptions:
    return RetryOptions(
        max_attempts=config.max_attempts,
        base_delay=config.base_delay,
        max_delay=config.max_delay,
        exponential_base=config.exponential_base,
        jitter=config.jitter,
    )


class ResilienceManager:
    """Registry of retry executors, breakers, timeouts and bulkheads by dependency.

    Thread-safe via threading.Lock around lazy creation.

    Args:
        retry: Retry and breaker settings applied to new executors
        bulkhead: Bulkhead settings applied to new bulkheads
        timeout: Adaptive timeout settings applied to new executors
        sleep_func: Injectable sleep passed to every executor
    """

    def __init__(
        self,
        retry: Optional[RetryConfig] = None,
        bulkhead: Optional[BulkheadConfig] = None,
        timeout: Optional[TimeoutConfig] = None,
        *,
        sleep_func: Optional[SleepFunc] = None,
    ) -> None:
        self.retry_config = retry or RetryConfig()
        self.bulkhead_config = bulkhead or BulkheadConfig()
        self.timeout_config = timeout or TimeoutConfig()
        self._sleep_func = sleep_func
        self._executors: Dict[str, RetryExecutor] = {}
        self._bulkheads: Dict[str, Bulkhead] = {}
        self._lock = threading.Lock()

    def get_executor(self, name: str) -> RetryExecutor:
        """Get or lazily create the retry executor for a dependency."""
        with self._lock:
            executor = self._executors.get(name)
            if executor is None:
                executor = RetryExecutor(
                    name,
                    options=retry_options_from_config(self.retry_config),
                    breaker=CircuitBreaker(
                        name,
                        failure_threshold=self.retry_config.failure_threshold,
                        recovery_timeout=self.retry_config.recovery_timeout,
                    ),
                    adaptive_timeout=AdaptiveTimeout(
                        base_timeout=self.timeout_config.base_timeout,
                        multiplier=self.timeout_config.multiplier,
                        max_samples=self.timeout_config.max_samples,
                    ),
                    sleep_func=self._sleep_func,
                )
                self._executors[name] = executor
            return executor

    def get_breaker(self, name: str) -> CircuitBreaker:
        return self.get_executor(name).breaker

    def get_timeout(self, name: str) -> AdaptiveTimeout:
        executor = self.get_executor(name)
        # get_executor always attaches one.
        assert executor.adaptive_timeout is not None
        return executor.adaptive_timeout

    def get_bulkhead(self, name: str) -> Bulkhead:
        """Get or lazily create the bulkhead for a dependency."""
        with self._lock:
            bulkhead = self._bulkheads.get(name)
            if bulkhead is None:
                bulkhead = Bulkhead(
                    name,
                    max_concurrency=self.bulkhead_config.max_concurrency,
                    max_queue_size=self.bulkhead_config.max_queue_size,
                )
                self._bulkheads[name] = bulkhead
            return bulkhead

    def get_breaker_states(self) -> Dict[str, BreakerStatus]:
        """Breaker status for every dependency seen so far."""
        with self._lock:
            executors = dict(self._executors)
        return {name: executor.get_status() for name, executor in executors.items()}

    def get_bulkhead_states(self) -> Dict[str, BulkheadStatus]:
        with self._lock:
            bulkheads = dict(self._bulkheads)
        return {name: bulkhead.get_status() for name, bulkhead in bulkheads.items()}

    def is_dependency_available(self, name: str) -> bool:
        """Whether the dependency's breaker would admit a call right now."""
        with self._lock:
            executor = self._executors.get(name)
        if executor is None:
            return True
        return executor.breaker.is_available()

    def open_circuits(self) -> Dict[str, BreakerStatus]:
        return {name: status for name, status in self.get_breaker_states().items() if status.state == CircuitState.OPEN}

    def reset(self) -> None:
        """Drop all executors and bulkheads (for testing)."""
        with self._lock:
            self._executors.clear()
            self._bulkheads.clear()
