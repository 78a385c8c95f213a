"""Circuit breaker for the completion dependency.

One breaker is owned by each ``RetryExecutor``. It counts breaker-tripping
failures over its lifetime, opens once the count reaches
``failure_threshold``, and after ``recovery_timeout`` seconds of quiet lets
exactly one probe call through. A successful probe closes the circuit and
clears the failure count; a failed probe re-opens it immediately.

All state lives behind a ``threading.Lock`` that is only held for the
bookkeeping itself, never while the guarded call is running.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from llm_doc_optimizer.core.errors.resilience import CircuitBreakerError
from llm_doc_optimizer.core.observability import audit_log, get_metrics
from llm_doc_optimizer.core.resilience.models import BreakerStatus, CircuitState, Clock

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Failure-count circuit breaker with a single half-open probe.

    Args:
        name: Dependency name used in logs, audit records and errors
        failure_threshold: Breaker-tripping failures before the circuit opens
        recovery_timeout: Seconds after the last failure before a probe is allowed
        clock: Monotonic clock, injectable for tests

    Example:
        >>> breaker = CircuitBreaker("completion", failure_threshold=5)
        >>> breaker.allow_request()  # raises CircuitBreakerError while open
        >>> breaker.record_success()
    """

    def __init__(
        self,
        name: str = "default",
        *,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Clock = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {failure_threshold}")
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._probe_in_flight = False
        self._trips = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> Optional[float]:
        return self._last_failure_time

    @property
    def trips(self) -> int:
        """Number of CLOSED/HALF_OPEN to OPEN transitions so far."""
        return self._trips

    def _transition(self, new_state: CircuitState, reason: str) -> None:
        # Caller holds self._lock.
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        if new_state == CircuitState.OPEN:
            self._trips += 1
            logger.warning(
                "Circuit breaker '%s' opened (%s): %d failures",
                self.name,
                reason,
                self._failure_count,
            )
        else:
            logger.info("Circuit breaker '%s' %s -> %s (%s)", self.name, old_state.value, new_state.value, reason)
        audit_log(
            "circuit_state_change",
            breaker=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
            reason=reason,
            failure_count=self._failure_count,
        )
        get_metrics().counter(
            "circuit_breaker.transitions",
            labels={"breaker": self.name, "to_state": new_state.value},
        )

    def allow_request(self) -> None:
        """Admit a call or fail fast.

        In OPEN state, once ``recovery_timeout`` has elapsed since the last
        failure the breaker moves to HALF_OPEN and this call becomes the
        single probe. Any other call made while OPEN, or while a probe is in
        flight, is rejected.

        Raises:
            CircuitBreakerError: If the call must not reach the dependency
        """
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return

            now = self._clock()
            if self._state == CircuitState.OPEN:
                elapsed = now - (self._last_failure_time or now)
                if elapsed > self.recovery_timeout:
                    self._transition(CircuitState.HALF_OPEN, "recovery timeout elapsed")
                    self._probe_in_flight = True
                    return
                retry_after = max(0.0, self.recovery_timeout - elapsed)
                raise CircuitBreakerError(
                    f"Circuit breaker '{self.name}' is open",
                    breaker_name=self.name,
                    state=self._state,
                    retry_after=retry_after,
                )

            # HALF_OPEN
            if self._probe_in_flight:
                raise CircuitBreakerError(
                    f"Circuit breaker '{self.name}' is half-open with a probe in flight",
                    breaker_name=self.name,
                    state=self._state,
                    retry_after=0.0,
                )
            self._probe_in_flight = True

    def record_success(self) -> None:
        """Record a successful call; a successful probe closes the circuit."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._failure_count = 0
                self._probe_in_flight = False
                self._transition(CircuitState.CLOSED, "probe succeeded")

    def record_failure(self) -> bool:
        """Record a breaker-tripping failure.

        Returns:
            True if this failure opened the circuit
        """
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._probe_in_flight = False
                self._transition(CircuitState.OPEN, "probe failed")
                return True

            if self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._transition(CircuitState.OPEN, "failure threshold reached")
                return True

            return False

    def release_probe(self) -> None:
        """Give back the probe slot after a failure that does not trip the breaker."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._probe_in_flight = False

    def is_available(self) -> bool:
        """Whether a call would currently be admitted, without claiming a probe."""
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.HALF_OPEN:
                return not self._probe_in_flight
            elapsed = self._clock() - (self._last_failure_time or 0.0)
            return elapsed > self.recovery_timeout

    def reset(self) -> None:
        """Return to the initial CLOSED state with no recorded failures."""
        with self._lock:
            self._failure_count = 0
            self._last_failure_time = None
            self._probe_in_flight = False
            self._transition(CircuitState.CLOSED, "manual reset")

    def get_status(self) -> BreakerStatus:
        with self._lock:
            return BreakerStatus(
                name=self.name,
                state=self._state,
                failure_count=self._failure_count,
                last_failure_time=self._last_failure_time,
                is_healthy=self._state == CircuitState.CLOSED,
                trips=self._trips,
            )
