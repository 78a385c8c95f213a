"""Adaptive per-attempt deadlines.

``AdaptiveTimeout`` keeps a ring buffer of recent successful latencies and
derives a deadline of ``max(base_timeout, p95 * multiplier)``. The deadline
is enforced by ``run_with_deadline``, which races the attempt against a
timer and converts expiry into ``DeadlineExceededError``.
"""

import asyncio
import logging
import math
import threading
from collections import deque
from typing import Awaitable, Deque, Optional, TypeVar

from llm_doc_optimizer.core.errors.resilience import DeadlineExceededError
from llm_doc_optimizer.core.observability import audit_log

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AdaptiveTimeout:
    """Latency-tracking deadline calculator.

    Args:
        base_timeout: Floor for the returned deadline (seconds); also the
            deadline while no samples exist
        multiplier: Factor applied to the observed p95 latency
        max_samples: Ring buffer size; older samples are dropped
    """

    def __init__(self, base_timeout: float = 30.0, multiplier: float = 2.0, max_samples: int = 50) -> None:
        if base_timeout <= 0:
            raise ValueError(f"base_timeout must be positive, got {base_timeout}")
        if max_samples < 1:
            raise ValueError(f"max_samples must be >= 1, got {max_samples}")
        self.base_timeout = base_timeout
        self.multiplier = multiplier
        self.max_samples = max_samples
        self._samples: Deque[float] = deque(maxlen=max_samples)
        self._lock = threading.Lock()

    def record_response_time(self, seconds: float) -> None:
        """Add one observed latency (seconds) to the ring buffer."""
        if seconds < 0 or math.isnan(seconds):
            return
        with self._lock:
            self._samples.append(seconds)

    def percentile(self, fraction: float = 0.95) -> Optional[float]:
        """Nearest-rank percentile of the buffered samples, or None when empty."""
        with self._lock:
            if not self._samples:
                return None
            ordered = sorted(self._samples)
        index = min(len(ordered) - 1, int(math.floor(len(ordered) * fraction)))
        return ordered[index]

    def get_timeout(self) -> float:
        """Current deadline in seconds, never below ``base_timeout``."""
        p95 = self.percentile(0.95)
        if p95 is None:
            return self.base_timeout
        return max(self.base_timeout, p95 * self.multiplier)

    @property
    def sample_count(self) -> int:
        with self._lock:
            return len(self._samples)

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()


async def run_with_deadline(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    *,
    operation: str = "operation",
) -> T:
    """Await ``awaitable`` for at most ``timeout`` seconds.

    ``asyncio.wait_for`` owns the timer and cancels it on whichever side
    wins. On expiry the attempt's task is cancelled and the caller gets a
    ``DeadlineExceededError`` instead of ``asyncio.TimeoutError``.

    Args:
        awaitable: The attempt to bound
        timeout: Deadline in seconds; None means no deadline
        operation: Label for the error and audit record

    Raises:
        DeadlineExceededError: If the deadline elapsed first
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        audit_log("deadline_exceeded", operation=operation, timeout_seconds=round(timeout, 3))
        raise DeadlineExceededError(
            f"{operation} exceeded its {timeout:.1f}s deadline",
            timeout_seconds=timeout,
            operation=operation,
        ) from None
