"""Bulkhead concurrency isolation for outbound calls.

Bounds how many calls to one dependency may be in flight at once. Excess
callers wait in a FIFO queue of bounded length; once the queue is full,
admission fails immediately with ``BulkheadFullError``.

A bulkhead belongs to one event loop. Every state change happens in
synchronous code between awaits, so check-then-increment is atomic with
respect to other tasks on that loop.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, TypeVar

from llm_doc_optimizer.core.errors.resilience import BulkheadFullError
from llm_doc_optimizer.core.observability import audit_log, get_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BulkheadStatus:
    """Point-in-time view of a bulkhead."""

    name: str
    active_requests: int
    queue_length: int
    available: int
    max_concurrency: int
    max_queue_size: int
    rejected: int

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


class Bulkhead:
    """FIFO-queued concurrency limiter.

    Freed slots are handed directly to the oldest waiter, so a caller
    arriving between a release and the waiter's wake-up cannot take the
    slot out from under it.

    Args:
        name: Dependency name for logs and metrics
        max_concurrency: Maximum operations running at once
        max_queue_size: Maximum callers waiting for a slot (0 disables queueing)
    """

    def __init__(self, name: str = "default", *, max_concurrency: int = 10, max_queue_size: int = 100) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        if max_queue_size < 0:
            raise ValueError(f"max_queue_size must be >= 0, got {max_queue_size}")
        self.name = name
        self.max_concurrency = max_concurrency
        self.max_queue_size = max_queue_size
        self._active = 0
        self._waiters: Deque[asyncio.Future] = deque()
        self._rejected = 0

    @property
    def active_requests(self) -> int:
        return self._active

    @property
    def queue_length(self) -> int:
        return len(self._waiters)

    async def _acquire(self) -> None:
        if self._active < self.max_concurrency and not self._waiters:
            self._active += 1
            return

        if len(self._waiters) >= self.max_queue_size:
            self._rejected += 1
            audit_log(
                "bulkhead_rejected",
                bulkhead=self.name,
                active=self._active,
                queued=len(self._waiters),
                max_concurrency=self.max_concurrency,
                max_queue_size=self.max_queue_size,
            )
            get_metrics().counter("bulkhead.rejected", labels={"bulkhead": self.name})
            raise BulkheadFullError(
                "Bulkhead queue is full",
                bulkhead_name=self.name,
                max_concurrency=self.max_concurrency,
                max_queue_size=self.max_queue_size,
            )

        waiter: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was already handed over; pass it on.
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Hand the slot over; _active stays the same.
                waiter.set_result(None)
                return
        self._active -= 1

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` once a slot is available.

        Args:
            operation: Zero-argument factory returning the awaitable to run

        Returns:
            The operation's result

        Raises:
            BulkheadFullError: If all slots are busy and the queue is full
        """
        await self._acquire()
        try:
            return await operation()
        finally:
            self._release()

    def get_status(self) -> BulkheadStatus:
        return BulkheadStatus(
            name=self.name,
            active_requests=self._active,
            queue_length=len(self._waiters),
            available=max(0, self.max_concurrency - self._active),
            max_concurrency=self.max_concurrency,
            max_queue_size=self.max_queue_size,
            rejected=self._rejected,
        )
