"""Sliding-window admission control per caller identity.

``RateLimiter`` keeps, for each identifier, the timestamps of admitted
requests and the token spend of admitted calls within a trailing window.
A check purges expired entries, decides, and records the new entry only if
the call is admitted; a denied call leaves no trace. The limiter never
raises for a denial: it returns a ``RateLimitInfo`` decision, and callers
turn ``allowed=False`` into a rejection (see ``rate_limit_headers``).
``check_limits_and_budget`` decides the request window, the token window
and the calendar budget together and records only a call all three admit.

Token spend is stored as ``(timestamp, count)`` buckets rather than one
entry per token. Admission is still exactly ``current + tokens <= max_tokens``.
"""

import logging
import math
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Deque, Dict, List, Optional

from llm_doc_optimizer.core.observability import audit_log, get_metrics
from llm_doc_optimizer.core.resilience.models import Clock
from llm_doc_optimizer.core.tokens.ledger import BudgetCheck, TokenLedger

logger = logging.getLogger(__name__)


@dataclass
class RateLimitInfo:
    """Decision returned by every limiter check.

    Attributes:
        allowed: Whether the call was admitted (and recorded)
        remaining: Requests (or tokens) left in the current window
        reset_time: Epoch seconds when the oldest entry leaves the window
        limit: Configured window limit
        retry_after: Seconds until the window frees up; 0 when allowed
    """

    allowed: bool
    remaining: int
    reset_time: float
    limit: int
    retry_after: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LimitsDecision:
    """Combined outcome of rate-limit and token-budget admission.

    ``limit_type`` names the check that denied the call: ``"requests"``,
    ``"tokens"`` or ``"budget"``; it is None when the call was admitted.
    """

    allowed: bool
    reason: Optional[str] = None
    rate_limit: Optional[RateLimitInfo] = None
    budget: Optional[BudgetCheck] = None
    limit_type: Optional[str] = None


@dataclass
class _TokenWindow:
    buckets: Deque[List[float]]  # [timestamp, tokens]
    total: int = 0


class RateLimiter:
    """Sliding-window request and token limiter.

    Thread-safe: each check runs purge, decide and record inside one
    critical section, so two concurrent checks can never both take the last
    slot.

    Args:
        max_requests: Requests admitted per identifier per window
        window_seconds: Trailing window length
        max_tokens: Tokens admitted per identifier per window
        clock: Wall clock returning epoch seconds, injectable for tests

    Example:
        >>> limiter = RateLimiter(max_requests=100, window_seconds=60)
        >>> info = limiter.check_limit("user-42")
        >>> if not info.allowed:
        ...     headers = rate_limit_headers(info)
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        max_tokens: int = 50000,
        *,
        clock: Clock = time.time,
    ) -> None:
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_tokens = max_tokens
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: Dict[str, Deque[float]] = {}
        self._tokens: Dict[str, _TokenWindow] = {}
        self._last_sweep = clock()

    # -- internal helpers (caller holds self._lock) --

    def _purge_requests(self, identifier: str, now: float) -> Deque[float]:
        timestamps = self._requests.get(identifier)
        if timestamps is None:
            timestamps = deque()
            self._requests[identifier] = timestamps
        cutoff = now - self.window_seconds
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()
        return timestamps

    def _purge_tokens(self, identifier: str, now: float) -> _TokenWindow:
        window = self._tokens.get(identifier)
        if window is None:
            window = _TokenWindow(buckets=deque())
            self._tokens[identifier] = window
        cutoff = now - self.window_seconds
        while window.buckets and window.buckets[0][0] <= cutoff:
            _, count = window.buckets.popleft()
            window.total -= int(count)
        return window

    @staticmethod
    def _record_tokens(window: _TokenWindow, now: float, tokens: int) -> None:
        if not tokens:
            return
        if window.buckets and window.buckets[-1][0] == now:
            window.buckets[-1][1] += tokens
        else:
            window.buckets.append([now, tokens])
        window.total += tokens

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        self._sweep(now)

    def _sweep(self, now: float) -> None:
        for identifier in list(self._requests):
            if not self._purge_requests(identifier, now):
                del self._requests[identifier]
        for identifier in list(self._tokens):
            if not self._purge_tokens(identifier, now).buckets:
                del self._tokens[identifier]

    def _decision(self, allowed: bool, remaining: int, oldest: Optional[float], limit: int, now: float) -> RateLimitInfo:
        reset_time = (oldest if oldest is not None else now) + self.window_seconds
        retry_after = 0.0 if allowed else max(0.0, reset_time - now)
        return RateLimitInfo(
            allowed=allowed,
            remaining=max(0, remaining),
            reset_time=reset_time,
            limit=limit,
            retry_after=retry_after,
        )

    # -- public API --

    def check_limit(self, identifier: str) -> RateLimitInfo:
        """Admit and record one request for ``identifier`` if the window has room."""
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            timestamps = self._purge_requests(identifier, now)
            allowed = len(timestamps) < self.max_requests
            if allowed:
                timestamps.append(now)
            oldest = timestamps[0] if timestamps else None
            info = self._decision(allowed, self.max_requests - len(timestamps), oldest, self.max_requests, now)

        if not allowed:
            self._on_denied(identifier, info, "requests")
        return info

    def check_token_limit(self, identifier: str, tokens: int) -> RateLimitInfo:
        """Admit and record ``tokens`` of spend for ``identifier`` if the window has room.

        Raises:
            ValueError: If ``tokens`` is negative
        """
        if tokens < 0:
            raise ValueError(f"tokens must be non-negative, got {tokens}")
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            window = self._purge_tokens(identifier, now)
            allowed = window.total + tokens <= self.max_tokens
            if allowed:
                self._record_tokens(window, now, tokens)
            oldest = window.buckets[0][0] if window.buckets else None
            info = self._decision(allowed, self.max_tokens - window.total, oldest, self.max_tokens, now)

        if not allowed:
            self._on_denied(identifier, info, "tokens", requested=tokens)
        return info

    def check_limits_and_budget(
        self,
        identifier: str,
        estimated_tokens: int,
        ledger: TokenLedger,
        daily_limit: Optional[int] = None,
        monthly_limit: Optional[int] = None,
    ) -> LimitsDecision:
        """Request window, token window, then calendar budget; the first denial wins.

        All three are decided before anything is recorded, so a call turned
        away by any of them leaves both windows exactly as they were.

        Raises:
            ValueError: If ``estimated_tokens`` is negative
        """
        if estimated_tokens < 0:
            raise ValueError(f"tokens must be non-negative, got {estimated_tokens}")
        budget: Optional[BudgetCheck] = None
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            timestamps = self._purge_requests(identifier, now)
            window = self._purge_tokens(identifier, now)

            if len(timestamps) >= self.max_requests:
                limit_type: Optional[str] = "requests"
                info = self._decision(False, 0, timestamps[0], self.max_requests, now)
            elif window.total + estimated_tokens > self.max_tokens:
                limit_type = "tokens"
                oldest = window.buckets[0][0] if window.buckets else None
                info = self._decision(False, self.max_tokens - window.total, oldest, self.max_tokens, now)
            else:
                budget = ledger.check_budget_limits(identifier, estimated_tokens, daily_limit, monthly_limit)
                limit_type = None if budget.allowed else "budget"
                if budget.allowed:
                    timestamps.append(now)
                    self._record_tokens(window, now, estimated_tokens)
                oldest = timestamps[0] if timestamps else None
                info = self._decision(True, self.max_requests - len(timestamps), oldest, self.max_requests, now)

        if limit_type == "requests":
            self._on_denied(identifier, info, "requests")
            return LimitsDecision(allowed=False, reason="Rate limit exceeded", rate_limit=info, limit_type=limit_type)
        if limit_type == "tokens":
            self._on_denied(identifier, info, "tokens", requested=estimated_tokens)
            return LimitsDecision(
                allowed=False, reason="Token rate limit exceeded", rate_limit=info, limit_type=limit_type
            )
        if limit_type == "budget":
            return LimitsDecision(
                allowed=False, reason=budget.reason, rate_limit=info, budget=budget, limit_type=limit_type
            )
        return LimitsDecision(allowed=True, rate_limit=info, budget=budget)

    def _on_denied(self, identifier: str, info: RateLimitInfo, limit_type: str, **details: Any) -> None:
        logger.info("Rate limit exceeded for %s (%s, limit %d)", identifier, limit_type, info.limit)
        audit_log(
            "rate_limit",
            identifier=identifier,
            limit=info.limit,
            limit_type=limit_type,
            retry_after=round(info.retry_after, 3),
            **details,
        )
        get_metrics().counter("rate_limit.denied", labels={"limit_type": limit_type})

    def get_stats(self) -> Dict[str, int]:
        """Live entry counts: ``request_count``, ``token_count`` and ``user_count``."""
        with self._lock:
            self._sweep(self._clock())
            return {
                "request_count": sum(len(ts) for ts in self._requests.values()),
                "token_count": sum(w.total for w in self._tokens.values()),
                "user_count": len(set(self._requests) | set(self._tokens)),
            }

    def cleanup(self) -> None:
        """Purge expired entries for every identifier and drop empty ones."""
        with self._lock:
            now = self._clock()
            self._last_sweep = now
            self._sweep(now)

    def reset(self, identifier: Optional[str] = None) -> None:
        with self._lock:
            if identifier is None:
                self._requests.clear()
                self._tokens.clear()
            else:
                self._requests.pop(identifier, None)
                self._tokens.pop(identifier, None)


def rate_limit_headers(info: RateLimitInfo) -> Dict[str, str]:
    """Standard rate-limit response headers for a limiter decision."""
    headers = {
        "X-RateLimit-Limit": str(info.limit),
        "X-RateLimit-Remaining": str(info.remaining),
        "X-RateLimit-Reset": str(int(math.ceil(info.reset_time))),
    }
    if not info.allowed:
        headers["Retry-After"] = str(max(1, int(math.ceil(info.retry_after))))
    return headers
