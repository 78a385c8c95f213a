"""Error analysis, escalation and graceful degradation.

``ErrorStrategyManager.analyze_error`` turns any failure into an
``ErrorRecoveryStrategy``: a user-safe message, an internal message, a
severity, and optionally a recovery action and a fallback value. The
manager remembers recent failures per category so that repeated failures
escalate severity and so that ``is_service_healthy`` can be derived from
the recent error mix.

``with_graceful_degradation`` is the caller-side helper: it runs an
operation and, on failure, tries recovery once, then the strategy's
fallback, then the caller's fallback, and finally raises
``DegradedServiceError`` carrying only the user-safe message.
"""

import asyncio
import gc
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, Optional, Tuple, TypeVar

from llm_doc_optimizer.core.errors.resilience import BudgetExceededError, BulkheadFullError, DegradedServiceError
from llm_doc_optimizer.core.observability import audit_log, get_metrics
from llm_doc_optimizer.core.resilience.classification import categorize_error
from llm_doc_optimizer.core.resilience.models import Clock, ErrorCategory, SleepFunc
from llm_doc_optimizer.core.responses import ErrorCode

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2, Severity.CRITICAL: 3}

_SEVERITY_LOG_LEVEL = {
    Severity.LOW: logging.INFO,
    Severity.MEDIUM: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}

# Stable, caller-facing code per category.
CATEGORY_CODES: Dict[ErrorCategory, ErrorCode] = {
    ErrorCategory.RATE_LIMITED: ErrorCode.RATE_LIMITED,
    ErrorCategory.QUOTA_EXCEEDED: ErrorCode.QUOTA_EXCEEDED,
    ErrorCategory.MODEL_UNAVAILABLE: ErrorCode.MODEL_UNAVAILABLE,
    ErrorCategory.CONTENT_REJECTED: ErrorCode.CONTENT_REJECTED,
    ErrorCategory.CONTEXT_TOO_LARGE: ErrorCode.CONTEXT_TOO_LARGE,
    ErrorCategory.AUTHENTICATION_FAILED: ErrorCode.AUTHENTICATION_FAILED,
    ErrorCategory.SERVER_ERROR: ErrorCode.SERVICE_UNAVAILABLE,
    ErrorCategory.NETWORK_ERROR: ErrorCode.NETWORK_ERROR,
    ErrorCategory.TIMEOUT: ErrorCode.TIMEOUT,
    ErrorCategory.CIRCUIT_OPEN: ErrorCode.CIRCUIT_OPEN,
    ErrorCategory.RESOURCE_EXHAUSTED: ErrorCode.RESOURCE_EXHAUSTED,
    ErrorCategory.UNKNOWN: ErrorCode.INTERNAL_ERROR,
}

# Categories whose recent frequency marks the service unhealthy.
CRITICAL_CATEGORIES = (
    ErrorCategory.AUTHENTICATION_FAILED,
    ErrorCategory.CIRCUIT_OPEN,
    ErrorCategory.RESOURCE_EXHAUSTED,
)

FALLBACK_MESSAGE = "Using original content due to service unavailability"


@dataclass
class ErrorContext:
    """Where a failure happened, supplied by the caller.

    ``metadata["original_content"]`` enables the original-content fallback
    for dependency outages.
    """

    operation: str
    user_id: Optional[str] = None
    document_id: Optional[str] = None
    model: Optional[str] = None
    retry_count: int = 0
    timestamp: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ErrorRecoveryStrategy:
    """What to tell the caller and what to try next for one failure.

    Attributes:
        can_recover: Whether a recovery attempt is worthwhile
        user_message: Message safe to show to end users
        internal_message: Diagnostic message for logs only
        severity: Escalated severity of this failure
        category: Taxonomy category of the failure
        code: Stable error code for the category
        recovery_action: Async callable returning True when recovery succeeded
        fallback_value: Degraded result to return instead of failing
    """

    can_recover: bool
    user_message: str
    internal_message: str
    severity: Severity
    category: ErrorCategory = ErrorCategory.UNKNOWN
    code: str = ErrorCode.INTERNAL_ERROR.value
    recovery_action: Optional[Callable[[], Awaitable[bool]]] = None
    fallback_value: Any = None


def _template(can_recover: bool, user_message: str, internal_message: str, severity: Severity) -> ErrorRecoveryStrategy:
    return ErrorRecoveryStrategy(
        can_recover=can_recover,
        user_message=user_message,
        internal_message=internal_message,
        severity=severity,
    )


STRATEGY_TEMPLATES: Dict[ErrorCategory, ErrorRecoveryStrategy] = {
    ErrorCategory.RATE_LIMITED: _template(
        True,
        "Service is experiencing high demand. Please try again in a few moments.",
        "Completion API rate limit exceeded",
        Severity.MEDIUM,
    ),
    ErrorCategory.QUOTA_EXCEEDED: _template(
        False,
        "The service has reached its usage quota. Please try again later.",
        "Completion API quota exhausted",
        Severity.HIGH,
    ),
    ErrorCategory.MODEL_UNAVAILABLE: _template(
        False,
        "The requested model is currently unavailable.",
        "Completion model not found or not accessible",
        Severity.HIGH,
    ),
    ErrorCategory.CONTENT_REJECTED: _template(
        False,
        "The document could not be processed because it was rejected by the content policy.",
        "Completion request rejected by content filter",
        Severity.LOW,
    ),
    ErrorCategory.CONTEXT_TOO_LARGE: _template(
        True,
        "Document is too large. Consider splitting it into smaller sections.",
        "Prompt exceeds the model context window",
        Severity.LOW,
    ),
    ErrorCategory.AUTHENTICATION_FAILED: _template(
        False,
        "Authentication failed. Please check your API key.",
        "Invalid completion API credentials",
        Severity.CRITICAL,
    ),
    ErrorCategory.SERVER_ERROR: _template(
        True,
        "The AI service is temporarily unavailable. Please try again later.",
        "Completion API server error",
        Severity.HIGH,
    ),
    ErrorCategory.NETWORK_ERROR: _template(
        True,
        "Unable to reach the AI service. Please try again shortly.",
        "Network failure talking to the completion API",
        Severity.MEDIUM,
    ),
    ErrorCategory.TIMEOUT: _template(
        True,
        "Request took too long to process. Please try again with a smaller document.",
        "Completion request timed out",
        Severity.MEDIUM,
    ),
    ErrorCategory.CIRCUIT_OPEN: _template(
        False,
        "Service is temporarily disabled due to multiple failures. Please try again later.",
        "Circuit breaker is open",
        Severity.HIGH,
    ),
    ErrorCategory.RESOURCE_EXHAUSTED: _template(
        True,
        "System resources temporarily unavailable. Please try again.",
        "Out of memory",
        Severity.CRITICAL,
    ),
}

# Limits enforced by this service, kept apart from provider quota and memory pressure.
_BUDGET_STRATEGIES: Dict[str, ErrorRecoveryStrategy] = {
    "daily": _template(
        False,
        "Daily usage limit reached. Your limit will reset tomorrow.",
        "Daily token limit exceeded",
        Severity.LOW,
    ),
    "monthly": _template(
        False,
        "You have exceeded your token budget. Please wait for the next billing period.",
        "Token budget exceeded",
        Severity.MEDIUM,
    ),
}

_BULKHEAD_STRATEGY = _template(
    False,
    "The service is busy. Please try again shortly.",
    "Bulkhead at capacity with a full queue",
    Severity.MEDIUM,
)


def _base_strategy(
    error: BaseException, category: ErrorCategory
) -> Tuple[Optional[ErrorRecoveryStrategy], ErrorCode]:
    if isinstance(error, BudgetExceededError):
        return _BUDGET_STRATEGIES.get(error.period or "", _BUDGET_STRATEGIES["monthly"]), ErrorCode.BUDGET_EXCEEDED
    if isinstance(error, BulkheadFullError):
        return _BULKHEAD_STRATEGY, ErrorCode.RESOURCE_BUSY
    return STRATEGY_TEMPLATES.get(category), CATEGORY_CODES[category]


_ESCALATION_MESSAGES = {
    Severity.HIGH: "This service is experiencing significant issues. We are working to resolve them.",
    Severity.CRITICAL: "This service is experiencing critical issues. Please contact support.",
}


@dataclass
class _ErrorEvent:
    timestamp: float
    context: ErrorContext


class ErrorStrategyManager:
    """Maps failures to recovery strategies and tracks recent error history.

    History is a bounded ring per category (oldest dropped first), used both
    for escalation and for ``is_service_healthy``.

    Args:
        history_size: Events kept per category
        escalation_window: Seconds of history counted for escalation
        high_threshold: More same-category events than this escalate to high
        critical_threshold: More same-category events than this escalate to critical
        health_window: Seconds of history counted by ``is_service_healthy``
        health_threshold: More critical-category events than this is unhealthy
        rate_limit_wait: Seconds the rate-limit recovery waits by default
        clock: Wall clock returning epoch seconds
        sleep_func: Async sleep used by recovery actions
    """

    def __init__(
        self,
        history_size: int = 100,
        escalation_window: float = 3600.0,
        high_threshold: int = 10,
        critical_threshold: int = 25,
        health_window: float = 300.0,
        health_threshold: int = 3,
        rate_limit_wait: float = 60.0,
        *,
        clock: Clock = time.time,
        sleep_func: SleepFunc = asyncio.sleep,
    ) -> None:
        self.history_size = history_size
        self.escalation_window = escalation_window
        self.high_threshold = high_threshold
        self.critical_threshold = critical_threshold
        self.health_window = health_window
        self.health_threshold = health_threshold
        self.rate_limit_wait = rate_limit_wait
        self._clock = clock
        self._sleep = sleep_func
        self._lock = threading.Lock()
        self._history: Dict[ErrorCategory, Deque[_ErrorEvent]] = {}

    def analyze_error(self, error: BaseException, context: ErrorContext) -> ErrorRecoveryStrategy:
        """Record ``error`` and build a fresh strategy for it."""
        category = categorize_error(error)
        now = self._clock()

        with self._lock:
            history = self._history.get(category)
            if history is None:
                history = deque(maxlen=self.history_size)
                self._history[category] = history
            history.append(_ErrorEvent(timestamp=now, context=context))
            recent = self._count_since(history, now - self.escalation_window)

        template, code = _base_strategy(error, category)
        if template is None:
            strategy = _template(
                False,
                "An unexpected error occurred. Our team has been notified.",
                str(error) or type(error).__name__,
                Severity.MEDIUM,
            )
        else:
            strategy = replace(template)
        strategy.category = category
        strategy.code = code.value

        self._escalate(strategy, recent, context)
        strategy.recovery_action = self._recovery_action(category, error)
        strategy.fallback_value = self._fallback_value(category, context)

        get_metrics().counter("errors.analyzed", labels={"category": category.value})
        return strategy

    @staticmethod
    def _count_since(events: Iterable[_ErrorEvent], cutoff: float) -> int:
        return sum(1 for event in events if event.timestamp > cutoff)

    def _escalate(self, strategy: ErrorRecoveryStrategy, recent: int, context: ErrorContext) -> None:
        if recent > self.critical_threshold:
            target = Severity.CRITICAL
        elif recent > self.high_threshold:
            target = Severity.HIGH
        else:
            return
        if target.rank <= strategy.severity.rank:
            return

        previous = strategy.severity
        strategy.severity = target
        strategy.user_message = _ESCALATION_MESSAGES[target]
        logger.warning(
            "Escalated %s from %s to %s after %d events in %.0fs",
            strategy.category.value,
            previous.value,
            target.value,
            recent,
            self.escalation_window,
        )
        audit_log(
            "error_escalated",
            category=strategy.category.value,
            from_severity=previous.value,
            to_severity=target.value,
            recent_events=recent,
            operation=context.operation,
        )

    def _recovery_action(
        self, category: ErrorCategory, error: BaseException
    ) -> Optional[Callable[[], Awaitable[bool]]]:
        if category == ErrorCategory.RATE_LIMITED:
            hint = getattr(error, "retry_after", None)
            wait = float(hint) if isinstance(hint, (int, float)) and hint > 0 else self.rate_limit_wait

            async def wait_out_window() -> bool:
                logger.info("Waiting %.1fs for the rate-limit window to reset", wait)
                await self._sleep(wait)
                return True

            return wait_out_window

        if category == ErrorCategory.RESOURCE_EXHAUSTED and not isinstance(error, BulkheadFullError):

            async def collect_garbage() -> bool:
                collected = gc.collect()
                logger.info("Garbage collection freed %d objects", collected)
                return True

            return collect_garbage

        return None

    @staticmethod
    def _fallback_value(category: ErrorCategory, context: ErrorContext) -> Any:
        if category not in (ErrorCategory.SERVER_ERROR, ErrorCategory.TIMEOUT):
            return None
        if "original_content" not in context.metadata:
            return None
        return {
            "optimized_content": context.metadata["original_content"],
            "status": "fallback",
            "message": FALLBACK_MESSAGE,
        }

    def is_service_healthy(self, name: Optional[str] = None) -> bool:
        """False if any critical category saw too many events recently.

        The error history is process-wide, so ``name`` only labels the
        question being asked.
        """
        cutoff = self._clock() - self.health_window
        with self._lock:
            for category in CRITICAL_CATEGORIES:
                if self._count_since(self._history.get(category, ()), cutoff) > self.health_threshold:
                    return False
        return True

    def get_error_stats(self) -> Dict[str, Dict[str, Any]]:
        """Per-category event count and most recent occurrence (epoch seconds)."""
        with self._lock:
            return {
                category.value: {
                    "count": len(events),
                    "last_occurrence": events[-1].timestamp if events else None,
                }
                for category, events in self._history.items()
            }

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()


_default_manager: Optional[ErrorStrategyManager] = None


def get_error_strategy_manager() -> ErrorStrategyManager:
    """Process-wide manager used when callers do not supply their own."""
    global _default_manager
    if _default_manager is None:
        _default_manager = ErrorStrategyManager()
    return _default_manager


_UNSET: Any = object()


async def with_graceful_degradation(
    operation: Callable[[], Awaitable[T]],
    context: ErrorContext,
    fallback: Any = _UNSET,
    manager: Optional[ErrorStrategyManager] = None,
) -> T:
    """Run ``operation``, degrading gracefully on failure.

    Order on failure: recovery action then exactly one retry; the strategy's
    fallback value; the caller's ``fallback``; otherwise
    ``DegradedServiceError`` chained from the original error.

    Raises:
        DegradedServiceError: When no value could be produced
    """
    manager = manager or get_error_strategy_manager()
    try:
        return await operation()
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        strategy = manager.analyze_error(exc, context)
        logger.log(
            _SEVERITY_LOG_LEVEL[strategy.severity],
            "[%s] %s during %s: %s",
            strategy.severity.value.upper(),
            strategy.internal_message,
            context.operation,
            exc,
        )

        if strategy.can_recover and strategy.recovery_action is not None:
            try:
                recovered = await strategy.recovery_action()
            except Exception as recovery_exc:
                logger.warning("Recovery for %s failed: %s", strategy.category.value, recovery_exc)
                recovered = False
            if recovered:
                try:
                    result = await operation()
                except Exception as retry_exc:
                    logger.warning("Retry after recovery failed for %s: %s", context.operation, retry_exc)
                else:
                    logger.info("Recovered from %s during %s", strategy.category.value, context.operation)
                    return result

        if strategy.fallback_value is not None:
            _record_fallback(context, strategy, "strategy")
            return strategy.fallback_value

        if fallback is not _UNSET:
            _record_fallback(context, strategy, "caller")
            return fallback

        raise DegradedServiceError(strategy.user_message, code=strategy.code, strategy=strategy) from exc


def _record_fallback(context: ErrorContext, strategy: ErrorRecoveryStrategy, source: str) -> None:
    logger.warning("Serving %s fallback for %s (%s)", source, context.operation, strategy.category.value)
    audit_log(
        "fallback_used",
        operation=context.operation,
        category=strategy.category.value,
        code=strategy.code,
        source=source,
    )
    get_metrics().counter("errors.fallback_used", labels={"source": source})
