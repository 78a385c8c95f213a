"""Token spend ledger and calendar budgets per user.

Budgets are never stored as counters: daily and monthly usage is summed
from the timestamped transactions each time it is needed, so there is
nothing that can drift. Transactions older than the retention period are
pruned whenever a user records a new one.
"""

import logging
import threading
import time
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from ulid import ULID

from llm_doc_optimizer.core.observability import audit_log, get_metrics
from llm_doc_optimizer.core.resilience.models import Clock
from llm_doc_optimizer.core.tokens.pricing import calculate_cost, estimate_cost

logger = logging.getLogger(__name__)

_DAY = 24 * 60 * 60


@dataclass
class TokenTransaction:
    """One recorded completion's token spend."""

    id: str
    user_id: str
    timestamp: float
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost: float
    operation: str = "completion"
    request_id: Optional[str] = None
    optimization_type: Optional[str] = None
    document_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TokenBudget:
    """Calendar budget snapshot for one user.

    Attributes:
        daily_limit: Tokens allowed since the start of the day
        monthly_limit: Tokens allowed since the start of the month
        daily_used: Tokens recorded since the start of the day
        monthly_used: Tokens recorded since the start of the month
        alert_thresholds: Percent-of-limit levels that warrant an alert
    """

    daily_limit: int
    monthly_limit: int
    daily_used: int
    monthly_used: int
    alert_thresholds: Dict[str, int] = field(default_factory=lambda: {"daily": 80, "monthly": 90})

    @property
    def daily_remaining(self) -> int:
        return max(0, self.daily_limit - self.daily_used)

    @property
    def monthly_remaining(self) -> int:
        return max(0, self.monthly_limit - self.monthly_used)

    def alerts(self) -> List[str]:
        """Periods whose usage has crossed their alert threshold."""
        crossed = []
        if self.daily_limit and self.daily_used * 100 >= self.daily_limit * self.alert_thresholds["daily"]:
            crossed.append("daily")
        if self.monthly_limit and self.monthly_used * 100 >= self.monthly_limit * self.alert_thresholds["monthly"]:
            crossed.append("monthly")
        return crossed

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["daily_remaining"] = self.daily_remaining
        data["monthly_remaining"] = self.monthly_remaining
        return data


@dataclass
class BudgetCheck:
    """Outcome of a budget admission check."""

    allowed: bool
    budget: TokenBudget
    reason: Optional[str] = None
    period: Optional[str] = None


@dataclass
class UsagePeriod:
    requests: int = 0
    tokens: int = 0
    cost: float = 0.0

    @property
    def avg_tokens_per_request(self) -> float:
        return self.tokens / self.requests if self.requests else 0.0


class TokenLedger:
    """Records token spend and answers budget questions per user.

    Args:
        daily_limit: Default daily token ceiling
        monthly_limit: Default monthly token ceiling
        retention_days: Transactions older than this are pruned
        clock: Wall clock returning epoch seconds, injectable for tests
        tz: Time zone (or IANA name) defining day and month boundaries

    Example:
        >>> ledger = TokenLedger(daily_limit=10_000)
        >>> check = ledger.check_budget_limits("user-42", requested_tokens=1200)
        >>> if check.allowed:
        ...     ledger.record_transaction("user-42", "gpt-4o-mini", 900, 300)
    """

    def __init__(
        self,
        daily_limit: int = 10000,
        monthly_limit: int = 250000,
        retention_days: int = 90,
        *,
        clock: Clock = time.time,
        tz: Any = timezone.utc,
    ) -> None:
        self.daily_limit = daily_limit
        self.monthly_limit = monthly_limit
        self.retention_seconds = retention_days * _DAY
        self._clock = clock
        self._tz: tzinfo = ZoneInfo(tz) if isinstance(tz, str) else tz
        self._lock = threading.Lock()
        self._transactions: Dict[str, List[TokenTransaction]] = defaultdict(list)

    def _period_starts(self, now: float) -> tuple:
        local = datetime.fromtimestamp(now, tz=self._tz)
        start_of_day = local.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_month = start_of_day.replace(day=1)
        return start_of_day.timestamp(), start_of_month.timestamp()

    def record_transaction(
        self,
        user_id: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        *,
        operation: str = "completion",
        request_id: Optional[str] = None,
        optimization_type: Optional[str] = None,
        document_count: Optional[int] = None,
    ) -> TokenTransaction:
        """Record one completion's spend and prune the user's expired history.

        Returns:
            The stored transaction, including its computed cost
        """
        now = self._clock()
        txn = TokenTransaction(
            id=str(ULID()),
            user_id=user_id,
            timestamp=now,
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            cost=calculate_cost(model, prompt_tokens, completion_tokens),
            operation=operation,
            request_id=request_id,
            optimization_type=optimization_type,
            document_count=document_count,
        )
        cutoff = now - self.retention_seconds
        with self._lock:
            history = self._transactions[user_id]
            history.append(txn)
            if history[0].timestamp < cutoff:
                self._transactions[user_id] = [t for t in history if t.timestamp >= cutoff]

        logger.debug(
            "Token transaction recorded: %d tokens, $%.4f (%s)",
            txn.total_tokens,
            txn.cost,
            model,
        )
        get_metrics().counter("tokens.used", value=txn.total_tokens, labels={"model": model})
        return txn

    def get_token_budget(
        self,
        user_id: str,
        daily_limit: Optional[int] = None,
        monthly_limit: Optional[int] = None,
    ) -> TokenBudget:
        """Budget snapshot summed from the user's transactions."""
        day_start, month_start = self._period_starts(self._clock())
        with self._lock:
            history = list(self._transactions.get(user_id, ()))
        return TokenBudget(
            daily_limit=self.daily_limit if daily_limit is None else daily_limit,
            monthly_limit=self.monthly_limit if monthly_limit is None else monthly_limit,
            daily_used=sum(t.total_tokens for t in history if t.timestamp >= day_start),
            monthly_used=sum(t.total_tokens for t in history if t.timestamp >= month_start),
        )

    def check_budget_limits(
        self,
        user_id: str,
        requested_tokens: int,
        daily_limit: Optional[int] = None,
        monthly_limit: Optional[int] = None,
    ) -> BudgetCheck:
        """Decide whether ``requested_tokens`` fit in both calendar budgets.

        The daily budget is checked before the monthly one and the first
        violated limit is reported. Nothing is recorded here; spend is
        recorded after the call with the actual usage.
        """
        budget = self.get_token_budget(user_id, daily_limit, monthly_limit)

        if budget.daily_used + requested_tokens > budget.daily_limit:
            check = BudgetCheck(allowed=False, budget=budget, reason="Daily token limit exceeded", period="daily")
        elif budget.monthly_used + requested_tokens > budget.monthly_limit:
            check = BudgetCheck(allowed=False, budget=budget, reason="Monthly token limit exceeded", period="monthly")
        else:
            return BudgetCheck(allowed=True, budget=budget)

        audit_log(
            "budget_exceeded",
            user_id=user_id,
            period=check.period,
            requested_tokens=requested_tokens,
            used=budget.daily_used if check.period == "daily" else budget.monthly_used,
            limit=budget.daily_limit if check.period == "daily" else budget.monthly_limit,
        )
        get_metrics().counter("tokens.budget_denied", labels={"period": check.period or ""})
        return check

    def estimate_cost(self, model: str, estimated_tokens: int) -> float:
        return estimate_cost(model, estimated_tokens)

    def get_usage_stats(self, user_id: str) -> Dict[str, Any]:
        """Totals, per-model breakdown and trailing 24h/7d/30d periods for a user."""
        now = self._clock()
        with self._lock:
            history = list(self._transactions.get(user_id, ()))

        breakdown: Dict[str, Dict[str, Any]] = {}
        for t in history:
            entry = breakdown.setdefault(t.model, {"requests": 0, "tokens": 0, "cost": 0.0})
            entry["requests"] += 1
            entry["tokens"] += t.total_tokens
            entry["cost"] += t.cost

        def period(days: int) -> Dict[str, Any]:
            stats = UsagePeriod()
            for t in history:
                if now - t.timestamp <= days * _DAY:
                    stats.requests += 1
                    stats.tokens += t.total_tokens
                    stats.cost += t.cost
            return {
                "requests": stats.requests,
                "tokens": stats.tokens,
                "cost": stats.cost,
                "avg_tokens_per_request": stats.avg_tokens_per_request,
            }

        return {
            "total_requests": len(history),
            "total_tokens": sum(t.total_tokens for t in history),
            "total_cost": sum(t.cost for t in history),
            "model_breakdown": breakdown,
            "period_stats": {
                "last_24h": period(1),
                "last_7d": period(7),
                "last_30d": period(30),
            },
        }

    def get_recent_transactions(self, user_id: str, limit: int = 10) -> List[TokenTransaction]:
        """Newest-first transactions for a user."""
        with self._lock:
            history = list(self._transactions.get(user_id, ()))
        return sorted(history, key=lambda t: t.timestamp, reverse=True)[:limit]

    def get_global_stats(self) -> Dict[str, Any]:
        """Aggregate spend across all users."""
        with self._lock:
            snapshot = {user: list(txns) for user, txns in self._transactions.items()}
        model_usage: Dict[str, int] = defaultdict(int)
        total_tokens = 0
        total_cost = 0.0
        total_transactions = 0
        for txns in snapshot.values():
            total_transactions += len(txns)
            for t in txns:
                total_tokens += t.total_tokens
                total_cost += t.cost
                model_usage[t.model] += t.total_tokens
        return {
            "total_users": len(snapshot),
            "total_transactions": total_transactions,
            "total_tokens": total_tokens,
            "total_cost": total_cost,
            "model_usage": dict(model_usage),
        }
