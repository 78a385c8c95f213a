"""Named health probes with last-result tracking.

A probe is any sync or async callable returning a bool. ``run_checks``
runs every registered probe; a probe that raises or exceeds the probe
timeout is recorded as unhealthy with the error text, so one broken
dependency never breaks the health report itself.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from llm_doc_optimizer.core.cache.keys import CacheKeyGenerator
from llm_doc_optimizer.core.observability import audit_log, get_metrics
from llm_doc_optimizer.core.resilience.models import CircuitState

logger = logging.getLogger(__name__)

Probe = Callable[[], Union[bool, Awaitable[bool]]]


@dataclass
class HealthCheckResult:
    name: str
    healthy: bool
    timestamp: float
    error: Optional[str] = None
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"healthy": self.healthy, "timestamp": self.timestamp}
        if self.error is not None:
            data["error"] = self.error
        data["duration_ms"] = round(self.duration_ms, 2)
        return data


@dataclass
class HealthReport:
    healthy: bool
    checks: Dict[str, HealthCheckResult] = field(default_factory=dict)

    @property
    def failing(self) -> List[str]:
        return [name for name, result in self.checks.items() if not result.healthy]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "checks": {name: result.to_dict() for name, result in self.checks.items()},
        }


class HealthChecker:
    """Registry of health probes.

    Args:
        probe_timeout: Seconds an async probe may take before it counts as failed
    """

    def __init__(self, probe_timeout: float = 5.0) -> None:
        self.probe_timeout = probe_timeout
        self._probes: Dict[str, Probe] = {}
        self._last_results: Dict[str, HealthCheckResult] = {}

    def register(self, name: str, probe: Probe) -> None:
        self._probes[name] = probe

    def unregister(self, name: str) -> bool:
        self._last_results.pop(name, None)
        return self._probes.pop(name, None) is not None

    @property
    def probe_names(self) -> List[str]:
        return list(self._probes)

    async def _run_probe(self, name: str, probe: Probe) -> HealthCheckResult:
        started = time.perf_counter()
        error: Optional[str] = None
        try:
            outcome = probe()
            if inspect.isawaitable(outcome):
                outcome = await asyncio.wait_for(outcome, timeout=self.probe_timeout)
            healthy = bool(outcome)
        except asyncio.TimeoutError:
            healthy = False
            error = f"Health check timed out after {self.probe_timeout}s"
        except Exception as exc:
            healthy = False
            error = str(exc) or type(exc).__name__
        duration_ms = (time.perf_counter() - started) * 1000

        if not healthy:
            logger.warning("Health check %s failed%s", name, f": {error}" if error else "")
        return HealthCheckResult(
            name=name,
            healthy=healthy,
            timestamp=time.time(),
            error=error,
            duration_ms=duration_ms,
        )

    async def run_checks(self) -> HealthReport:
        """Run every probe concurrently and replace the last-known results."""
        names = list(self._probes)
        results = await asyncio.gather(*(self._run_probe(name, self._probes[name]) for name in names))

        checks = {result.name: result for result in results}
        self._last_results.update(checks)
        report = HealthReport(healthy=all(r.healthy for r in results), checks=checks)

        get_metrics().gauge("health.healthy", 1.0 if report.healthy else 0.0)
        audit_log("health_check", healthy=report.healthy, failing=report.failing)
        return report

    def get_last_results(self) -> Dict[str, HealthCheckResult]:
        return dict(self._last_results)

    def is_healthy(self, name: Optional[str] = None) -> bool:
        """Last known health of one probe, or of all of them.

        An unknown (or never run) probe name is reported unhealthy.
        """
        if name is not None:
            result = self._last_results.get(name)
            return result is not None and result.healthy
        return all(result.healthy for result in self._last_results.values())


def register_default_probes(
    checker: HealthChecker,
    *,
    client: Any = None,
    breaker: Any = None,
    strategy_manager: Any = None,
    cache: Any = None,
) -> None:
    """Register the standard probes for whichever collaborators are supplied.

    Args:
        checker: Registry to add probes to
        client: Completion client; probed with ``health_check()``
        breaker: Circuit breaker; healthy while not OPEN
        strategy_manager: Error strategy manager; uses ``is_service_healthy``
        cache: Tiered cache; probed with an L2 write/read round trip
    """
    if client is not None:
        checker.register("completion_api", client.health_check)

    if breaker is not None:
        checker.register("circuit_breaker", lambda: breaker.state != CircuitState.OPEN)

    if strategy_manager is not None:
        checker.register("error_rates", lambda: strategy_manager.is_service_healthy("completion_api"))

    if cache is not None:
        key = CacheKeyGenerator.health("cache")

        async def cache_round_trip() -> bool:
            marker = {"checked_at": time.time()}
            await cache.l2.set(key, marker, 60)
            return await cache.l2.get(key) == marker

        checker.register("cache", cache_round_trip)
