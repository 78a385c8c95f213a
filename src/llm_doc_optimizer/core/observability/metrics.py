"""Metrics collection for observability.

Metrics are logged as structured records for log aggregation systems and
counters are also totalled in-process so that status commands can report
them without an external backend.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class MetricType(Enum):
    """Types of metrics that can be emitted."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    TIMER = "timer"


@dataclass
class Metric:
    """Structured metric data."""

    name: str
    value: Union[int, float]
    metric_type: MetricType
    labels: Dict[str, str] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "type": self.metric_type.value,
            "labels": self.labels,
            "timestamp": self.timestamp,
        }


def _series_key(name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
    return name, tuple(sorted(labels.items()))


class MetricsCollector:
    """
    Collects and emits metrics to the standard logger.

    Counter values and the latest gauge values are also kept in memory,
    keyed by name and label set, and exposed through ``snapshot()``.
    """

    def __init__(self, prefix: str = "llm_doc_optimizer"):
        self.prefix = prefix
        self._logger = logging.getLogger(f"{__name__}.metrics")
        self._lock = threading.Lock()
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], float] = defaultdict(float)
        self._gauges: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], float] = {}

    def emit(self, metric: Metric) -> None:
        """Emit a metric to the structured logger and update in-process totals."""
        self._logger.debug(f"METRIC: {self.prefix}.{metric.name}", extra={"metric": metric.to_dict()})
        key = _series_key(metric.name, metric.labels)
        with self._lock:
            if metric.metric_type == MetricType.COUNTER:
                self._counters[key] += metric.value
            elif metric.metric_type == MetricType.GAUGE:
                self._gauges[key] = float(metric.value)

    def counter(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None) -> None:
        """Emit a counter metric."""
        self.emit(Metric(name=name, value=value, metric_type=MetricType.COUNTER, labels=labels or {}))

    def gauge(
        self,
        name: str,
        value: Union[int, float],
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        """Emit a gauge metric."""
        self.emit(Metric(name=name, value=value, metric_type=MetricType.GAUGE, labels=labels or {}))

    def timer(self, name: str, duration_ms: float, labels: Optional[Dict[str, str]] = None) -> None:
        """Emit a timer metric (duration in milliseconds)."""
        self.emit(Metric(name=name, value=duration_ms, metric_type=MetricType.TIMER, labels=labels or {}))

    def histogram(
        self,
        name: str,
        value: Union[int, float],
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        """Emit a histogram metric for distribution tracking."""
        self.emit(Metric(name=name, value=value, metric_type=MetricType.HISTOGRAM, labels=labels or {}))

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._counters.get(_series_key(name, labels or {}), 0.0)

    def snapshot(self) -> Dict[str, Any]:
        """Return counter totals and latest gauge values keyed by ``name{labels}``."""

        def render(key: Tuple[str, Tuple[Tuple[str, str], ...]]) -> str:
            name, labels = key
            if not labels:
                return name
            return name + "{" + ",".join(f"{k}={v}" for k, v in labels) + "}"

        with self._lock:
            return {
                "counters": {render(k): v for k, v in self._counters.items()},
                "gauges": {render(k): v for k, v in self._gauges.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()


_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return _metrics
