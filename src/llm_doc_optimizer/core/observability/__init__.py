"""
Observability utilities for llm-doc-optimizer.

Provides metrics collection, audit logging of flow-control decisions and
redaction of sensitive data before it reaches logs or error reports.

Example:
    from llm_doc_optimizer.core.observability import audit_log, get_metrics

    get_metrics().counter("rate_limit.denied", labels={"limit_type": "requests"})
    audit_log("rate_limit", identifier=user_id, limit=100)
"""

from llm_doc_optimizer.core.observability.audit import (
    AuditEvent,
    AuditEventType,
    AuditLogger,
    audit_log,
    get_audit_logger,
)
from llm_doc_optimizer.core.observability.metrics import (
    Metric,
    MetricsCollector,
    MetricType,
    get_metrics,
)
from llm_doc_optimizer.core.observability.redaction import (
    SENSITIVE_KEYS,
    SENSITIVE_PATTERNS,
    redact_for_logging,
    redact_sensitive_data,
    redact_text,
)

__all__ = [
    # Metrics
    "Metric",
    "MetricType",
    "MetricsCollector",
    "get_metrics",
    # Audit
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
    "audit_log",
    "get_audit_logger",
    # Redaction
    "SENSITIVE_KEYS",
    "SENSITIVE_PATTERNS",
    "redact_for_logging",
    "redact_sensitive_data",
    "redact_text",
]
