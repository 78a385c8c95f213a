"""Audit logging for flow-control decisions.

Every admission denial, breaker transition, degraded response and severity
escalation is written as a structured record to a dedicated logger so that
operators can filter them independently of regular application logs.
Correlation and caller ids are populated from request context.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from llm_doc_optimizer.core.context import get_client_id, get_correlation_id

logger = logging.getLogger(__name__)


class AuditEventType(Enum):
    """Types of audit events emitted by the resilience layer."""

    CIRCUIT_STATE_CHANGE = "circuit_state_change"
    RETRY_ATTEMPT = "retry_attempt"
    RATE_LIMIT = "rate_limit"
    BUDGET_EXCEEDED = "budget_exceeded"
    BULKHEAD_REJECTED = "bulkhead_rejected"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    FALLBACK_USED = "fallback_used"
    ERROR_ESCALATED = "error_escalated"
    HEALTH_CHECK = "health_check"
    CONFIG_CHANGE = "config_change"
    OTHER = "other"


@dataclass
class AuditEvent:
    """Structured audit event."""

    event_type: AuditEventType
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    correlation_id: Optional[str] = None
    client_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.correlation_id is None:
            self.correlation_id = get_correlation_id() or None
        if self.client_id is None:
            ctx_client = get_client_id()
            if ctx_client and ctx_client != "anonymous":
                self.client_id = ctx_client

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: Dict[str, Any] = {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "details": self.details,
        }
        if self.correlation_id:
            result["correlation_id"] = self.correlation_id
        if self.client_id:
            result["client_id"] = self.client_id
        return result


class AuditLogger:
    """Writes audit events to the ``llm_doc_optimizer.audit`` logger."""

    def __init__(self) -> None:
        self._logger = logging.getLogger("llm_doc_optimizer.audit")

    def log(self, event: AuditEvent) -> None:
        self._logger.info(f"AUDIT: {event.event_type.value}", extra={"audit": event.to_dict()})

    def circuit_state_change(self, breaker: str, from_state: str, to_state: str, **details: Any) -> None:
        """Log a circuit breaker transition."""
        self.log(
            AuditEvent(
                event_type=AuditEventType.CIRCUIT_STATE_CHANGE,
                details={"breaker": breaker, "from_state": from_state, "to_state": to_state, **details},
            )
        )

    def rate_limit(self, identifier: str, limit: int, limit_type: str = "requests", **details: Any) -> None:
        """Log a rate-limit denial."""
        self.log(
            AuditEvent(
                event_type=AuditEventType.RATE_LIMIT,
                details={"identifier": identifier, "limit": limit, "limit_type": limit_type, **details},
            )
        )


_audit = AuditLogger()


def get_audit_logger() -> AuditLogger:
    """Get the global audit logger."""
    return _audit


def audit_log(event_type: str, **details: Any) -> None:
    """
    Convenience function for audit logging.

    Args:
        event_type: Value of an ``AuditEventType`` (circuit_state_change,
                    retry_attempt, rate_limit, budget_exceeded, ...). Unknown
                    values are logged as ``other`` with the original name kept.
        **details: Additional details to include in the audit record
    """
    try:
        event_enum = AuditEventType(event_type)
    except ValueError:
        event_enum = AuditEventType.OTHER
        details["original_event_type"] = event_type

    _audit.log(AuditEvent(event_type=event_enum, details=details))
