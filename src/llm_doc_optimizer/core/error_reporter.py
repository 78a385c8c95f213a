"""Batched delivery of error reports to an external collector.

Reports are redacted before they are buffered, because they leave the
process. Delivery failures are logged and the batch is kept for the next
flush; reporting never raises into the request path.
"""

import logging
import platform
import traceback
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from ulid import ULID

from llm_doc_optimizer import __version__
from llm_doc_optimizer.config.domains import ErrorReportingConfig
from llm_doc_optimizer.core.context import get_correlation_id
from llm_doc_optimizer.core.error_strategies import ErrorContext, ErrorRecoveryStrategy
from llm_doc_optimizer.core.observability import get_metrics, redact_sensitive_data, redact_text

logger = logging.getLogger(__name__)

# Undelivered reports kept across failed flushes, as a multiple of batch_size
_MAX_PENDING_BATCHES = 10


class ErrorReporter:
    """Buffers error reports and POSTs them in batches.

    Reporting is active only when ``config.enabled`` is set and an endpoint
    is configured; otherwise ``report`` is a no-op.

    Args:
        config: Reporting settings
        client: HTTP client to send with; one is created (and owned) if omitted
    """

    def __init__(self, config: ErrorReportingConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._pending: List[Dict[str, Any]] = []

    @property
    def enabled(self) -> bool:
        return bool(self.config.enabled and self.config.endpoint)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def build_report(
        self,
        error: BaseException,
        context: ErrorContext,
        strategy: ErrorRecoveryStrategy,
    ) -> Dict[str, Any]:
        """Assemble one report, redacted unless sensitive data is allowed."""
        message = str(error)
        context_data = asdict(context)
        if not self.config.include_sensitive_data:
            message = redact_text(message)
            context_data = redact_sensitive_data(context_data)

        stack = None
        if self.config.include_stack_traces and error.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
            if not self.config.include_sensitive_data:
                stack = redact_text(stack)

        return {
            "id": str(ULID()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "correlation_id": get_correlation_id() or None,
            "severity": strategy.severity.value,
            "error": {"name": type(error).__name__, "message": message, "stack": stack},
            "context": context_data,
            "strategy": {
                "code": strategy.code,
                "category": strategy.category.value,
                "can_recover": strategy.can_recover,
                "user_message": strategy.user_message,
            },
            "environment": {
                "python_version": platform.python_version(),
                "platform": platform.platform(),
                "service_version": __version__,
            },
        }

    async def report(
        self,
        error: BaseException,
        context: ErrorContext,
        strategy: ErrorRecoveryStrategy,
    ) -> None:
        """Buffer a report and flush once a full batch is pending."""
        if not self.enabled:
            return
        self._pending.append(self.build_report(error, context, strategy))
        if len(self._pending) >= self.config.batch_size:
            await self.flush()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    async def flush(self) -> int:
        """Send every pending report; returns how many were delivered."""
        if not self._pending or not self.config.endpoint:
            return 0

        batch, self._pending = self._pending, []
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        payload = {"reports": batch, "service": "llm-doc-optimizer"}

        try:
            response = await self._get_client().post(self.config.endpoint, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Failed to deliver %d error reports: %s", len(batch), exc)
            self._requeue(batch)
            get_metrics().counter("error_reports.failed", value=len(batch))
            return 0

        logger.debug("Delivered %d error reports", len(batch))
        get_metrics().counter("error_reports.sent", value=len(batch))
        return len(batch)

    def _requeue(self, batch: List[Dict[str, Any]]) -> None:
        limit = self.config.batch_size * _MAX_PENDING_BATCHES
        combined = batch + self._pending
        dropped = len(combined) - limit
        if dropped > 0:
            logger.warning("Dropping %d oldest undelivered error reports", dropped)
            combined = combined[dropped:]
        self._pending = combined

    async def close(self) -> None:
        """Flush what is pending and release the HTTP client if we own it."""
        try:
            await self.flush()
        finally:
            if self._owns_client and self._client is not None:
                await self._client.aclose()
                self._client = None
