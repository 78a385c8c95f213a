"""Response envelope types for callers of the resilience layer.

The request-handling layer turns terminal failures into user-facing
responses. Everything it needs (a stable machine-readable code, an error
type for routing, the user-safe message and retry hints) is carried by the
``ServiceResponse`` envelope built here. Internal diagnostics never enter it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from llm_doc_optimizer.core.context import get_correlation_id

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Machine-readable error codes surfaced to callers."""

    # Admission control
    RATE_LIMITED = "RATE_LIMITED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    RESOURCE_BUSY = "RESOURCE_BUSY"

    # Completion dependency
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
    CONTENT_REJECTED = "CONTENT_REJECTED"
    CONTEXT_TOO_LARGE = "CONTEXT_TOO_LARGE"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"

    # Local failures
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorType(str, Enum):
    """Error categories for client-side routing.

    The comment on each member is the HTTP status a request layer would map
    it to and whether the client should retry.
    """

    VALIDATION = "validation"  # 400 - No retry, fix input
    AUTHENTICATION = "authentication"  # 401 - No retry, re-authenticate
    NOT_FOUND = "not_found"  # 404 - No retry
    PAYLOAD_TOO_LARGE = "payload_too_large"  # 413 - No retry, shrink input
    RATE_LIMIT = "rate_limit"  # 429 - Yes, after delay
    INTERNAL = "internal"  # 500 - Maybe, with backoff
    UNAVAILABLE = "unavailable"  # 503 - Yes, with backoff
    AI_PROVIDER = "ai_provider"  # Upstream model rejected the request


@dataclass
class ServiceResponse:
    """Standard response envelope.

    Attributes:
        success: Whether the operation succeeded
        data: Machine-readable payload (error_code/error_type on failure)
        error: User-safe error message, None on success
        meta: Envelope metadata (request_id, timestamp, rate_limit)
    """

    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "meta": self.meta,
        }


def _build_meta(
    *,
    request_id: Optional[str] = None,
    rate_limit: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    meta: Dict[str, Any] = {"timestamp": datetime.now(timezone.utc).isoformat()}
    rid = request_id or get_correlation_id()
    if rid:
        meta["request_id"] = rid
    if rate_limit:
        meta["rate_limit"] = dict(rate_limit)
    return meta


def success_response(
    data: Optional[Mapping[str, Any]] = None,
    *,
    request_id: Optional[str] = None,
) -> ServiceResponse:
    """Create a standardized success response."""
    return ServiceResponse(
        success=True,
        data=dict(data or {}),
        meta=_build_meta(request_id=request_id),
    )


def error_response(
    message: str,
    *,
    error_code: Optional[Union[ErrorCode, str]] = None,
    error_type: Optional[Union[ErrorType, str]] = None,
    data: Optional[Mapping[str, Any]] = None,
    request_id: Optional[str] = None,
    rate_limit: Optional[Mapping[str, Any]] = None,
) -> ServiceResponse:
    """Create a standardized error response.

    Args:
        message: User-safe description of the failure. Never pass internal
            diagnostics here.
        error_code: Canonical error code (``ErrorCode`` or its string value)
        error_type: Error category for routing (``ErrorType`` or its value)
        data: Additional machine-readable context (e.g. ``retry_after``)
        request_id: Correlation id; defaults to the active context's id
        rate_limit: Rate-limit state to help clients back off

    Example:
        >>> error_response(
        ...     "Service is experiencing high demand. Please try again in a few moments.",
        ...     error_code=ErrorCode.RATE_LIMITED,
        ...     error_type=ErrorType.RATE_LIMIT,
        ...     data={"retry_after": 12},
        ... )
    """
    payload: Dict[str, Any] = dict(data or {})
    code = error_code if error_code is not None else ErrorCode.INTERNAL_ERROR
    etype = error_type if error_type is not None else ErrorType.INTERNAL
    payload.setdefault("error_code", code.value if isinstance(code, Enum) else code)
    payload.setdefault("error_type", etype.value if isinstance(etype, Enum) else etype)

    return ServiceResponse(
        success=False,
        data=payload,
        error=message,
        meta=_build_meta(request_id=request_id, rate_limit=rate_limit),
    )
