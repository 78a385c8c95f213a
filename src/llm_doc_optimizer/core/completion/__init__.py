"""Completion boundary: request models, the httpx client and the resilient service."""

from llm_doc_optimizer.core.completion.client import (
    CompletionClient,
    HttpCompletionClient,
    error_for_response,
    parse_retry_after,
)
from llm_doc_optimizer.core.completion.models import (
    ChatMessage,
    CompletionOutcome,
    CompletionRequest,
    CompletionResponse,
    TokenUsage,
)
from llm_doc_optimizer.core.completion.service import ResilienceMetrics, ResilientCompletionService

__all__ = [
    "ChatMessage",
    "CompletionClient",
    "CompletionOutcome",
    "CompletionRequest",
    "CompletionResponse",
    "HttpCompletionClient",
    "ResilienceMetrics",
    "ResilientCompletionService",
    "TokenUsage",
    "error_for_response",
    "parse_retry_after",
]
