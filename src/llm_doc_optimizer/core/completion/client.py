"""Completion clients.

``CompletionClient`` is the contract the resilience layer consumes.
``HttpCompletionClient`` implements it for OpenAI-compatible
``/chat/completions`` endpoints over httpx and translates every transport
and HTTP failure into the typed ``CompletionError`` hierarchy, so no caller
ever has to inspect raw status codes or httpx exceptions.
"""

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from llm_doc_optimizer.config.domains import CompletionConfig
from llm_doc_optimizer.core.completion.models import CompletionRequest, CompletionResponse, TokenUsage
from llm_doc_optimizer.core.errors.completion import (
    AuthenticationError,
    CompletionError,
    CompletionTimeoutError,
    ContentFilterError,
    ContextWindowError,
    ModelNotFoundError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    ServerError,
)
from llm_doc_optimizer.core.observability import redact_text

logger = logging.getLogger(__name__)

_CONTEXT_HINTS = ("context_length_exceeded", "maximum context length", "context length", "too many tokens")
_CONTENT_FILTER_CODES = ("content_filter", "content_policy_violation")


@runtime_checkable
class CompletionClient(Protocol):
    """Anything that can run a completion and report its own health."""

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        ...

    async def health_check(self) -> bool:
        ...


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Seconds from a numeric ``Retry-After`` header, or None.

    HTTP-date values are not supported and yield None.
    """
    value = response.headers.get("Retry-After")
    if value:
        try:
            return max(0.0, float(value))
        except ValueError:
            return None
    return None


def _error_details(response: httpx.Response) -> Dict[str, str]:
    """Pull ``message``, ``code`` and ``type`` from an error body, redacted."""
    try:
        body = response.json()
    except ValueError:
        return {"message": redact_text(response.text[:200] or response.reason_phrase), "code": "", "type": ""}

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        message = str(error.get("message") or response.reason_phrase)
        code = str(error.get("code") or "")
        kind = str(error.get("type") or "")
    else:
        message = str(error or (body.get("message") if isinstance(body, dict) else "") or response.reason_phrase)
        code = kind = ""
    return {"message": redact_text(message), "code": code, "type": kind}


def error_for_response(response: httpx.Response, *, model: str, provider: str) -> CompletionError:
    """Translate a non-2xx response into the matching typed error."""
    status = response.status_code
    details = _error_details(response)
    message = f"{provider} API error {status}: {details['message']}"
    lowered = details["message"].lower()
    code = details["code"]

    if status in (401, 403):
        return AuthenticationError(message, status_code=status, provider=provider)
    if status == 429:
        if code == "insufficient_quota" or details["type"] == "insufficient_quota":
            return QuotaExceededError(message, status_code=status, provider=provider)
        return RateLimitError(message, retry_after=parse_retry_after(response), provider=provider)
    if status == 402:
        return QuotaExceededError(message, status_code=status, provider=provider)
    if status == 404:
        return ModelNotFoundError(message, model=model, provider=provider)
    if status == 413 or code == "context_length_exceeded" or any(hint in lowered for hint in _CONTEXT_HINTS):
        return ContextWindowError(message, status_code=status, provider=provider)
    if code in _CONTENT_FILTER_CODES:
        return ContentFilterError(message, status_code=status, provider=provider)
    if status >= 500:
        return ServerError(message, status_code=status, retry_after=parse_retry_after(response), provider=provider)
    return CompletionError(message, status_code=status, provider=provider)


class HttpCompletionClient:
    """Chat completions over httpx.

    Args:
        config: Endpoint, credential, default model and timeout
        client: Shared ``httpx.AsyncClient``; one is created (and owned) if omitted
    """

    def __init__(self, config: CompletionConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.request_timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _payload(self, request: CompletionRequest, model: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [message.model_dump() for message in request.messages],
            "temperature": request.temperature,
        }
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        return payload

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Run one completion.

        Raises:
            CompletionError: A typed subclass for every failure mode
        """
        model = request.model or self.config.model
        provider = self.config.provider
        url = f"{self.config.base_url}/chat/completions"

        try:
            response = await self._client.post(url, json=self._payload(request, model), headers=self._headers())
        except httpx.TimeoutException as exc:
            raise CompletionTimeoutError(
                f"{provider} request timed out",
                timeout_seconds=self.config.request_timeout,
                provider=provider,
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{provider} network error: {redact_text(str(exc))}", provider=provider) from exc

        if response.status_code >= 400:
            raise error_for_response(response, model=model, provider=provider)

        return self._parse_response(response, model)

    def _parse_response(self, response: httpx.Response, model: str) -> CompletionResponse:
        provider = self.config.provider
        try:
            data = response.json()
            choice = data["choices"][0]
            if choice.get("finish_reason") == "content_filter":
                raise ContentFilterError(f"{provider} filtered the completion", provider=provider)
            return CompletionResponse(
                content=choice["message"]["content"] or "",
                model=data.get("model") or model,
                usage=TokenUsage(**(data.get("usage") or {})),
                finish_reason=choice.get("finish_reason"),
            )
        except (ValueError, KeyError, IndexError, TypeError, ValidationError) as exc:
            raise ServerError(
                f"{provider} returned a malformed completion response",
                status_code=502,
                provider=provider,
            ) from exc

    async def health_check(self) -> bool:
        """True if the API answers an authenticated model listing."""
        if not self.config.api_key:
            logger.error("%s health check failed: API key not configured", self.config.provider)
            return False
        try:
            response = await self._client.get(f"{self.config.base_url}/models", headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("%s health check failed: %s", self.config.provider, redact_text(str(exc)))
            return False
        if response.status_code != 200:
            logger.warning("%s health check returned HTTP %d", self.config.provider, response.status_code)
            return False
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
