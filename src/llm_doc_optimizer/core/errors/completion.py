"""Typed failures raised by completion clients.

Clients translate transport and HTTP failures into this hierarchy so the
resilience layer can classify errors by type rather than by message text.
"""

from typing import Optional


class CompletionError(Exception):
    """Base exception for completion API failures.

    Attributes:
        message: Human-readable error description (internal, may contain
            dependency details)
        status_code: HTTP-like status code if applicable
        retry_after: Seconds the dependency asked us to wait, if any
        provider: Name of the completion provider
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after
        self.provider = provider


class RateLimitError(CompletionError):
    """The dependency throttled the request (HTTP 429)."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        retry_after: Optional[float] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message, status_code=429, retry_after=retry_after, provider=provider)


class QuotaExceededError(CompletionError):
    """Account quota or billing limit exhausted."""

    def __init__(
        self,
        message: str = "Quota exceeded",
        *,
        status_code: Optional[int] = 429,
        provider: Optional[str] = None,
    ):
        super().__init__(message, status_code=status_code, provider=provider)


class AuthenticationError(CompletionError):
    """Credentials were rejected (HTTP 401/403)."""

    def __init__(
        self,
        message: str = "Authentication failed",
        *,
        status_code: int = 401,
        provider: Optional[str] = None,
    ):
        super().__init__(message, status_code=status_code, provider=provider)


class ModelNotFoundError(CompletionError):
    """Requested model not found or not accessible."""

    def __init__(
        self,
        message: str,
        *,
        model: Optional[str] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message, status_code=404, provider=provider)
        self.model = model


class ContentFilterError(CompletionError):
    """Request content was rejected by the dependency."""

    def __init__(
        self,
        message: str = "Content rejected",
        *,
        status_code: int = 400,
        provider: Optional[str] = None,
    ):
        super().__init__(message, status_code=status_code, provider=provider)


class ContextWindowError(CompletionError):
    """Prompt plus requested output exceeds the model's context window.

    Attributes:
        prompt_tokens: Estimated prompt size, when known
        max_tokens: Model context limit, when known
    """

    def __init__(
        self,
        message: str = "Context length exceeded",
        *,
        status_code: int = 400,
        prompt_tokens: Optional[int] = None,
        max_tokens: Optional[int] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message, status_code=status_code, provider=provider)
        self.prompt_tokens = prompt_tokens
        self.max_tokens = max_tokens


class ServerError(CompletionError):
    """The dependency failed on its side (HTTP 5xx)."""

    def __init__(
        self,
        message: str = "Completion service error",
        *,
        status_code: int = 500,
        retry_after: Optional[float] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message, status_code=status_code, retry_after=retry_after, provider=provider)


class NetworkError(CompletionError):
    """Connection could not be established or was reset."""


class CompletionTimeoutError(CompletionError):
    """The dependency did not answer within the client's own timeout."""

    def __init__(
        self,
        message: str = "Completion request timed out",
        *,
        timeout_seconds: Optional[float] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message, provider=provider)
        self.timeout_seconds = timeout_seconds
