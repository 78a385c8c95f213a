"""Request and response models for the completion boundary."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from llm_doc_optimizer.core.tokens.pricing import estimate_tokens


class ChatMessage(BaseModel):
    """One message in a chat completion prompt."""

    role: Literal["system", "user", "assistant"] = Field(..., description="Author of the message")
    content: str = Field(..., description="Message text")


class CompletionRequest(BaseModel):
    """A chat completion call as seen by the resilience layer."""

    messages: List[ChatMessage] = Field(..., min_length=1, description="Prompt messages, in order")
    model: Optional[str] = Field(None, description="Model override; the configured default when unset")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(None, gt=0, description="Completion token cap")
    options: Dict[str, Any] = Field(default_factory=dict, description="Caller options folded into the cache key")
    cacheable: bool = Field(default=True, description="Whether the result may be served from or stored in the cache")

    @property
    def estimated_tokens(self) -> int:
        """Prompt estimate plus the completion cap, used for admission control."""
        prompt = sum(estimate_tokens(message.content) for message in self.messages)
        return prompt + (self.max_tokens or 0)

    @property
    def prompt_text(self) -> str:
        return "\n".join(f"{message.role}: {message.content}" for message in self.messages)


class TokenUsage(BaseModel):
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class CompletionResponse(BaseModel):
    """Successful completion returned by a client."""

    content: str = Field(..., description="Generated text")
    model: str = Field(..., description="Model that produced the text")
    usage: TokenUsage = Field(default_factory=TokenUsage)
    finish_reason: Optional[str] = Field(None, description="Provider stop reason")


class CompletionOutcome(BaseModel):
    """What the resilient service hands back to callers.

    A degraded outcome carries the strategy's fallback payload instead of a
    fresh completion; ``content`` is then the fallback's content.
    """

    content: str
    model: Optional[str] = None
    usage: Optional[TokenUsage] = None
    cached: bool = False
    degraded: bool = False
    attempts: int = 0
    fallback: Optional[Dict[str, Any]] = None
    error_code: Optional[str] = None
