"""Request-scoped context for outbound completion calls.

Correlation and caller ids live in ``ContextVar`` objects so that audit
records, log lines and error reports emitted from nested async tasks can be
tied back to the request that caused them.

Example:
    from llm_doc_optimizer.core.context import correlation_context

    async with correlation_context(client_id="user-42"):
        await service.complete(request, identifier="user-42")
"""

from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator, Optional

from ulid import ULID

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
client_id_var: ContextVar[str] = ContextVar("client_id", default="anonymous")


def generate_correlation_id() -> str:
    """Return a new sortable correlation id."""
    return str(ULID())


def get_correlation_id() -> str:
    """Return the current correlation id, or an empty string outside a request."""
    return correlation_id_var.get()


def get_client_id() -> str:
    return client_id_var.get()


@asynccontextmanager
async def correlation_context(
    request_id: Optional[str] = None,
    client_id: Optional[str] = None,
) -> AsyncIterator[str]:
    """Bind a correlation id (and optionally a caller id) for the enclosed block.

    Args:
        request_id: Correlation id to use; a new ULID is generated when omitted
        client_id: Caller identity to attach to audit records

    Yields:
        The active correlation id
    """
    rid = request_id or generate_correlation_id()
    rid_token = correlation_id_var.set(rid)
    client_token = client_id_var.set(client_id) if client_id is not None else None
    try:
        yield rid
    finally:
        if client_token is not None:
            client_id_var.reset(client_token)
        correlation_id_var.reset(rid_token)
