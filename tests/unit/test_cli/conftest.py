"""Shared fixtures for CLI command tests."""

import pytest
from click.testing import CliRunner

from llm_doc_optimizer.core.completion import CompletionResponse, TokenUsage


class StubCompletionClient:
    """Stands in for HttpCompletionClient; returns queued results."""

    def __init__(self, *results):
        self.results = list(results)
        self.closed = False

    async def complete(self, request):
        result = self.results.pop(0) if self.results else CompletionResponse(
            content="Tighter prose.",
            model=request.model or "gpt-4o-mini",
            usage=TokenUsage(prompt_tokens=8, completion_tokens=4, total_tokens=12),
        )
        if isinstance(result, BaseException):
            raise result
        return result

    async def health_check(self):
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def stub_client():
    return StubCompletionClient()


@pytest.fixture
def make_stub_client():
    return StubCompletionClient
