"""Shared fixtures for llm-doc-optimizer tests."""

from typing import List

import pytest

from llm_doc_optimizer.config import set_config
from llm_doc_optimizer.core.observability import get_metrics

_ENV_VARS = (
    "LLM_DOC_OPTIMIZER_CONFIG_FILE",
    "LLM_DOC_OPTIMIZER_LOG_LEVEL",
    "LLM_DOC_OPTIMIZER_STRUCTURED_LOGGING",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "OPENAI_MODEL",
    "RATE_LIMIT_MAX_REQUESTS",
    "RATE_LIMIT_WINDOW_SECONDS",
    "RATE_LIMIT_MAX_TOKENS",
    "TOKEN_DAILY_LIMIT",
    "TOKEN_MONTHLY_LIMIT",
    "CACHE_TTL",
    "REDIS_URL",
    "ERROR_REPORTING_ENABLED",
    "ERROR_REPORTING_ENDPOINT",
    "ERROR_REPORTING_API_KEY",
)


class FakeClock:
    """Manually advanced clock usable wherever a ``Clock`` is injected."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Async sleep that records requested delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def reset_process_state():
    """Clear process-wide metrics and configuration between tests."""
    get_metrics().reset()
    set_config(None)
    yield
    get_metrics().reset()
    set_config(None)


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    """Run with no service env vars set, no user config and an empty cwd."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep():
    return FakeSleep()
