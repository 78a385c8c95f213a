"""Unit tests for the llm-doc-optimizer CLI commands."""

import json
from unittest.mock import patch

import pytest

from llm_doc_optimizer.cli.main import cli
from llm_doc_optimizer.core.errors.completion import AuthenticationError

VALID_KEY = "sk-test-abcdefghijklmnopqrstuvwxyz"


def _envelope(result):
    return json.loads(result.stdout)


@pytest.fixture
def api_key(monkeypatch, isolated_env):
    monkeypatch.setenv("OPENAI_API_KEY", VALID_KEY)
    return VALID_KEY


class TestCostCommand:
    """Tests for the cost command."""

    def test_known_model(self, cli_runner):
        """cost prices a known model with the 70/30 split."""
        result = cli_runner.invoke(cli, ["cost", "gpt-4", "1000"])

        assert result.exit_code == 0
        data = _envelope(result)
        assert data["success"] is True
        assert data["data"]["known_model"] is True
        assert data["data"]["estimated_cost"] == pytest.approx(0.039)
        assert data["data"]["pricing"] == {"input_cost_per_1k": 0.03, "output_cost_per_1k": 0.06}

    def test_unknown_model_uses_default_pricing(self, cli_runner):
        """cost falls back to the default model's rates."""
        data = _envelope(cli_runner.invoke(cli, ["cost", "mystery-model", "1000"]))
        assert data["data"]["known_model"] is False
        assert data["data"]["pricing"]["input_cost_per_1k"] == 0.002

    def test_negative_tokens_rejected(self, cli_runner):
        """cost rejects negative token counts at the argument layer."""
        result = cli_runner.invoke(cli, ["cost", "gpt-4", "--", "-5"])
        assert result.exit_code == 2


class TestConfigCommand:
    """Tests for the config command."""

    def test_shows_redacted_config(self, cli_runner, api_key):
        """config masks secrets and lists warnings."""
        result = cli_runner.invoke(cli, ["config"])

        assert result.exit_code == 0
        data = _envelope(result)["data"]
        assert data["config"]["completion"]["api_key"] == "[REDACTED:API_KEY]"
        assert VALID_KEY not in result.stdout
        assert data["loaded_files"] == []
        assert data["warnings"] == []

    def test_explicit_config_file(self, cli_runner, isolated_env):
        """--config layers an explicit TOML file."""
        path = isolated_env / "custom.toml"
        path.write_text("[rate_limit]\nmax_requests = 7\n")

        result = cli_runner.invoke(cli, ["--config", str(path), "config"])

        data = _envelope(result)["data"]
        assert data["config"]["rate_limit"]["max_requests"] == 7
        assert data["loaded_files"] == [str(path)]
        assert any("API key" in w for w in data["warnings"])


class TestHealthCommand:
    """Tests for the health command."""

    def test_fails_without_api_key(self, cli_runner, isolated_env):
        """health exits 1 and names the failing probe."""
        result = cli_runner.invoke(cli, ["health"])

        assert result.exit_code == 1
        data = _envelope(result)
        assert data["success"] is False
        assert data["data"]["error_code"] == "SERVICE_UNAVAILABLE"
        assert "completion_api" in data["data"]["failing"]
        assert data["data"]["remediation"]

    def test_healthy(self, cli_runner, api_key, stub_client):
        """health succeeds when every probe passes."""
        with patch("llm_doc_optimizer.runtime.HttpCompletionClient", return_value=stub_client):
            result = cli_runner.invoke(cli, ["health"])

        assert result.exit_code == 0
        data = _envelope(result)["data"]
        assert data["healthy"] is True
        assert data["failing"] == []
        assert set(data["checks"]) == {"completion_api", "circuit_breaker", "error_rates", "cache"}
        assert stub_client.closed is True


class TestStatusCommand:
    """Tests for the status command."""

    def test_reports_components(self, cli_runner, isolated_env, stub_client):
        """status lists breaker, bulkhead, limiter and cache state."""
        with patch("llm_doc_optimizer.runtime.HttpCompletionClient", return_value=stub_client):
            result = cli_runner.invoke(cli, ["status"])

        assert result.exit_code == 0
        data = _envelope(result)["data"]
        assert data["breakers"]["completion_api"]["state"] == "closed"
        assert data["bulkheads"]["completion_api"]["active_requests"] == 0
        assert data["rate_limiter"]["user_count"] == 0
        assert set(data["cache"]) == {"l1", "l2"}
        assert data["cache"]["l2"]["size"] == 0
        assert data["completion"]["metrics"]["total_requests"] == 0


class TestCompleteCommand:
    """Tests for the complete command."""

    def test_success(self, cli_runner, api_key, stub_client):
        """complete prints the outcome and call metrics."""
        with patch("llm_doc_optimizer.runtime.HttpCompletionClient", return_value=stub_client):
            result = cli_runner.invoke(cli, ["complete", "Tighten this.", "--model", "gpt-4", "--user", "alice"])

        assert result.exit_code == 0
        data = _envelope(result)
        assert data["success"] is True
        assert data["data"]["outcome"]["content"] == "Tighter prose."
        assert data["data"]["outcome"]["model"] == "gpt-4"
        assert data["data"]["metrics"]["successful_requests"] == 1
        assert data["meta"]["request_id"]

    def test_terminal_failure_is_user_safe(self, cli_runner, api_key, make_stub_client):
        """complete maps a terminal dependency failure to an error envelope."""
        client = make_stub_client(AuthenticationError(f"Incorrect API key provided: {VALID_KEY}"))
        with patch("llm_doc_optimizer.runtime.HttpCompletionClient", return_value=client):
            result = cli_runner.invoke(cli, ["complete", "Tighten this."])

        assert result.exit_code == 1
        data = _envelope(result)
        assert data["success"] is False
        assert data["error"] == "Authentication failed. Please check your API key."
        assert data["data"]["error_code"] == "AUTHENTICATION_FAILED"
        assert VALID_KEY not in result.stdout

    def test_rate_limited(self, cli_runner, api_key, monkeypatch, stub_client):
        """complete reports admission denials with retry hints."""
        monkeypatch.setenv("RATE_LIMIT_MAX_TOKENS", "1")
        with patch("llm_doc_optimizer.runtime.HttpCompletionClient", return_value=stub_client):
            result = cli_runner.invoke(cli, ["complete", "Tighten this."])

        assert result.exit_code == 1
        data = _envelope(result)
        assert data["data"]["error_code"] == "RATE_LIMITED"
        assert data["data"]["retry_after"] > 0
        assert data["meta"]["rate_limit"]["limit"] == 1

    def test_budget_exceeded(self, cli_runner, api_key, monkeypatch, stub_client):
        """complete reports an exhausted daily budget."""
        monkeypatch.setenv("TOKEN_DAILY_LIMIT", "5")
        with patch("llm_doc_optimizer.runtime.HttpCompletionClient", return_value=stub_client):
            result = cli_runner.invoke(cli, ["complete", "Tighten this paragraph please.", "--max-tokens", "100"])

        assert result.exit_code == 1
        data = _envelope(result)
        assert data["data"]["error_code"] == "BUDGET_EXCEEDED"
        assert data["error"] == "Daily token limit exceeded"


class TestVersion:
    def test_version(self, cli_runner):
        result = cli_runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "llm-doc-optimizer" in result.stdout
