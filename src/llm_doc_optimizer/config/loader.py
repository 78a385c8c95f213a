"""ServiceConfig loading and validation logic.

Provides ``_ServiceConfigLoader``, a mixin whose methods are inherited by
``ServiceConfig`` (defined in ``service.py``). Keeping loading and
validation here leaves ``service.py`` focused on field definitions.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, cast

from llm_doc_optimizer.config.domains import (
    BulkheadConfig,
    CacheConfig,
    CompletionConfig,
    ErrorReportingConfig,
    ErrorStrategyConfig,
    HealthConfig,
    RateLimitConfig,
    RetryConfig,
    TimeoutConfig,
    TokenBudgetConfig,
)
from llm_doc_optimizer.config.parsing import (
    _normalize_log_level,
    _parse_bool,
    _parse_positive_float,
    _parse_positive_int,
)

if TYPE_CHECKING:
    from llm_doc_optimizer.config.service import ServiceConfig

logger = logging.getLogger(__name__)

_CONFIG_FILE_ENV_VAR = "LLM_DOC_OPTIMIZER_CONFIG_FILE"
_PROJECT_CONFIG_NAME = "llm-doc-optimizer.toml"

# TOML table name -> (attribute name, dataclass)
_SECTIONS: Dict[str, tuple] = {
    "retry": ("retry", RetryConfig),
    "rate_limit": ("rate_limit", RateLimitConfig),
    "tokens": ("tokens", TokenBudgetConfig),
    "bulkhead": ("bulkhead", BulkheadConfig),
    "timeout": ("timeout", TimeoutConfig),
    "cache": ("cache", CacheConfig),
    "error_strategy": ("error_strategy", ErrorStrategyConfig),
    "error_reporting": ("error_reporting", ErrorReportingConfig),
    "health": ("health", HealthConfig),
    "completion": ("completion", CompletionConfig),
}


class _ServiceConfigLoader:
    """Mixin providing config-loading methods for ``ServiceConfig``.

    At runtime ``self`` is always a ``ServiceConfig`` instance.
    """

    if TYPE_CHECKING:
        log_level: str
        structured_logging: bool
        retry: RetryConfig
        rate_limit: RateLimitConfig
        tokens: TokenBudgetConfig
        bulkhead: BulkheadConfig
        timeout: TimeoutConfig
        cache: CacheConfig
        error_strategy: ErrorStrategyConfig
        error_reporting: ErrorReportingConfig
        health: HealthConfig
        completion: CompletionConfig
        startup_warnings: List[str]
        loaded_files: List[str]

        def _add_startup_warning(self, message: str) -> None: ...

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "ServiceConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. Explicit config file (argument or LLM_DOC_OPTIMIZER_CONFIG_FILE)
        3. Project TOML config (./llm-doc-optimizer.toml)
        4. XDG config (~/.config/llm-doc-optimizer/config.toml)
        5. Default values
        """
        config = cls()

        xdg_config_home = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
        xdg_config = Path(xdg_config_home) / "llm-doc-optimizer" / "config.toml"
        if xdg_config.exists():
            config._load_toml(xdg_config)
            logger.debug(f"Loaded XDG config from {xdg_config}")

        project_config = Path(_PROJECT_CONFIG_NAME)
        if project_config.exists():
            config._load_toml(project_config)
            logger.debug(f"Loaded project config from {project_config}")

        toml_path = config_file or os.environ.get(_CONFIG_FILE_ENV_VAR)
        if toml_path:
            config._load_toml(Path(toml_path))

        config._load_env()
        config._validate_startup_configuration()

        return cast("ServiceConfig", config)

    def _load_toml(self, path: Path) -> None:
        """Load configuration from a TOML file, layering over current values."""
        if not path.exists():
            self._add_startup_warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error(f"Error loading config file {path}: {e}")
            self._add_startup_warning(f"Could not parse {path}: {e}")
            return

        if "logging" in data:
            log = data["logging"]
            if "level" in log:
                self.log_level = _normalize_log_level(str(log["level"]))
            if "structured" in log:
                self.structured_logging = _parse_bool(log["structured"])

        for section, (attr, config_cls) in _SECTIONS.items():
            if section not in data:
                continue
            table = data[section]
            if not isinstance(table, dict):
                self._add_startup_warning(
                    f"Ignoring [{section}] in {path}: expected table/dict, got {type(table).__name__}"
                )
                continue
            # Merge over values already loaded so lower-priority files still count.
            merged: Dict[str, Any] = {**_asdict_shallow(getattr(self, attr)), **table}
            setattr(self, attr, config_cls.from_toml_dict(merged))

        self.loaded_files.append(str(path))

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        if level := os.environ.get("LLM_DOC_OPTIMIZER_LOG_LEVEL"):
            self.log_level = _normalize_log_level(level)
        if structured := os.environ.get("LLM_DOC_OPTIMIZER_STRUCTURED_LOGGING"):
            self.structured_logging = _parse_bool(structured)

        # Completion client
        if api_key := os.environ.get("OPENAI_API_KEY"):
            self.completion.api_key = api_key
        if base_url := os.environ.get("OPENAI_BASE_URL"):
            self.completion.base_url = base_url.rstrip("/")
        if model := os.environ.get("OPENAI_MODEL"):
            self.completion.model = model

        # Rate limiting
        if max_requests := os.environ.get("RATE_LIMIT_MAX_REQUESTS"):
            self.rate_limit.max_requests = _parse_positive_int(
                max_requests, self.rate_limit.max_requests, field_name="RATE_LIMIT_MAX_REQUESTS"
            )
        if window := os.environ.get("RATE_LIMIT_WINDOW_SECONDS"):
            self.rate_limit.window_seconds = _parse_positive_float(
                window, self.rate_limit.window_seconds, field_name="RATE_LIMIT_WINDOW_SECONDS"
            )
        if max_tokens := os.environ.get("RATE_LIMIT_MAX_TOKENS"):
            self.rate_limit.max_tokens = _parse_positive_int(
                max_tokens, self.rate_limit.max_tokens, field_name="RATE_LIMIT_MAX_TOKENS"
            )

        # Token budget
        if daily := os.environ.get("TOKEN_DAILY_LIMIT"):
            self.tokens.daily_limit = _parse_positive_int(
                daily, self.tokens.daily_limit, field_name="TOKEN_DAILY_LIMIT"
            )
        if monthly := os.environ.get("TOKEN_MONTHLY_LIMIT"):
            self.tokens.monthly_limit = _parse_positive_int(
                monthly, self.tokens.monthly_limit, field_name="TOKEN_MONTHLY_LIMIT"
            )

        # Cache
        if ttl := os.environ.get("CACHE_TTL"):
            self.cache.ttl = _parse_positive_int(ttl, self.cache.ttl, field_name="CACHE_TTL")
        if redis_url := os.environ.get("REDIS_URL"):
            self.cache.redis_url = redis_url

        # Error reporting
        if reporting_enabled := os.environ.get("ERROR_REPORTING_ENABLED"):
            self.error_reporting.enabled = _parse_bool(reporting_enabled)
        if endpoint := os.environ.get("ERROR_REPORTING_ENDPOINT"):
            self.error_reporting.endpoint = endpoint
        if reporting_key := os.environ.get("ERROR_REPORTING_API_KEY"):
            self.error_reporting.api_key = reporting_key

    def _validate_startup_configuration(self) -> None:
        """Record non-fatal configuration problems as startup warnings."""
        if not self.completion.api_key:
            self._add_startup_warning("No completion API key configured (set OPENAI_API_KEY)")
        elif len(self.completion.api_key) < 20:
            self._add_startup_warning("Completion API key looks too short")

        if self.retry.max_delay < self.retry.base_delay:
            self._add_startup_warning(
                f"retry.max_delay ({self.retry.max_delay}) is below retry.base_delay ({self.retry.base_delay})"
            )
        if self.timeout.base_timeout > 300:
            self._add_startup_warning(f"timeout.base_timeout of {self.timeout.base_timeout}s is unusually high")
        if self.cache.l1_max_ttl > self.cache.ttl:
            self._add_startup_warning(
                f"cache.l1_max_ttl ({self.cache.l1_max_ttl}) exceeds cache.ttl ({self.cache.ttl})"
            )
        if self.tokens.daily_limit > self.tokens.monthly_limit:
            self._add_startup_warning("tokens.daily_limit exceeds tokens.monthly_limit")
        if self.error_reporting.enabled and not self.error_reporting.endpoint:
            self._add_startup_warning("Error reporting enabled without an endpoint; reports will be dropped")

        for warning in self.startup_warnings:
            logger.warning(warning)


def _asdict_shallow(obj: Any) -> Dict[str, Any]:
    return {k: v for k, v in vars(obj).items() if v is not None}
