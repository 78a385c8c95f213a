"""Parsing and normalization helpers for configuration values."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _parse_positive_int(value: Any, default: int, *, field_name: str) -> int:
    """Parse a strictly positive integer, falling back to ``default`` on bad input."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s: %r. Using %s", field_name, value, default)
        return default
    if parsed <= 0:
        logger.warning("%s must be positive, got %s. Using %s", field_name, parsed, default)
        return default
    return parsed


def _parse_positive_float(value: Any, default: float, *, field_name: str) -> float:
    """Parse a strictly positive float, falling back to ``default`` on bad input."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid number for %s: %r. Using %s", field_name, value, default)
        return default
    if parsed <= 0:
        logger.warning("%s must be positive, got %s. Using %s", field_name, parsed, default)
        return default
    return parsed


def _normalize_log_level(value: str) -> str:
    normalized = value.strip().upper()
    if normalized not in _VALID_LOG_LEVELS:
        logger.warning(
            "Invalid log level '%s'. Falling back to 'INFO'. Valid options: %s",
            value,
            ", ".join(sorted(_VALID_LOG_LEVELS)),
        )
        return "INFO"
    return normalized
