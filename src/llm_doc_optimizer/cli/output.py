"""JSON envelope output for CLI commands.

Every command prints exactly one ``ServiceResponse`` envelope to stdout.
Logs go to stderr so the output stays machine-readable.
"""

import json
import sys
from typing import Any, Mapping, NoReturn, Optional

import click

from llm_doc_optimizer.core.responses import error_response, success_response


def _emit(payload: Mapping[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def emit_success(data: Optional[Mapping[str, Any]] = None) -> None:
    """Print a success envelope."""
    _emit(success_response(data).to_dict())


def emit_error(
    message: str,
    *,
    code: str = "INTERNAL_ERROR",
    error_type: str = "internal",
    remediation: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
    exit_code: int = 1,
) -> NoReturn:
    """Print an error envelope and exit non-zero."""
    data = dict(details or {})
    if remediation:
        data["remediation"] = remediation
    _emit(error_response(message, error_code=code, error_type=error_type, data=data).to_dict())
    sys.exit(exit_code)


def emit_envelope(envelope: Mapping[str, Any]) -> None:
    """Print a prebuilt envelope; exit non-zero if it reports failure."""
    _emit(envelope)
    if not envelope.get("success"):
        sys.exit(1)
