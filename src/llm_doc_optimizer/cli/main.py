"""``llm-doc-optimizer`` command line.

Operator commands for inspecting the flow-control layer: the effective
configuration, a one-shot health check, component status, cost estimates
and a single completion run through the full resilient path.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import click

from llm_doc_optimizer import __version__
from llm_doc_optimizer.cli.output import emit_envelope, emit_error, emit_success
from llm_doc_optimizer.config import ServiceConfig
from llm_doc_optimizer.core.completion import ChatMessage, CompletionRequest
from llm_doc_optimizer.core.context import correlation_context
from llm_doc_optimizer.core.errors import error_to_response
from llm_doc_optimizer.core.responses import success_response
from llm_doc_optimizer.core.tokens import MODEL_PRICING, estimate_cost, get_model_pricing
from llm_doc_optimizer.runtime import ServiceRuntime

logger = logging.getLogger(__name__)


def _load_config(ctx: click.Context) -> ServiceConfig:
    config = ctx.obj.get("config")
    if config is None:
        config = ServiceConfig.from_env(ctx.obj.get("config_file"))
        ctx.obj["config"] = config
    return config


@click.group("llm-doc-optimizer")
@click.version_option(__version__, prog_name="llm-doc-optimizer")
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    help="TOML config file layered over project and user config.",
)
@click.option("--verbose", is_flag=True, help="Log to stderr while running.")
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str], verbose: bool) -> None:
    """Inspect and exercise the LLM flow-control layer."""
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file
    if verbose:
        _load_config(ctx).setup_logging()


@cli.command("config")
@click.pass_context
def config_cmd(ctx: click.Context) -> None:
    """Show the effective configuration with secrets masked."""
    config = _load_config(ctx)
    emit_success({
        "config": config.to_dict(),
        "loaded_files": list(config.loaded_files),
        "warnings": list(config.startup_warnings),
    })


@cli.command("health")
@click.pass_context
def health_cmd(ctx: click.Context) -> None:
    """Run every registered health probe once.

    Exits non-zero when any probe fails.
    """
    config = _load_config(ctx)
    report = asyncio.run(_run_health(config))
    if not report["healthy"]:
        emit_error(
            "One or more health checks failed",
            code="SERVICE_UNAVAILABLE",
            error_type="unavailable",
            remediation="Inspect the failing checks and their errors",
            details=report,
        )
    emit_success(report)


async def _run_health(config: ServiceConfig) -> Dict[str, Any]:
    runtime = ServiceRuntime.from_config(config)
    try:
        report = await runtime.health.run_checks()
    finally:
        await runtime.aclose()
    data = report.to_dict()
    data["failing"] = report.failing
    return data


@cli.command("status")
@click.pass_context
def status_cmd(ctx: click.Context) -> None:
    """Show breaker, bulkhead, limiter, token and cache state."""
    config = _load_config(ctx)
    runtime = ServiceRuntime.from_config(config)
    runtime.get_completion_service()
    emit_success(asyncio.run(_collect_status(runtime)))


async def _collect_status(runtime: ServiceRuntime) -> Dict[str, Any]:
    try:
        if runtime.cache is not None:
            await runtime.cache.refresh_size()
        return runtime.get_status()
    finally:
        await runtime.aclose()


@cli.command("cost")
@click.argument("model")
@click.argument("tokens", type=click.IntRange(min=0))
def cost_cmd(model: str, tokens: int) -> None:
    """Estimate the USD cost of TOKENS tokens on MODEL.

    Assumes a 70/30 split between prompt and completion tokens. Unknown
    models are priced at the default model's rates.
    """
    pricing = get_model_pricing(model)
    emit_success({
        "model": model,
        "known_model": model in MODEL_PRICING,
        "tokens": tokens,
        "estimated_cost": round(estimate_cost(model, tokens), 6),
        "pricing": {
            "input_cost_per_1k": pricing.input_cost_per_1k,
            "output_cost_per_1k": pricing.output_cost_per_1k,
        },
    })


@cli.command("complete")
@click.argument("prompt")
@click.option("--model", help="Model to use instead of the configured default.")
@click.option("--user", "identifier", default="cli", show_default=True, help="Identity for limits and budgets.")
@click.option("--max-tokens", type=click.IntRange(min=1), help="Completion token cap.")
@click.pass_context
def complete_cmd(
    ctx: click.Context,
    prompt: str,
    model: Optional[str],
    identifier: str,
    max_tokens: Optional[int],
) -> None:
    """Run PROMPT through the full resilient completion path."""
    config = _load_config(ctx)
    request = CompletionRequest(
        messages=[ChatMessage(role="user", content=prompt)],
        model=model,
        max_tokens=max_tokens,
    )
    emit_envelope(asyncio.run(_run_completion(config, request, identifier)))


async def _run_completion(config: ServiceConfig, request: CompletionRequest, identifier: str) -> Dict[str, Any]:
    runtime = ServiceRuntime.from_config(config)
    try:
        async with correlation_context(client_id=identifier):
            service = runtime.get_completion_service()
            try:
                outcome = await service.complete(request, identifier=identifier)
            except Exception as exc:
                envelope = error_to_response(exc)
                if envelope is None:
                    raise
                return envelope
            return success_response(
                {"outcome": outcome.model_dump(), "metrics": service.get_metrics()}
            ).to_dict()
    finally:
        await runtime.aclose()


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
