"""Per-model token pricing and cost estimation."""

from dataclasses import dataclass
from typing import Dict, Final

DEFAULT_PRICING_MODEL: Final[str] = "gpt-3.5-turbo"


@dataclass(frozen=True)
class ModelPricing:
    """USD cost per 1000 prompt (input) and completion (output) tokens."""

    input_cost_per_1k: float
    output_cost_per_1k: float


MODEL_PRICING: Final[Dict[str, ModelPricing]] = {
    "gpt-4": ModelPricing(input_cost_per_1k=0.03, output_cost_per_1k=0.06),
    "gpt-4-turbo": ModelPricing(input_cost_per_1k=0.01, output_cost_per_1k=0.03),
    "gpt-3.5-turbo": ModelPricing(input_cost_per_1k=0.002, output_cost_per_1k=0.002),
    "gpt-4o": ModelPricing(input_cost_per_1k=0.005, output_cost_per_1k=0.015),
    "gpt-4o-mini": ModelPricing(input_cost_per_1k=0.00015, output_cost_per_1k=0.0006),
}


def get_model_pricing(model: str) -> ModelPricing:
    """Pricing for ``model``; unknown models are billed at the default model's rates."""
    return MODEL_PRICING.get(model, MODEL_PRICING[DEFAULT_PRICING_MODEL])


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """USD cost of one call with the given prompt and completion token counts."""
    pricing = get_model_pricing(model)
    return (prompt_tokens / 1000) * pricing.input_cost_per_1k + (completion_tokens / 1000) * pricing.output_cost_per_1k


def estimate_cost(model: str, estimated_tokens: int) -> float:
    """Pre-call cost estimate assuming a 70/30 prompt/completion split."""
    estimated_input = int(estimated_tokens * 0.7)
    estimated_output = int(estimated_tokens * 0.3)
    return calculate_cost(model, estimated_input, estimated_output)


def estimate_tokens(text: str) -> int:
    """Rough token count for budgeting (about four characters per token)."""
    if not text:
        return 0
    return max(1, (len(text) + 3) // 4)
