"""Token spend accounting: model pricing and per-user calendar budgets."""

from llm_doc_optimizer.core.tokens.ledger import (
    BudgetCheck,
    TokenBudget,
    TokenLedger,
    TokenTransaction,
    UsagePeriod,
)
from llm_doc_optimizer.core.tokens.pricing import (
    DEFAULT_PRICING_MODEL,
    MODEL_PRICING,
    ModelPricing,
    calculate_cost,
    estimate_cost,
    estimate_tokens,
    get_model_pricing,
)

__all__ = [
    "BudgetCheck",
    "TokenBudget",
    "TokenLedger",
    "TokenTransaction",
    "UsagePeriod",
    "DEFAULT_PRICING_MODEL",
    "MODEL_PRICING",
    "ModelPricing",
    "calculate_cost",
    "estimate_cost",
    "estimate_tokens",
    "get_model_pricing",
]
