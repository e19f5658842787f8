# chuk_context_budget/pricing.py
"""Per-model prices used to cost completed calls."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

FALLBACK_PRICING_MODEL = "gpt-4o"


class ModelPricing(BaseModel):
    """USD price per one million tokens."""

    input_price_per_1m: float = Field(..., ge=0)
    output_price_per_1m: float = Field(..., ge=0)


MODEL_PRICING: dict[str, ModelPricing] = {
    "gpt-4o": ModelPricing(input_price_per_1m=2.50, output_price_per_1m=10.00),
    "gpt-4o-mini": ModelPricing(input_price_per_1m=0.15, output_price_per_1m=0.60),
    "gpt-4.1": ModelPricing(input_price_per_1m=2.00, output_price_per_1m=8.00),
    "gpt-4.1-mini": ModelPricing(input_price_per_1m=0.40, output_price_per_1m=1.60),
    "deepseek-chat": ModelPricing(input_price_per_1m=0.27, output_price_per_1m=1.10),
    "deepseek-reasoner": ModelPricing(input_price_per_1m=0.55, output_price_per_1m=2.19),
}


def get_pricing(model: str) -> ModelPricing:
    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        logger.warning(f"Model {model} not found in pricing table, using {FALLBACK_PRICING_MODEL} pricing")
        pricing = MODEL_PRICING[FALLBACK_PRICING_MODEL]
    return pricing


def calculate_cost(prompt_tokens: int, completion_tokens: int, model: str) -> float:
    """Cost in USD of a call with the given token split."""
    pricing = get_pricing(model)
    return (
        prompt_tokens * pricing.input_price_per_1m / 1_000_000
        + completion_tokens * pricing.output_price_per_1m / 1_000_000
    )
