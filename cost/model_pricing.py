"""
Model Pricing Table

Fallback pricing for agents that declare a model but no cost_per_token.
Prices are in USD per 1K tokens.

DESIGN RULES:
- Configuration only, no logic beyond lookup
- Easy to update when prices change
"""

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class ModelPricing:
    """Per-1K-token prices for one model."""
    input_per_1k: float
    output_per_1k: float

    def price(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens / 1000) * self.input_per_1k + (output_tokens / 1000) * self.output_per_1k


# Last updated: 2024-02
MODEL_PRICING: Dict[str, ModelPricing] = {
    "gpt-4o-mini": ModelPricing(input_per_1k=0.00015, output_per_1k=0.0006),
    "gpt-4o": ModelPricing(input_per_1k=0.0025, output_per_1k=0.01),
    "gpt-4-turbo": ModelPricing(input_per_1k=0.01, output_per_1k=0.03),
    "gpt-35-turbo": ModelPricing(input_per_1k=0.0005, output_per_1k=0.0015),
    "gpt-3.5-turbo": ModelPricing(input_per_1k=0.0005, output_per_1k=0.0015),
}

# Unknown model names get a conservative estimate
DEFAULT_PRICING = ModelPricing(input_per_1k=0.001, output_per_1k=0.002)


def get_pricing(model: Optional[str]) -> Optional[ModelPricing]:
    """
    Get pricing for a model.

    Returns None when no model is declared, DEFAULT_PRICING for unknown names.
    """
    if not model:
        return None

    if model in MODEL_PRICING:
        return MODEL_PRICING[model]

    # Longest name first so "gpt-4o-mini" wins over "gpt-4o"
    model_lower = model.lower()
    for known_model in sorted(MODEL_PRICING, key=len, reverse=True):
        if known_model in model_lower:
            return MODEL_PRICING[known_model]

    return DEFAULT_PRICING
