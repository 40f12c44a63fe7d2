"""
Cost Estimator

Computes per-step cost from an agent's cost profile.

DESIGN RULES:
- Pure function, no side effects
- Never throws (returns 0.0 on error)
- A missing agent costs nothing rather than failing the analysis
"""

import logging
from typing import Optional

from cost.model_pricing import get_pricing
from schemas.agent import Agent

logger = logging.getLogger(__name__)


def estimate_step_cost(
    agent: Optional[Agent],
    input_tokens: int,
    output_tokens: int,
) -> float:
    """
    Estimate the cost of one agent invocation.

    Args:
        agent: The invoked agent, or None if it is not registered
        input_tokens: Tokens consumed
        output_tokens: Tokens produced

    Returns:
        Estimated cost in USD (0.0 for unknown agents or on error)
    """
    if agent is None:
        return 0.0

    try:
        if agent.cost_per_token is not None:
            return round(agent.cost_per_token * (input_tokens + output_tokens), 8)

        pricing = get_pricing(agent.model)
        if pricing is None:
            return 0.0
        return round(pricing.price(input_tokens, output_tokens), 8)

    except Exception as e:
        logger.warning(f"Cost estimation failed for agent {agent.id}: {e}")
        return 0.0
