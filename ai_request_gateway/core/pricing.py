"""
Pricing calculations and rate management.

Converts provider token counts into a monetary cost per model.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_UP
from typing import Dict, Optional

from .token_counter import TokenUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_cost_per_1k: Decimal  # Cost per 1K input tokens
    output_cost_per_1k: Decimal  # Cost per 1K output tokens


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported models."""
    prices: Dict[str, ModelPricing]

    def get_pricing(self, model: str) -> Optional[ModelPricing]:
        """Get pricing for a specific model.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model, or None if the model is not listed
        """
        return self.prices.get(model)


# Fixed pricing table - no dynamic fetching
PRICING_TABLE = PricingTable({
    "gpt-3.5-turbo": ModelPricing(
        input_cost_per_1k=Decimal("0.0015"),
        output_cost_per_1k=Decimal("0.002")
    ),
    "gpt-3.5-turbo-16k": ModelPricing(
        input_cost_per_1k=Decimal("0.003"),
        output_cost_per_1k=Decimal("0.004")
    ),
    "gpt-4": ModelPricing(
        input_cost_per_1k=Decimal("0.03"),
        output_cost_per_1k=Decimal("0.06")
    ),
    "gpt-4o": ModelPricing(
        input_cost_per_1k=Decimal("0.0025"),
        output_cost_per_1k=Decimal("0.01")
    ),
    "gpt-4o-mini": ModelPricing(
        input_cost_per_1k=Decimal("0.00015"),
        output_cost_per_1k=Decimal("0.0006")
    ),
})


def calculate_cost(
    model: str,
    usage: TokenUsage,
    table: PricingTable = PRICING_TABLE
) -> float:
    """Calculate total cost for model usage with conservative rounding.

    Unknown models cost nothing: a missing rate must never fail a request,
    so a warning is logged instead.

    Args:
        model: Model identifier
        usage: Token usage data
        table: Pricing table to consult

    Returns:
        Total cost rounded UP to 6 decimal places
    """
    pricing = table.get_pricing(model)
    if pricing is None:
        logger.warning("No pricing for model %r, recording zero cost", model)
        return 0.0

    input_cost = Decimal(usage.input_tokens) * pricing.input_cost_per_1k
    output_cost = Decimal(usage.output_tokens) * pricing.output_cost_per_1k

    total_cost = (input_cost + output_cost) / Decimal("1000")
    rounded_cost = total_cost.quantize(Decimal("0.000001"), rounding=ROUND_UP)

    return float(rounded_cost)
