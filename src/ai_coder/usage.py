"""
Token and cost accounting for a session.

Prices are USD per 1M tokens. Models missing from the table are still
counted, they just have no cost. Totals are only reported through the
log; nothing in the workflows depends on them.
"""
import logging
from decimal import Decimal

from ai_coder.streaming import Usage

logger = logging.getLogger(__name__)


# model -> {"input": USD per 1M tokens, "output": USD per 1M tokens}
PRICING: dict[str, dict[str, Decimal]] = {
    "gpt-4-1106-preview": {"input": Decimal("10.00"), "output": Decimal("30.00")},
    "gpt-4-turbo": {"input": Decimal("10.00"), "output": Decimal("30.00")},
    "gpt-4o": {"input": Decimal("2.50"), "output": Decimal("10.00")},
    "gpt-4o-mini": {"input": Decimal("0.15"), "output": Decimal("0.60")},
    "gpt-4.1": {"input": Decimal("2.00"), "output": Decimal("8.00")},
    "gpt-4.1-mini": {"input": Decimal("0.40"), "output": Decimal("1.60")},
    "text-embedding-ada-002": {"input": Decimal("0.10"), "output": Decimal("0")},
}


def cost_usd(
    model: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
) -> Decimal | None:
    """Compute cost from the price table. Returns None if no price."""
    pricing = PRICING.get(model)
    if not pricing:
        return None
    input_per_m = Decimal(input_tokens) / Decimal(1_000_000)
    output_per_m = Decimal(output_tokens) / Decimal(1_000_000)
    cost = input_per_m * pricing["input"] + output_per_m * pricing["output"]
    return cost.quantize(Decimal("0.00000001"))


class UsageTracker:
    """Running totals for one session."""

    def __init__(self, model: str):
        self.model = model
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.requests = 0

    @property
    def cost(self) -> Decimal | None:
        return cost_usd(self.model, self.prompt_tokens, self.completion_tokens)

    def record(self, usage: Usage | None) -> None:
        self.requests += 1
        if usage is None:
            logger.debug(f"No usage reported for request {self.requests}")
            return
        self.prompt_tokens += usage.prompt_tokens
        self.completion_tokens += usage.completion_tokens
        turn_cost = cost_usd(
            self.model, usage.prompt_tokens, usage.completion_tokens,
        )
        logger.info(
            f"{self.model}: {usage.prompt_tokens} prompt + "
            f"{usage.completion_tokens} completion tokens"
            + (f" (${turn_cost})" if turn_cost is not None else "")
            + f"; session total {self.prompt_tokens + self.completion_tokens}"
            + (f" (${self.cost})" if self.cost is not None else "")
        )
