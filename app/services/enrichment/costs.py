"""Token and credit accounting for one enrichment request."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Final

from app.clients.llm import TokenUsage
from app.models.enrichment import CostBreakdown, StageCost


@dataclass(frozen=True)
class ModelPrice:
    """USD per one million tokens."""

    input_per_million: float
    output_per_million: float


MODEL_PRICING: Final[Mapping[str, ModelPrice]] = MappingProxyType(
    {
        "sonar-pro": ModelPrice(3.0, 15.0),
        "sonar": ModelPrice(1.0, 1.0),
        "gpt-4o-mini": ModelPrice(0.15, 0.60),
        "gpt-4o": ModelPrice(2.5, 10.0),
    }
)
DEFAULT_MODEL_PRICE: Final[ModelPrice] = MODEL_PRICING["gpt-4o-mini"]
FIRECRAWL_CREDIT_USD: Final[float] = 0.00099
SCRAPE_SERVICE: Final[str] = "firecrawl"


def model_cost(model: str, usage: TokenUsage, pricing: Mapping[str, ModelPrice] = MODEL_PRICING) -> float:
    """Dollar cost of a call; unknown models are priced like gpt-4o-mini."""
    key = model.split("/")[-1]
    price = pricing.get(key, DEFAULT_MODEL_PRICE)
    return (
        usage.prompt_tokens * price.input_per_million / 1_000_000
        + usage.completion_tokens * price.output_per_million / 1_000_000
    )


class CostAccumulator:
    """Collects one cost line per stage; repeated charges to a stage add to its line."""

    def __init__(
        self,
        *,
        pricing: Mapping[str, ModelPrice] = MODEL_PRICING,
        credit_usd: float = FIRECRAWL_CREDIT_USD,
    ) -> None:
        self._pricing = pricing
        self._credit_usd = credit_usd
        self._stages: dict[str, StageCost] = {}

    def add_tokens(self, stage: str, model: str, usage: TokenUsage) -> float:
        cost = model_cost(model, usage, self._pricing)
        current = self._stages.get(stage, StageCost(service=model))
        self._stages[stage] = current.model_copy(
            update={
                "prompt_tokens": current.prompt_tokens + usage.prompt_tokens,
                "completion_tokens": current.completion_tokens + usage.completion_tokens,
                "cost_usd": current.cost_usd + cost,
            }
        )
        return cost

    def add_credits(self, stage: str, credits: int) -> float:
        if credits <= 0:
            return 0.0
        cost = credits * self._credit_usd
        current = self._stages.get(stage, StageCost(service=SCRAPE_SERVICE))
        self._stages[stage] = current.model_copy(
            update={"credits": current.credits + credits, "cost_usd": current.cost_usd + cost}
        )
        return cost

    @property
    def total_usd(self) -> float:
        return sum(line.cost_usd for line in self._stages.values())

    def stage_cost(self, stage: str) -> float:
        line = self._stages.get(stage)
        return line.cost_usd if line else 0.0

    def breakdown(self) -> CostBreakdown:
        credits = sum(line.credits for line in self._stages.values())
        scrape_cost = credits * self._credit_usd
        total = self.total_usd
        return CostBreakdown(
            stages=dict(self._stages),
            ai_cost_usd=round(total - scrape_cost, 6),
            scrape_credits=credits,
            scrape_cost_usd=round(scrape_cost, 6),
            total_cost_usd=round(total, 6),
        )
