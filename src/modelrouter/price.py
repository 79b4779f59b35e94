"""Token and cost estimation.

Token counts before a call are a character-count heuristic, not a
tokenizer call. After a call, the measured counts go through the same
formula, so estimates and recorded costs are directly comparable.

A model without a price table has an unknown cost: estimation returns
None rather than 0.
"""

import math
from dataclasses import asdict, dataclass

from modelrouter.config.models import ModelConfig, ModelPrice

# Average characters per token for English text and code
CHARS_PER_TOKEN = 4

# Output tokens assumed when the caller gives no expectation
DEFAULT_OUTPUT_TOKENS = 400

TOKENS_PER_UNIT = 1_000_000


@dataclass
class TokenUsage:
    """Measured token counts for a completed call."""
    input_tokens: int
    output_tokens: int
    cached_input_tokens: int = 0


@dataclass
class CostEstimate:
    """Cost of one call in USD."""
    input_tokens: int
    output_tokens: int
    input_cost: float
    output_cost: float
    total_cost: float
    model: str
    provider: str
    currency: str = "USD"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PricedModel:
    """A model config together with the id of the provider serving it."""
    config: ModelConfig
    provider: str


class PriceCalculator:
    """Estimates token counts and costs against model price tables."""

    def __init__(
        self,
        chars_per_token: float = CHARS_PER_TOKEN,
        default_output_tokens: int = DEFAULT_OUTPUT_TOKENS,
    ):
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token
        self.default_output_tokens = default_output_tokens

    def estimate_tokens(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_token)

    def estimate_cost(
        self,
        prompt: str,
        model: ModelConfig,
        provider: str,
        expected_output_tokens: int | None = None,
    ) -> CostEstimate | None:
        """Estimated cost of sending ``prompt`` to ``model``, None if unpriced."""
        if model.price is None:
            return None
        output_tokens = (
            expected_output_tokens
            if expected_output_tokens is not None
            else self.default_output_tokens
        )
        return self._calculate(
            self.estimate_tokens(prompt), output_tokens, model.price, model.name, provider)

    def calculate_actual_cost(
        self,
        usage: TokenUsage,
        price: ModelPrice,
        model: str,
        provider: str,
    ) -> CostEstimate:
        """Cost of a completed call from its measured token usage."""
        return self._calculate(
            usage.input_tokens, usage.output_tokens, price, model, provider,
            cached_input_tokens=usage.cached_input_tokens,
        )

    def compare_costs(
        self,
        prompt: str,
        models: list[PricedModel],
        expected_output_tokens: int | None = None,
    ) -> list[CostEstimate]:
        """Estimates for every priced model, cheapest first.

        Unpriced models are left out, not ranked as free.
        """
        estimates = [
            self.estimate_cost(prompt, m.config, m.provider, expected_output_tokens)
            for m in models
        ]
        return sorted((e for e in estimates if e is not None), key=lambda e: e.total_cost)

    def get_cheapest_model(
        self,
        prompt: str,
        models: list[PricedModel],
        expected_output_tokens: int | None = None,
    ) -> tuple[CostEstimate, int] | None:
        """Cheapest priced model and its index in ``models``, or None."""
        costs = self.compare_costs(prompt, models, expected_output_tokens)
        if not costs:
            return None
        cheapest = costs[0]
        index = next(
            i for i, m in enumerate(models)
            if m.config.name == cheapest.model and m.provider == cheapest.provider
        )
        return cheapest, index

    @staticmethod
    def _calculate(
        input_tokens: int,
        output_tokens: int,
        price: ModelPrice,
        model: str,
        provider: str,
        cached_input_tokens: int = 0,
    ) -> CostEstimate:
        cached = min(max(cached_input_tokens, 0), input_tokens)
        regular = input_tokens - cached

        input_cost = (regular / TOKENS_PER_UNIT) * price.input_per_mtok
        if cached:
            # Without a cached rate, cached tokens bill at the regular rate
            cached_rate = (
                price.cached_input_per_mtok
                if price.cached_input_per_mtok is not None
                else price.input_per_mtok
            )
            input_cost += (cached / TOKENS_PER_UNIT) * cached_rate

        output_cost = (output_tokens / TOKENS_PER_UNIT) * price.output_per_mtok

        return CostEstimate(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            input_cost=input_cost,
            output_cost=output_cost,
            total_cost=input_cost + output_cost,
            model=model,
            provider=provider,
        )
