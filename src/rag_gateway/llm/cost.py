"""Static per-model pricing used to annotate gateway responses."""

from __future__ import annotations

from dataclasses import dataclass, field

# USD per 1K units: (input, output).
DEFAULT_PRICES: dict[str, tuple[float, float]] = {
    # OpenAI
    "gpt-4": (0.03, 0.06),
    "gpt-4-turbo": (0.01, 0.03),
    "gpt-4o": (0.005, 0.015),
    "gpt-4o-mini": (0.00015, 0.0006),
    "gpt-3.5-turbo": (0.0005, 0.0015),
    "text-embedding-ada-002": (0.0001, 0.0),
    "text-embedding-3-small": (0.00002, 0.0),
    "text-embedding-3-large": (0.00013, 0.0),
    # Anthropic
    "claude-3-opus-20240229": (0.015, 0.075),
    "claude-3-sonnet-20240229": (0.003, 0.015),
    "claude-3-haiku-20240307": (0.00025, 0.00125),
    "claude-sonnet-4-20250514": (0.003, 0.015),
    "claude-opus-4-20250514": (0.015, 0.075),
}


@dataclass(slots=True)
class CostModel:
    """Token pricing lookup (USD per 1K tokens).

    Unknown models cost zero so that uninstrumented models never block a
    response.
    """

    prices: dict[str, tuple[float, float]] = field(
        default_factory=lambda: dict(DEFAULT_PRICES)
    )

    def estimate_cost(self, model: str, input_tokens: int, output_tokens: int = 0) -> float:
        price = self.prices.get(model)
        if price is None:
            return 0.0
        input_per_1k, output_per_1k = price
        return (input_tokens / 1000.0) * input_per_1k + (output_tokens / 1000.0) * output_per_1k
