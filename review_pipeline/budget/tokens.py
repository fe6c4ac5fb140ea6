# review_pipeline/budget/tokens.py
"""Character-ratio token and cost estimation."""

import math

from review_pipeline.config.schema import Budget


class TokenEstimator:
    """
    Approximate token counter.

    Uses a fixed tokens-per-character ratio instead of a real tokenizer, so
    estimates are cheap, deterministic and provider-agnostic.
    """

    def __init__(self, tokens_per_char: float = 0.25, price_per_k_tokens: float = 0.03):
        self.tokens_per_char = tokens_per_char
        self.price_per_k_tokens = price_per_k_tokens

    @classmethod
    def from_budget(cls, budget: Budget) -> "TokenEstimator":
        return cls(
            tokens_per_char=budget.tokens_per_char,
            price_per_k_tokens=budget.price_per_k_tokens,
        )

    def tokens_for_length(self, length: int) -> int:
        """Estimated tokens for a text of `length` characters."""
        if length <= 0:
            return 0
        return math.ceil(length * self.tokens_per_char)

    def estimate_tokens(self, text: object) -> int:
        """Estimated tokens for text; 0 for None, empty or non-str input."""
        if not text or not isinstance(text, str):
            return 0
        return self.tokens_for_length(len(text))

    def estimate_cost(self, tokens: int) -> float:
        """Estimated USD cost of `tokens` input tokens."""
        if tokens <= 0:
            return 0.0
        return tokens / 1000 * self.price_per_k_tokens
