"""
Credit cost calculation for backend token usage.
"""

import math
from typing import Optional

from ..models import Backend
from ..models.config import CreditConfig


class CreditCalculator:
    """
    Converts token usage into credits and a real-currency estimate.

    Free backends always cost 0 credits. Metered backends are charged
    ``ceil((tokens_in + tokens_out) / 1000 * rate)`` credits, never less than
    ``min_premium_credits``.
    """

    def __init__(self, config: Optional[CreditConfig] = None):
        self.config = config or CreditConfig()

    def rate(self, backend: Backend) -> int:
        """Credits per 1000 combined tokens."""
        if backend.is_free:
            return 0
        return self.config.rates.get(backend.value, 0)

    def cost(self, backend: Backend, tokens_in: int, tokens_out: int) -> int:
        """
        Credits charged for one exchange.

        Args:
            backend: Backend that produced the reply
            tokens_in: Prompt tokens
            tokens_out: Completion tokens

        Returns:
            int: credits, >= 0
        """
        if backend.is_free:
            return 0

        total = max(tokens_in, 0) + max(tokens_out, 0)
        raw = math.ceil(total * self.rate(backend) / 1000)
        return max(raw, self.config.min_premium_credits)

    def usd_estimate(self, backend: Backend, tokens_in: int, tokens_out: int) -> float:
        """Approximate provider cost in USD."""
        prices = self.config.usd_per_token.get(backend.value)
        if backend.is_free or not prices:
            return 0.0
        return max(tokens_in, 0) * prices.get("in", 0.0) + max(tokens_out, 0) * prices.get("out", 0.0)


_default_calculator = CreditCalculator()


def cost(backend: Backend, tokens_in: int, tokens_out: int) -> int:
    """Credit cost with the default rates."""
    return _default_calculator.cost(backend, tokens_in, tokens_out)
