# usage.py
# Token usage accumulation and approximate cost.
#
# Prices are USD per million tokens for the default planner model. The
# figures are an estimate for budgeting, not an invoice.

from plan_loop.models import Usage

PRICING = {
    "input": 3.0,
    "output": 15.0,
    "cache_write": 3.75,
    "cache_read": 0.30,
}


class UsageTracker:
    def __init__(self) -> None:
        self._total = Usage()

    @staticmethod
    def cost(usage: Usage, pricing: dict[str, float] = PRICING) -> float:
        return (
            usage.input_tokens * pricing["input"]
            + usage.output_tokens * pricing["output"]
            + usage.cache_write_tokens * pricing["cache_write"]
            + usage.cache_read_tokens * pricing["cache_read"]
        ) / 1_000_000

    @staticmethod
    def accumulate(current: Usage, additional: Usage) -> Usage:
        return Usage(
            input_tokens=current.input_tokens + additional.input_tokens,
            output_tokens=current.output_tokens + additional.output_tokens,
            cache_write_tokens=current.cache_write_tokens + additional.cache_write_tokens,
            cache_read_tokens=current.cache_read_tokens + additional.cache_read_tokens,
            total_cost=current.total_cost + additional.total_cost,
        )

    def add(self, usage: Usage) -> None:
        self._total = self.accumulate(self._total, usage)

    @property
    def total(self) -> Usage:
        return self._total.model_copy()

    def summary(self) -> str:
        u = self._total
        return (
            f"Tokens: {u.input_tokens} in, {u.output_tokens} out | "
            f"Cache: {u.cache_write_tokens} write, {u.cache_read_tokens} read | "
            f"Cost: ${u.total_cost:.4f}"
        )
