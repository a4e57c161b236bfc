import pytest

from plan_loop.models import Usage
from plan_loop.usage import PRICING, UsageTracker


def test_cost_uses_per_million_pricing():
    usage = Usage(input_tokens=1_000_000, output_tokens=1_000_000, cache_write_tokens=1_000_000, cache_read_tokens=1_000_000)
    assert UsageTracker.cost(usage) == pytest.approx(sum(PRICING.values()))


def test_tracker_accumulates_every_field():
    tracker = UsageTracker()
    tracker.add(Usage(input_tokens=10, output_tokens=2, cache_write_tokens=5, cache_read_tokens=1, total_cost=0.25))
    tracker.add(Usage(input_tokens=30, output_tokens=8, cache_read_tokens=4, total_cost=0.5))

    total = tracker.total
    assert (total.input_tokens, total.output_tokens) == (40, 10)
    assert (total.cache_write_tokens, total.cache_read_tokens) == (5, 5)
    assert total.total_cost == pytest.approx(0.75)
    assert "Cost: $0.7500" in tracker.summary()


def test_total_is_a_copy():
    tracker = UsageTracker()
    tracker.total.input_tokens = 99
    assert tracker.total.input_tokens == 0
