from __future__ import annotations

import random

import pytest

from warden.bulk.policy import JitterPolicy, RetryPolicy


class TestRetryPolicy:
    def test_exponential_backoff_is_capped(self) -> None:
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0)

        assert [policy.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_server_hint_wins_when_preferred(self) -> None:
        assert RetryPolicy(max_delay=5.0).delay_for(1, 12.5) == 12.5

    def test_server_hint_ignored_when_disabled(self) -> None:
        assert RetryPolicy(prefer_server_hint=False).delay_for(2, 12.5) == 2.0

    @pytest.mark.parametrize("hint", [None, 0, -3])
    def test_missing_or_bogus_hint_falls_back(self, hint) -> None:
        assert RetryPolicy().delay_for(1, hint) == 1.0


class TestJitterPolicy:
    def test_draw_stays_within_bounds(self) -> None:
        policy = JitterPolicy(0.35, 0.9)
        rng = random.Random(0)
        draws = [policy.draw(rng) for _ in range(200)]
        assert all(0.35 <= d <= 0.9 for d in draws)

    def test_swapped_bounds_are_tolerated(self) -> None:
        assert 0.1 <= JitterPolicy(0.5, 0.1).draw(random.Random(1)) <= 0.5
