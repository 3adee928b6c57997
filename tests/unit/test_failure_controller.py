# tests/unit/test_failure_controller.py
"""Unit tests for FailureController.

The random source is replaced with a fixed sequence of draws so every
decision is exact.
"""

from __future__ import annotations

import random

import pytest

from httpfakes.endpoint import Endpoint
from httpfakes.failure import FailureController
from tests.helpers import FixedDraws, bad_request


def _chaos_endpoint(rate: int, max_failures: int | None = 3) -> Endpoint:
    return Endpoint(path="/", failure_rate_percent=rate, failure_handler=bad_request, max_failure_count=max_failures)


class TestShouldFail:
    """Tests for the probability draw on its own."""

    def test_zero_percent_never_fails(self) -> None:
        controller = FailureController(rng=random.Random(42))
        assert not any(controller.should_fail(0) for _ in range(200))

    def test_negative_rate_never_fails(self) -> None:
        controller = FailureController(rng=random.Random(42))
        assert not any(controller.should_fail(-10) for _ in range(200))

    def test_hundred_percent_always_fails(self) -> None:
        controller = FailureController(rng=random.Random(42))
        assert all(controller.should_fail(100) for _ in range(200))

    def test_rate_above_hundred_always_fails(self) -> None:
        controller = FailureController(rng=random.Random(42))
        assert all(controller.should_fail(250) for _ in range(200))

    @pytest.mark.parametrize(
        ("draw", "rate", "expected"),
        [
            (0, 1, True),
            (19, 20, True),
            (20, 20, False),
            (99, 50, False),
            (49, 50, True),
        ],
    )
    def test_draw_strictly_less_than_rate_fails(self, draw: int, rate: int, expected: bool) -> None:
        controller = FailureController(rng=FixedDraws([draw]))
        assert controller.should_fail(rate) is expected

    def test_extreme_rates_do_not_consume_draws(self) -> None:
        rng = FixedDraws([])
        controller = FailureController(rng=rng)
        controller.should_fail(0)
        controller.should_fail(100)
        assert rng.calls == 0

    def test_draw_is_in_range(self) -> None:
        controller = FailureController(rng=random.Random(7))
        draws = {controller.draw() for _ in range(5000)}
        assert min(draws) == 0
        assert max(draws) == 99


class TestDecide:
    """Tests for decisions including the failure budget."""

    def test_always_failing_endpoint_recovers_after_budget(self) -> None:
        """failure_rate_percent=100 and budget k: k failures, then success forever."""
        controller = FailureController(rng=random.Random(1))
        endpoint = _chaos_endpoint(100, max_failures=3)
        outcomes = [controller.decide(endpoint) for _ in range(10)]
        assert outcomes == [True] * 3 + [False] * 7
        assert endpoint.calls == 10
        assert endpoint.failures == 3

    def test_zero_rate_never_fails_regardless_of_calls(self) -> None:
        controller = FailureController(rng=random.Random(1))
        endpoint = _chaos_endpoint(0, max_failures=1000)
        assert not any(controller.decide(endpoint) for _ in range(100))
        assert endpoint.calls == 100

    def test_fixed_draws_pick_exact_failures(self) -> None:
        controller = FailureController(rng=FixedDraws([10, 90, 10, 10, 10]))
        endpoint = _chaos_endpoint(50, max_failures=3)
        outcomes = [controller.decide(endpoint) for _ in range(5)]
        # Call 4 and 5 draw a failure but the budget (3 calls) is gone.
        assert outcomes == [True, False, True, False, False]

    def test_explicit_budget_is_honored(self) -> None:
        controller = FailureController(rng=random.Random(1))
        endpoint = _chaos_endpoint(100, max_failures=5)
        outcomes = [controller.decide(endpoint) for _ in range(6)]
        assert outcomes == [True] * 5 + [False]

    def test_seeded_controllers_repeat(self) -> None:
        first = FailureController(rng=random.Random(1234))
        second = FailureController(rng=random.Random(1234))
        a = _chaos_endpoint(50, max_failures=100)
        b = _chaos_endpoint(50, max_failures=100)
        assert [first.decide(a) for _ in range(50)] == [second.decide(b) for _ in range(50)]

    def test_reseed_restarts_sequence(self) -> None:
        controller = FailureController(rng=random.Random(99))
        first = [controller.draw() for _ in range(20)]
        controller.reseed(99)
        assert [controller.draw() for _ in range(20)] == first
