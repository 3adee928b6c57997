# src/httpfakes/failure.py
"""Chaos decision logic for fake endpoints.

The FailureController turns an endpoint's static failure rate into a bounded
sequence of induced failures. Every decision draws once from a single random
source; pass a seeded ``random.Random`` (or any object with ``randrange``) to
make the sequence repeatable.

Usage:
    controller = FailureController(rng=random.Random(42))
    if controller.decide(endpoint):
        return endpoint.failure_handler(request)
"""

from __future__ import annotations

import random as random_module
import threading

from httpfakes.endpoint import Endpoint


class FailureController:
    """Per-request failure decisions with a bounded failure budget.

    The controller knows nothing about HTTP. It answers one question per
    matched request: should this call take the failure path? A failure is
    delivered only while the endpoint's pre-increment call count is below its
    ``max_failure_count``, so a client that retries more than that many times
    always sees a success eventually.
    """

    def __init__(self, *, rng: random_module.Random | None = None) -> None:
        """Initialize the controller.

        Args:
            rng: Random source for testing (default: creates new Random instance).
        """
        self._rng = rng if rng is not None else random_module.Random()
        self._rng_lock = threading.Lock()

    def draw(self) -> int:
        """Draw a uniformly distributed integer in [0, 100)."""
        with self._rng_lock:
            return self._rng.randrange(100)

    def should_fail(self, failure_rate_percent: int) -> bool:
        """Check the probability draw alone, ignoring any budget.

        Rates <= 0 never fail and rates >= 100 always fail; no draw is taken
        in either case.
        """
        if failure_rate_percent <= 0:
            return False
        if failure_rate_percent >= 100:
            return True
        return self.draw() < failure_rate_percent

    def decide(self, endpoint: Endpoint) -> bool:
        """Record the call on ``endpoint`` and decide whether it fails.

        Increments the endpoint's call count exactly once, whichever path the
        request takes.
        """
        return endpoint.record_and_check_budget(inject=self.should_fail(endpoint.failure_rate_percent))

    def reseed(self, seed: int | None) -> None:
        """Restart the random source from ``seed`` (None reseeds from the OS)."""
        with self._rng_lock:
            self._rng.seed(seed)
