# tests/helpers.py
"""Helpers shared across the httpfakes test suite."""

from __future__ import annotations

import random
from collections.abc import Iterator, Sequence

from starlette.responses import JSONResponse, Response

from httpfakes.endpoint import FakeRequest


class FixedDraws(random.Random):
    """Random source that replays a fixed sequence of randrange() draws."""

    def __init__(self, draws: Sequence[int]) -> None:
        super().__init__(0)
        self._draws: Iterator[int] = iter(draws)
        self.calls = 0

    def randrange(self, *args: object, **kwargs: object) -> int:  # type: ignore[override]
        self.calls += 1
        return next(self._draws)


def bad_request(request: FakeRequest) -> Response:
    """Failure handler used throughout the suite."""
    return JSONResponse({"error": "something bad happened"}, status_code=400)
