# src/httpfakes/errors.py
"""Exception hierarchy for fake HTTP services.

Configuration problems surface immediately at registration or start time.
Verification problems (uncalled endpoints, failed expectations) surface at
teardown and subclass AssertionError so test runners report them as test
failures rather than errors in the fixture.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from httpfakes.endpoint import Endpoint


class FakeServiceError(Exception):
    """Base class for every error raised by httpfakes."""


class ConfigurationError(FakeServiceError, ValueError):
    """A fake service or endpoint was declared in an unusable way."""


class BindError(ConfigurationError):
    """The listening socket could not be bound."""

    def __init__(self, host: str, port: int, reason: str) -> None:
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(f"Failed to listen on {host}:{port}: {reason}")


class ServerStartError(FakeServiceError):
    """The HTTP server did not come up on the bound socket."""


class CoverageError(FakeServiceError, AssertionError):
    """One or more registered endpoints were never called.

    Carries one entry per uncalled endpoint.
    """

    def __init__(self, uncalled: Sequence[Endpoint]) -> None:
        self.uncalled = tuple(uncalled)
        lines = [f"endpoint {e.path} has not been called within this test" for e in self.uncalled]
        super().__init__("\n".join(lines))


class ExpectationError(FakeServiceError, AssertionError):
    """An endpoint expectation raised while handling a request."""

    def __init__(self, failures: Sequence[tuple[Endpoint, BaseException]]) -> None:
        self.failures = tuple(failures)
        lines = [f"expectation for {endpoint.path} failed: {exc!r}" for endpoint, exc in self.failures]
        super().__init__("\n".join(lines))
