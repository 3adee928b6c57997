# src/httpfakes/pytest_plugin.py
"""pytest integration: a ``fake_service`` fixture that tidies up after itself.

Registered through the ``pytest11`` entry point, so installing httpfakes is
enough to make the fixture available.

Usage:
    def test_client_retries(fake_service):
        service = fake_service().add_endpoint(
            Endpoint(path="/", response="{}", failure_rate_percent=100,
                     failure_handler=static_response(503))
        ).run()
        ...

    # Marker kwargs become default options for every service in the test
    @pytest.mark.httpfakes(port=10000, seed=7)
    def test_fixed_port(fake_service):
        ...

Every service the test did not tidy up itself is tidied when the test
finishes, whether or not it was run; an endpoint that was never called fails
the test.
"""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass, field

import pytest

from httpfakes.service import (
    FakeService,
    Option,
    with_default_max_failure_count,
    with_host,
    with_port,
    with_seed,
)

_MARKER_OPTIONS = {
    "port": with_port,
    "host": with_host,
    "seed": with_seed,
    "default_max_failure_count": with_default_max_failure_count,
}


@dataclass
class FakeServiceFactory:
    """Builds fake services and remembers them for teardown."""

    default_options: tuple[Option, ...] = ()
    services: list[FakeService] = field(default_factory=list)

    def __call__(self, *options: Option) -> FakeService:
        service = FakeService(*self.default_options, *options)
        self.services.append(service)
        return service

    def tidy_up(self) -> list[BaseException]:
        """Tidy up every service the test did not tidy itself.

        Services that were built but never run are verified too, so their
        endpoints count as uncalled.
        """
        failures: list[BaseException] = []
        for service in self.services:
            if service.tidied:
                continue
            try:
                service.tidy_up()
            except (AssertionError, ExceptionGroup) as exc:
                failures.append(exc)
        return failures


def _options_from_marker(marker: pytest.Mark | None) -> tuple[Option, ...]:
    if marker is None:
        return ()
    unknown = set(marker.kwargs) - set(_MARKER_OPTIONS)
    if unknown:
        raise pytest.UsageError(f"Unknown httpfakes marker arguments: {sorted(unknown)}")
    return tuple(_MARKER_OPTIONS[key](value) for key, value in marker.kwargs.items())


@pytest.fixture
def fake_service(request: pytest.FixtureRequest) -> Generator[FakeServiceFactory, None, None]:
    """Factory for fake HTTP services, tidied up when the test ends.

    Usage:
        def test_hello(fake_service):
            service = fake_service().add_endpoint(Endpoint(path="/hello", response="{}")).run()
            assert httpx.get(service.base_url + "/hello").status_code == 200
    """
    marker = request.node.get_closest_marker("httpfakes")
    factory = FakeServiceFactory(default_options=_options_from_marker(marker))
    yield factory
    failures = factory.tidy_up()
    if failures:
        pytest.fail("\n".join(str(f) for f in failures), pytrace=False)


def pytest_configure(config: pytest.Config) -> None:
    """Register the httpfakes marker."""
    config.addinivalue_line(
        "markers",
        "httpfakes(port=None, host=None, seed=None, default_max_failure_count=None): "
        "default options for services built by the fake_service fixture.",
    )
