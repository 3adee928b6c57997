# src/httpfakes/service.py
"""Lifecycle of an in-process fake HTTP service.

FakeService binds its own listening socket (a fixed port or one assigned by
the OS), runs uvicorn on that socket in a background thread, and exposes the
resulting ``base_url``. At teardown it checks that every registered endpoint
was called at least once, then releases the socket whatever the outcome.

Usage:
    service = (
        FakeService(with_port(10000))
        .add_endpoint(Endpoint(path="/", response="{}"))
        .add_endpoint(Endpoint(path="/hello", response='{"message":"hello"}'))
        .run()
    )
    try:
        httpx.get(service.base_url + "/hello")
        ...
    finally:
        service.tidy_up()

    # Or as a context manager, which tidies up on exit
    with FakeService().add_endpoint(Endpoint(path="/", response="{}")) as service:
        httpx.get(service.base_url)
"""

from __future__ import annotations

import random
import socket
import threading
import time
from collections.abc import Callable
from types import TracebackType
from typing import Any, Self

import structlog
import uvicorn
from pydantic import ValidationError
from starlette.applications import Starlette

from httpfakes.config import FakeServiceConfig
from httpfakes.dispatcher import Dispatcher
from httpfakes.endpoint import Endpoint
from httpfakes.errors import (
    BindError,
    ConfigurationError,
    CoverageError,
    ExpectationError,
    ServerStartError,
)
from httpfakes.failure import FailureController

logger = structlog.get_logger(__name__)

Option = Callable[[dict[str, Any]], None]

_WILDCARD_HOSTS = {"": "127.0.0.1", "0.0.0.0": "127.0.0.1", "::": "::1"}


def with_port(port: int) -> Option:
    """Bind to a fixed port instead of an ephemeral one."""

    def apply(settings: dict[str, Any]) -> None:
        settings["port"] = port

    return apply


def with_host(host: str) -> Option:
    """Bind to a specific interface (default 127.0.0.1)."""

    def apply(settings: dict[str, Any]) -> None:
        settings["host"] = host

    return apply


def with_startup_timeout(seconds: float) -> Option:
    def apply(settings: dict[str, Any]) -> None:
        settings["startup_timeout_sec"] = seconds

    return apply


def with_default_max_failure_count(count: int) -> Option:
    """Failure budget for endpoints that do not set max_failure_count."""

    def apply(settings: dict[str, Any]) -> None:
        settings["default_max_failure_count"] = count

    return apply


def with_seed(seed: int) -> Option:
    """Seed the failure draw so chaos sequences repeat across runs."""

    def apply(settings: dict[str, Any]) -> None:
        settings["seed"] = seed

    return apply


class FakeService:
    """A programmable fake HTTP server for tests.

    Endpoints are registered first (chainable), then ``run()`` starts serving
    and ``tidy_up()`` verifies coverage and stops. Registering after ``run()``
    raises ConfigurationError.
    """

    def __init__(self, *options: Option, config: FakeServiceConfig | None = None) -> None:
        settings: dict[str, Any] = config.model_dump() if config is not None else {}
        for option in options:
            option(settings)
        try:
            self._config = FakeServiceConfig(**settings)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid fake service configuration: {exc}") from exc

        rng = random.Random(self._config.seed) if self._config.seed is not None else None
        self._dispatcher = Dispatcher(
            failure_controller=FailureController(rng=rng),
            default_max_failure_count=self._config.default_max_failure_count,
        )
        for endpoint_config in self._config.endpoints:
            self.add_endpoint(endpoint_config.to_endpoint())

        self._socket: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._bound_port: int | None = None
        self._tidied = False
        self.base_url: str | None = None

    @classmethod
    def from_config(cls, config: FakeServiceConfig) -> FakeService:
        """Build a service, including its declared endpoints, from config."""
        return cls(config=config)

    @property
    def config(self) -> FakeServiceConfig:
        return self._config

    @property
    def endpoints(self) -> list[Endpoint]:
        """Registered endpoints in registration order."""
        return self._dispatcher.endpoints

    @property
    def port(self) -> int:
        """Bound port while running, otherwise the requested port (0 = any)."""
        if self._bound_port is not None:
            return self._bound_port
        return self._config.port

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def tidied(self) -> bool:
        """Whether tidy_up() has run since the last run()."""
        return self._tidied

    @property
    def app(self) -> Starlette:
        """The ASGI app serving the endpoints (freezes registration)."""
        return self._dispatcher.app

    def add_endpoint(self, endpoint: Endpoint) -> Self:
        """Register an endpoint and return the service for chaining.

        Raises:
            ConfigurationError: If the endpoint is invalid or the service is
                already running.
        """
        self._dispatcher.add(endpoint)
        return self

    endpoint = add_endpoint

    def run(self) -> Self:
        """Bind the socket, start serving and populate ``base_url``.

        Raises:
            BindError: If the socket cannot be bound; nothing is started.
            ServerStartError: If uvicorn does not come up in time.
        """
        if self._server is not None:
            raise ConfigurationError(f"Fake service is already running at {self.base_url}")
        self._tidied = False

        host = self._config.host
        logger.info("fake_service_starting", host=host, port=self._config.port)
        app = self._dispatcher.app
        sock = self._bind(host, self._config.port)
        port = sock.getsockname()[1]

        server = uvicorn.Server(
            uvicorn.Config(
                app=app,
                log_level="warning",
                log_config=None,
                access_log=False,
                lifespan="off",
            )
        )
        thread = threading.Thread(
            target=server.run,
            kwargs={"sockets": [sock]},
            daemon=True,
            name=f"httpfakes-{port}",
        )
        thread.start()

        deadline = time.monotonic() + self._config.startup_timeout_sec
        while not server.started and thread.is_alive() and time.monotonic() < deadline:
            time.sleep(0.01)

        if not server.started:
            server.should_exit = True
            thread.join(timeout=self._config.shutdown_timeout_sec)
            sock.close()
            raise ServerStartError(f"Fake service failed to start on {host}:{port} within {self._config.startup_timeout_sec}s")

        self._socket = sock
        self._server = server
        self._thread = thread
        self._bound_port = port
        self.base_url = _format_base_url(host, port)
        logger.info("fake_service_started", base_url=self.base_url, endpoints=len(self.endpoints))
        return self

    def verify(self) -> None:
        """Check that every endpoint was called and no expectation failed.

        Raises:
            CoverageError: One entry per endpoint that was never called.
            ExpectationError: Expectation callbacks raised during requests.
            ExceptionGroup: Both of the above, when both apply.
        """
        uncalled = [e for e in self.endpoints if e.calls < 1]
        for endpoint in uncalled:
            logger.warning("endpoint_not_called", path=endpoint.path, endpoint=endpoint.label)

        failures = [(e, exc) for e in self.endpoints for exc in e.expectation_errors]

        errors: list[Exception] = []
        if uncalled:
            errors.append(CoverageError(uncalled))
        if failures:
            errors.append(ExpectationError(failures))
        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise ExceptionGroup("fake service verification failed", errors)

    def tidy_up(self) -> None:
        """Verify endpoint coverage, then stop serving.

        The socket is released even when verification fails; the
        verification error is raised afterwards.
        """
        logger.info(
            "fake_service_tidy_up",
            base_url=self.base_url,
            calls={e.label: e.calls for e in self.endpoints},
        )
        self._tidied = True
        try:
            self.verify()
        finally:
            self.close()

    def close(self) -> None:
        """Stop serving and release the socket. Safe to call repeatedly."""
        server, thread, sock = self._server, self._thread, self._socket
        self._server = self._thread = self._socket = None
        self._bound_port = None
        if server is None:
            return

        server.should_exit = True
        if thread is not None:
            thread.join(timeout=self._config.shutdown_timeout_sec)
            if thread.is_alive():
                logger.warning("fake_service_shutdown_timeout", base_url=self.base_url)
        if sock is not None:
            sock.close()
        logger.info("fake_service_stopped", base_url=self.base_url)

    def reset(self) -> None:
        """Zero every endpoint's counters and restart the seeded failure draw."""
        self._dispatcher.reset()
        if self._config.seed is not None:
            self._dispatcher.failure_controller.reseed(self._config.seed)

    def _bind(self, host: str, port: int) -> socket.socket:
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(socket.SOMAXCONN)
        except OSError as exc:
            sock.close()
            logger.error("fake_service_bind_failed", host=host, port=port, error=str(exc))
            raise BindError(host, port, exc.strerror or str(exc)) from exc
        return sock

    def __enter__(self) -> Self:
        return self.run()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.tidy_up()
        else:
            self.close()


def _format_base_url(host: str, port: int) -> str:
    host = _WILDCARD_HOSTS.get(host, host)
    if ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{port}"
