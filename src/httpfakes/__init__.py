# src/httpfakes/__init__.py
"""httpfakes: programmable, in-process fake HTTP services for tests.

- Endpoint: declares one route and counts its calls
- FailureController: bounded, repeatable failure injection
- Dispatcher: routes requests to endpoints (Starlette)
- FakeService: binds a socket, serves with uvicorn, verifies coverage

Usage:
    from httpfakes import Endpoint, FakeService

    service = FakeService().add_endpoint(Endpoint(path="/hello", response='{"message":"hello"}')).run()
    try:
        ...  # point the system under test at service.base_url
    finally:
        service.tidy_up()
"""

from httpfakes.config import (
    EndpointConfig,
    FailureResponseConfig,
    FakeServiceConfig,
    load_config,
)
from httpfakes.dispatcher import Dispatcher
from httpfakes.endpoint import (
    DEFAULT_CONTENT_TYPE,
    DEFAULT_MAX_FAILURE_COUNT,
    STANDARD_METHODS,
    Endpoint,
    FakeRequest,
    Headers,
    static_response,
)
from httpfakes.errors import (
    BindError,
    ConfigurationError,
    CoverageError,
    ExpectationError,
    FakeServiceError,
    ServerStartError,
)
from httpfakes.failure import FailureController
from httpfakes.service import (
    FakeService,
    with_default_max_failure_count,
    with_host,
    with_port,
    with_seed,
    with_startup_timeout,
)

__version__ = "0.3.0"

__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "DEFAULT_MAX_FAILURE_COUNT",
    "STANDARD_METHODS",
    "BindError",
    "ConfigurationError",
    "CoverageError",
    "Dispatcher",
    "Endpoint",
    "EndpointConfig",
    "ExpectationError",
    "FailureController",
    "FailureResponseConfig",
    "FakeRequest",
    "FakeService",
    "FakeServiceConfig",
    "FakeServiceError",
    "Headers",
    "ServerStartError",
    "load_config",
    "static_response",
    "with_default_max_failure_count",
    "with_host",
    "with_port",
    "with_seed",
    "with_startup_timeout",
]
