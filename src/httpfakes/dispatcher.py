# src/httpfakes/dispatcher.py
"""Endpoint registry and request dispatch for fake services.

Owns the ordered list of registered endpoints and the Starlette application
that routes requests to them. Only explicitly registered paths and methods
are served; everything else gets a 404, including a known path requested with
a method it does not declare.

Request flow for a matched endpoint:
1. Record the call and evaluate the failure budget (one critical section)
2. Failure injected -> failure handler response, nothing else applied
3. Run the expectation callback, if any
4. Apply the content type (application/json by default)
5. Apply the configured headers
6. Override handler -> its response
7. Otherwise the configured status and body
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable

import structlog
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route

from httpfakes.endpoint import (
    DEFAULT_CONTENT_TYPE,
    DEFAULT_MAX_FAILURE_COUNT,
    DEFAULT_STATUS_CODE,
    STANDARD_METHODS,
    Endpoint,
    FakeRequest,
    apply_headers,
    render_response,
)
from httpfakes.errors import ConfigurationError
from httpfakes.failure import FailureController

logger = structlog.get_logger(__name__)

NOT_FOUND_BODY = "404 page not found"

_METHOD_TOKEN = re.compile(r"^[A-Z]+$")


def to_route_path(path: str) -> str:
    """Translate ``:name`` and ``*name`` segments into Starlette path syntax.

    >>> to_route_path("/users/:id/files/*rest")
    '/users/{id}/files/{rest:path}'
    """
    segments = []
    for segment in path.split("/"):
        if segment.startswith(":") and len(segment) > 1:
            segments.append("{" + segment[1:] + "}")
        elif segment.startswith("*") and len(segment) > 1:
            segments.append("{" + segment[1:] + ":path}")
        else:
            segments.append(segment)
    return "/".join(segments)


async def _not_found(request: Request, exc: Exception) -> Response:
    return PlainTextResponse(NOT_FOUND_BODY, status_code=404)


class Dispatcher:
    """Registry of endpoints plus the ASGI app that serves them.

    Registration is open until ``app`` is first accessed; after that the route
    table is frozen and further registrations raise ConfigurationError.
    """

    def __init__(
        self,
        *,
        failure_controller: FailureController | None = None,
        default_max_failure_count: int = DEFAULT_MAX_FAILURE_COUNT,
    ) -> None:
        self._failure_controller = failure_controller if failure_controller is not None else FailureController()
        self._default_max_failure_count = default_max_failure_count
        self._endpoints: list[Endpoint] = []
        self._routes: list[Route] = []
        self._app: Starlette | None = None

    @property
    def endpoints(self) -> list[Endpoint]:
        """Registered endpoints in registration (precedence) order."""
        return list(self._endpoints)

    @property
    def failure_controller(self) -> FailureController:
        return self._failure_controller

    @property
    def frozen(self) -> bool:
        return self._app is not None

    @property
    def app(self) -> Starlette:
        """The Starlette application; building it freezes registration."""
        if self._app is None:
            app = Starlette(
                debug=False,
                routes=list(self._routes),
                exception_handlers={404: _not_found, 405: _not_found},
            )
            # A trailing-slash variant is a different path, never a redirect.
            app.router.redirect_slashes = False
            self._app = app
        return self._app

    def add(self, endpoint: Endpoint) -> Endpoint:
        """Validate ``endpoint`` and wire it into the route table.

        Raises:
            ConfigurationError: If the endpoint is misconfigured or the route
                table is already frozen.
        """
        if self.frozen:
            raise ConfigurationError(f"Cannot register {endpoint.path!r}: the fake service is already running")
        self._validate(endpoint)

        if endpoint.max_failure_count is None:
            endpoint.max_failure_count = self._default_max_failure_count
        endpoint.methods = tuple(m.upper() for m in endpoint.methods) or STANDARD_METHODS

        route = Route(
            to_route_path(endpoint.path),
            self._make_route_handler(endpoint),
            methods=list(endpoint.methods),
            name=endpoint.label,
        )
        # Route adds HEAD to every GET route; serve only the declared methods.
        route.methods = set(endpoint.methods)

        self._endpoints.append(endpoint)
        self._routes.append(route)
        logger.debug(
            "endpoint_registered",
            path=endpoint.path,
            methods=list(endpoint.methods),
            failure_rate_percent=endpoint.failure_rate_percent,
            max_failure_count=endpoint.max_failure_count,
        )
        return endpoint

    def reset(self) -> None:
        """Zero the counters of every registered endpoint."""
        for endpoint in self._endpoints:
            endpoint.reset()

    def _validate(self, endpoint: Endpoint) -> None:
        if not endpoint.path.startswith("/"):
            raise ConfigurationError(f"Endpoint path must start with '/': {endpoint.path!r}")
        for method in endpoint.methods:
            if not _METHOD_TOKEN.match(method.upper()):
                raise ConfigurationError(f"Invalid HTTP method {method!r} for endpoint {endpoint.path!r}")
        if endpoint.failure_rate_percent > 0 and endpoint.failure_handler is None:
            raise ConfigurationError(
                f"Endpoint {endpoint.path!r} has failure_rate_percent={endpoint.failure_rate_percent} but no failure_handler"
            )
        if endpoint.max_failure_count is not None and endpoint.max_failure_count < 0:
            raise ConfigurationError(f"max_failure_count must be >= 0 for endpoint {endpoint.path!r}, got {endpoint.max_failure_count}")

    def _make_route_handler(self, endpoint: Endpoint) -> Callable[[Request], Awaitable[Response]]:
        async def route_handler(request: Request) -> Response:
            fake_request = FakeRequest(
                method=request.method,
                url=str(request.url),
                path=request.url.path,
                path_params=dict(request.path_params),
                query_params=request.query_params,
                headers=request.headers,
                body=await request.body(),
            )
            return await run_in_threadpool(self.dispatch, endpoint, fake_request)

        return route_handler

    def dispatch(self, endpoint: Endpoint, request: FakeRequest) -> Response:
        """Produce the response for a request already matched to ``endpoint``."""
        if self._failure_controller.decide(endpoint):
            response = _ensure_response(endpoint.failure_handler(request), endpoint)  # type: ignore[misc]
            logger.info(
                "chaos_injected",
                method=request.method,
                url=request.url,
                endpoint=endpoint.label,
                status=response.status_code,
                failures=endpoint.failures,
                max_failure_count=endpoint.max_failure_count,
            )
            return response

        if endpoint.expectation is not None:
            try:
                endpoint.expectation(request)
            except Exception as exc:
                endpoint.record_expectation_error(exc)
                logger.warning("expectation_failed", endpoint=endpoint.label, url=request.url, error=repr(exc))

        content_type = endpoint.content_type or DEFAULT_CONTENT_TYPE

        if endpoint.handler is not None:
            # Content type and headers are set before the handler renders, so
            # they win over whatever the handler chose.
            response = apply_headers(_ensure_response(endpoint.handler(request), endpoint), content_type, endpoint.headers)
            outcome = "handler"
        else:
            response = render_response(
                endpoint.status_code or DEFAULT_STATUS_CODE,
                endpoint.response,
                content_type=content_type,
                headers=endpoint.headers,
            )
            outcome = "normal"

        logger.debug(
            "fake_request",
            method=request.method,
            url=request.url,
            endpoint=endpoint.label,
            status=response.status_code,
            outcome=outcome,
        )
        return response


def _ensure_response(response: object, endpoint: Endpoint) -> Response:
    if not isinstance(response, Response):
        raise TypeError(f"Handler for endpoint {endpoint.path!r} returned {type(response).__name__}, expected a starlette Response")
    return response
