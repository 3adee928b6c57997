# src/httpfakes/endpoint.py
"""Endpoint declarations and their thread-safe call accounting.

An Endpoint is both the declarative description of one route (path, methods,
body, headers, status) and the owner of the mutable counters the service
checks at teardown. The counters are only ever touched under the endpoint's
own lock, so concurrent request handlers never lose updates and endpoints do
not serialize each other.

Usage:
    from httpfakes import Endpoint, Headers

    Endpoint(
        path="/users/:id",
        methods=["GET"],
        response='{"id": "42"}',
        headers=Headers({"Authorization": "Bearer some-bearer"}),
    )
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from starlette.datastructures import Headers as RequestHeaders
from starlette.datastructures import QueryParams
from starlette.responses import Response

DEFAULT_CONTENT_TYPE = "application/json"
DEFAULT_STATUS_CODE = 200
DEFAULT_MAX_FAILURE_COUNT = 3

# Used when an endpoint does not restrict its methods.
STANDARD_METHODS: tuple[str, ...] = (
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "PATCH",
    "DELETE",
    "OPTIONS",
    "TRACE",
    "CONNECT",
)


class Headers(dict[str, str]):
    """Response headers applied to every normal response of an endpoint."""


@dataclass(frozen=True, slots=True)
class FakeRequest:
    """Snapshot of an inbound request, handed to endpoint callbacks.

    The body is read before any callback runs, so callbacks stay synchronous.

    Attributes:
        method: Upper-case HTTP method.
        url: Full request URL as seen by the server.
        path: Request path without query string.
        path_params: Values captured by named segments (``/:id`` -> ``{"id": ...}``).
        query_params: Parsed query string.
        headers: Case-insensitive request headers.
        body: Raw request body.
    """

    method: str
    url: str
    path: str
    path_params: Mapping[str, Any]
    query_params: QueryParams
    headers: RequestHeaders
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.body)


Handler = Callable[[FakeRequest], Response]
Expectation = Callable[[FakeRequest], None]


def apply_headers(response: Response, content_type: str, headers: Mapping[str, str]) -> Response:
    """Set Content-Type verbatim, then each header, replacing same-named values.

    Headers are applied after the content type, so a ``Content-Type`` entry in
    ``headers`` wins.
    """
    response.headers["content-type"] = content_type
    for name, value in headers.items():
        response.headers[name] = value
    return response


def render_response(
    status_code: int,
    body: str | bytes,
    *,
    content_type: str,
    headers: Mapping[str, str] | None = None,
) -> Response:
    """Build a response whose Content-Type is exactly ``content_type``.

    Starlette appends a charset to ``text/*`` media types; passing no media
    type and writing the header directly keeps the configured value intact.
    """
    return apply_headers(Response(content=body, status_code=status_code), content_type, headers or {})


def static_response(
    status_code: int,
    body: str | bytes = b"",
    *,
    content_type: str = DEFAULT_CONTENT_TYPE,
    headers: Mapping[str, str] | None = None,
) -> Handler:
    """Build a handler that always answers with the same response.

    Handy as a failure handler:

        Endpoint(path="/", failure_rate_percent=50,
                 failure_handler=static_response(503, '{"error": "unavailable"}'))
    """

    def handler(request: FakeRequest) -> Response:
        return render_response(status_code, body, content_type=content_type, headers=headers)

    return handler


@dataclass(eq=False)
class Endpoint:
    """A route declared on a fake service, plus its runtime counters.

    Attributes:
        path: Route pattern. ``/:name`` captures one segment, ``/*name`` captures
            the rest of the path. Starlette ``{name}`` patterns work too.
        methods: Methods this endpoint answers. Empty means every standard method.
        response: Body written verbatim on the normal path.
        status_code: Status of the normal path. 0 means 200.
        content_type: Content-Type of the normal path. Empty means application/json.
        headers: Headers set on every normal response.
        handler: Optional override producing the whole response.
        expectation: Optional assertion callback run on the normal path.
        failure_rate_percent: Chance (0-100) that a call is turned into a failure.
        failure_handler: Produces the response when a failure is injected.
        max_failure_count: Calls eligible for failure injection. None means the
            service default.
        name: Label for logs and reports.
    """

    path: str
    response: str | bytes = ""
    status_code: int = 0
    methods: Sequence[str] = ()
    content_type: str = ""
    headers: Mapping[str, str] = field(default_factory=Headers)
    handler: Handler | None = None
    expectation: Expectation | None = None
    failure_rate_percent: int = 0
    failure_handler: Handler | None = None
    max_failure_count: int | None = None
    name: str | None = None

    _calls: int = field(default=0, init=False, repr=False)
    _failures: int = field(default=0, init=False, repr=False)
    _expectation_errors: list[BaseException] = field(default_factory=list, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        if not self.methods or set(self.methods) == set(STANDARD_METHODS):
            methods = "ANY"
        else:
            methods = ",".join(self.methods)
        return f"{methods} {self.path}"

    @property
    def calls(self) -> int:
        """Number of matched requests so far."""
        with self._lock:
            return self._calls

    @property
    def failures(self) -> int:
        """Number of injected failures delivered so far."""
        with self._lock:
            return self._failures

    @property
    def expectation_errors(self) -> list[BaseException]:
        with self._lock:
            return list(self._expectation_errors)

    def record_call(self) -> None:
        """Count a matched request."""
        with self._lock:
            self._calls += 1

    def record_and_check_budget(self, *, inject: bool = True) -> bool:
        """Count a matched request and decide whether a failure may be delivered.

        The budget check and the increment share one critical section, so two
        concurrent requests can never both claim the last failure slot.

        Args:
            inject: Whether the failure draw for this request came up positive.

        Returns:
            True if a failure should be delivered for this request.
        """
        budget = self.max_failure_count if self.max_failure_count is not None else DEFAULT_MAX_FAILURE_COUNT
        with self._lock:
            within_budget = self._calls < budget
            self._calls += 1
            deliver = inject and within_budget
            if deliver:
                self._failures += 1
            return deliver

    def record_expectation_error(self, exc: BaseException) -> None:
        with self._lock:
            self._expectation_errors.append(exc)

    def reset(self) -> None:
        """Zero the counters and drop collected expectation errors."""
        with self._lock:
            self._calls = 0
            self._failures = 0
            self._expectation_errors.clear()
