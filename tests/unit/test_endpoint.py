# tests/unit/test_endpoint.py
"""Unit tests for Endpoint call accounting and request/response helpers."""

from __future__ import annotations

import json
import threading

from starlette.datastructures import Headers as RequestHeaders
from starlette.datastructures import QueryParams

from httpfakes.endpoint import (
    DEFAULT_MAX_FAILURE_COUNT,
    STANDARD_METHODS,
    Endpoint,
    FakeRequest,
    Headers,
    static_response,
)


def _request(body: bytes = b"") -> FakeRequest:
    return FakeRequest(
        method="POST",
        url="http://testserver/items/1?q=x",
        path="/items/1",
        path_params={"id": "1"},
        query_params=QueryParams("q=x"),
        headers=RequestHeaders({"content-type": "application/json"}),
        body=body,
    )


class TestCallAccounting:
    """Tests for record_call and the calls property."""

    def test_new_endpoint_has_no_calls(self) -> None:
        endpoint = Endpoint(path="/")
        assert endpoint.calls == 0
        assert endpoint.failures == 0

    def test_record_call_increments(self) -> None:
        endpoint = Endpoint(path="/")
        endpoint.record_call()
        endpoint.record_call()
        assert endpoint.calls == 2

    def test_concurrent_record_call_loses_no_updates(self) -> None:
        """Many threads incrementing at once end at the exact total."""
        endpoint = Endpoint(path="/")
        per_thread = 500
        threads = [threading.Thread(target=lambda: [endpoint.record_call() for _ in range(per_thread)]) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert endpoint.calls == 8 * per_thread

    def test_reset_zeroes_counters_and_errors(self) -> None:
        endpoint = Endpoint(path="/", max_failure_count=5)
        endpoint.record_and_check_budget(inject=True)
        endpoint.record_expectation_error(AssertionError("boom"))
        endpoint.reset()
        assert endpoint.calls == 0
        assert endpoint.failures == 0
        assert endpoint.expectation_errors == []


class TestRecordAndCheckBudget:
    """Tests for the combined increment + budget primitive."""

    def test_counts_call_on_both_paths(self) -> None:
        endpoint = Endpoint(path="/", max_failure_count=3)
        endpoint.record_and_check_budget(inject=False)
        endpoint.record_and_check_budget(inject=True)
        assert endpoint.calls == 2
        assert endpoint.failures == 1

    def test_budget_exhausts_after_max_failure_count_calls(self) -> None:
        endpoint = Endpoint(path="/", max_failure_count=2)
        results = [endpoint.record_and_check_budget(inject=True) for _ in range(5)]
        assert results == [True, True, False, False, False]
        assert endpoint.failures == 2

    def test_budget_is_measured_in_calls_not_failures(self) -> None:
        """A call that was not injected still uses up a budget slot."""
        endpoint = Endpoint(path="/", max_failure_count=2)
        assert endpoint.record_and_check_budget(inject=False) is False
        assert endpoint.record_and_check_budget(inject=True) is True
        assert endpoint.record_and_check_budget(inject=True) is False

    def test_zero_budget_never_fails(self) -> None:
        endpoint = Endpoint(path="/", max_failure_count=0)
        assert not any(endpoint.record_and_check_budget(inject=True) for _ in range(10))

    def test_unset_budget_uses_default(self) -> None:
        endpoint = Endpoint(path="/")
        results = [endpoint.record_and_check_budget(inject=True) for _ in range(DEFAULT_MAX_FAILURE_COUNT + 2)]
        assert results.count(True) == DEFAULT_MAX_FAILURE_COUNT

    def test_concurrent_callers_never_exceed_budget(self) -> None:
        """Racing requests cannot both claim the last failure slot."""
        endpoint = Endpoint(path="/", max_failure_count=3)
        delivered: list[bool] = []
        lock = threading.Lock()
        barrier = threading.Barrier(16)

        def worker() -> None:
            barrier.wait()
            result = endpoint.record_and_check_budget(inject=True)
            with lock:
                delivered.append(result)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert delivered.count(True) == 3
        assert endpoint.calls == 16
        assert endpoint.failures == 3


class TestLabel:
    def test_label_defaults_to_methods_and_path(self) -> None:
        assert Endpoint(path="/a", methods=("GET", "POST")).label == "GET,POST /a"

    def test_label_for_any_method(self) -> None:
        assert Endpoint(path="/a").label == "ANY /a"
        assert Endpoint(path="/a", methods=STANDARD_METHODS).label == "ANY /a"

    def test_explicit_name_wins(self) -> None:
        assert Endpoint(path="/a", name="users").label == "users"


class TestFakeRequest:
    def test_json_decodes_body(self) -> None:
        request = _request(b'{"hello": "world"}')
        assert request.json() == {"hello": "world"}
        assert request.text == '{"hello": "world"}'

    def test_exposes_path_params_and_query(self) -> None:
        request = _request()
        assert request.path_params["id"] == "1"
        assert request.query_params["q"] == "x"
        assert request.headers["Content-Type"] == "application/json"


class TestStaticResponse:
    def test_builds_configured_response(self) -> None:
        handler = static_response(503, '{"error": "down"}', headers={"Retry-After": "1"})
        response = handler(_request())
        assert response.status_code == 503
        assert json.loads(response.body) == {"error": "down"}
        assert response.headers["content-type"] == "application/json"
        assert response.headers["retry-after"] == "1"

    def test_custom_content_type(self) -> None:
        response = static_response(500, "oops", content_type="text/plain")(_request())
        assert response.headers.getlist("content-type") == ["text/plain"]
        assert response.body == b"oops"


class TestHeaders:
    def test_headers_is_a_mapping(self) -> None:
        headers = Headers({"Authorization": "Bearer some-bearer"})
        assert dict(headers) == {"Authorization": "Bearer some-bearer"}
