from __future__ import annotations

import httpx
import pytest

from jobharvest.http import FetchError, HostNotAllowedError, HttpFetcher, host_allowed


def _make_http(handler, *, max_retries=0, sleeps=None, allowlist_hosts=("dubizzle.com",)):
    return HttpFetcher(
        user_agents=["TestAgent/1.0"],
        allowlist_hosts=list(allowlist_hosts),
        rate_limit_per_host_s=0.0,
        max_retries=max_retries,
        transport=httpx.MockTransport(handler),
        sleep=(sleeps.append if sleeps is not None else (lambda _s: None)),
    )


def test_fetch_returns_html_result_with_user_agent():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["ua"] = request.headers.get("User-Agent")
        return httpx.Response(200, text="<h1>Driver</h1>", headers={"Content-Type": "text/html; charset=utf-8"})

    with _make_http(handler) as http:
        result = http.fetch("https://dubai.dubizzle.com/jobs/driving/1")

    assert seen["ua"] == "TestAgent/1.0"
    assert result.status_code == 200
    assert not result.is_json
    payload = result.to_payload()
    assert payload.html == "<h1>Driver</h1>"
    assert payload.json_body is None
    assert payload.metadata == {"status_code": 200, "content_type": "text/html; charset=utf-8"}


def test_json_responses_become_json_payloads():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"listings": [{"id": 1}]})

    with _make_http(handler) as http:
        payload = http.fetch("https://dubai.dubizzle.com/api/jobs").to_payload()

    assert payload.json_body == {"listings": [{"id": 1}]}
    assert payload.html is None


def test_retries_server_errors_then_succeeds():
    calls = []
    sleeps = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        if len(calls) < 3:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, text="<h1>ok</h1>")

    with _make_http(handler, max_retries=2, sleeps=sleeps) as http:
        result = http.fetch("https://dubai.dubizzle.com/jobs/")

    assert result.status_code == 200
    assert len(calls) == 3
    assert len(sleeps) == 2


def test_retry_after_header_is_honoured():
    sleeps = []
    responses = [httpx.Response(429, headers={"Retry-After": "3"}), httpx.Response(200, text="ok")]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    with _make_http(handler, max_retries=1, sleeps=sleeps) as http:
        assert http.fetch("https://dubai.dubizzle.com/jobs/").status_code == 200

    assert sleeps == [3.0]


def test_client_errors_are_returned_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, text="<html>_Incapsula_Resource</html>")

    with _make_http(handler, max_retries=2) as http:
        result = http.fetch("https://dubai.dubizzle.com/jobs/")

    assert result.status_code == 403
    assert "_Incapsula_Resource" in result.text


def test_last_retryable_status_is_returned():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="down")

    with _make_http(handler, max_retries=1) as http:
        assert http.fetch("https://dubai.dubizzle.com/jobs/").status_code == 500


def test_transport_errors_raise_fetch_error_after_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectError("connection refused", request=request)

    with _make_http(handler, max_retries=1) as http:
        with pytest.raises(FetchError) as exc:
            http.fetch("https://dubai.dubizzle.com/jobs/")

    assert exc.value.status_code is None
    assert exc.value.url == "https://dubai.dubizzle.com/jobs/"
    assert len(calls) == 2


def test_allowlist_blocks_other_hosts_before_any_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with _make_http(handler) as http:
        with pytest.raises(HostNotAllowedError) as exc:
            http.fetch("https://tracker.example.net/pixel")

    assert exc.value.host == "tracker.example.net"


def test_empty_allowlist_allows_any_host():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="ok")

    with _make_http(handler, allowlist_hosts=()) as http:
        assert http.fetch("https://example.org/").status_code == 200


def test_host_allowed_matches_subdomains_only():
    assert host_allowed("dubai.dubizzle.com", ["dubizzle.com"])
    assert host_allowed("dubizzle.com", ["dubizzle.com"])
    assert not host_allowed("notdubizzle.com", ["dubizzle.com"])
