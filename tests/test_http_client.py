import asyncio

import httpx
import pytest

from package_catalog.domain.exceptions import NetworkError


def run_async(coro):
    return asyncio.run(coro)


def test_get_returns_status_headers_and_body(fetcher_for):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["ua"] = request.headers["user-agent"]
        seen["arg"] = request.url.params.get("arg")
        return httpx.Response(404, headers={"X-RateLimit-Remaining": "7"}, content=b"gone")

    resp = run_async(fetcher_for(handler).get("https://example.org/x", params={"arg": "a"}))

    assert resp.status == 404
    assert not resp.ok
    assert resp.headers["x-ratelimit-remaining"] == "7"
    assert resp.text() == "gone"
    assert seen == {"ua": "package-catalog-tests/1.0", "arg": "a"}


def test_transport_failure_becomes_network_error(fetcher_for):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError):
        run_async(fetcher_for(handler).get("https://example.org/"))


def test_caller_headers_override_defaults(fetcher_for):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["accept"] = request.headers["accept"]
        return httpx.Response(200, json=[1, 2])

    resp = run_async(
        fetcher_for(handler).get("https://example.org/", headers={"Accept": "application/json"})
    )

    assert seen["accept"] == "application/json"
    assert resp.json() == [1, 2]
