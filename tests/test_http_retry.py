from __future__ import annotations

import httpx
import pytest

from geoask.core.http.client import request_with_retry
from geoask.core.http.errors import GeoAskHTTPNetworkError, GeoAskHTTPStatusError


def _install(monkeypatch, handler) -> None:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    monkeypatch.setattr("geoask.core.http.client.get_http_client", lambda: client)
    monkeypatch.setattr("geoask.core.http.client.time.sleep", lambda _: None)
    monkeypatch.setattr("geoask.core.http.client.random.random", lambda: 0.5)


def test_request_with_retry_retries_transient_http_status(monkeypatch) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] < 3:
            return httpx.Response(503, request=request)
        return httpx.Response(200, request=request, json={"ok": True})

    _install(monkeypatch, handler)

    response = request_with_retry("GET", "http://service.local/test", retries=2)

    assert response.status_code == 200
    assert calls["count"] == 3


def test_capability_calls_are_not_retried_by_default(monkeypatch) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(503, request=request)

    _install(monkeypatch, handler)

    with pytest.raises(GeoAskHTTPStatusError) as excinfo:
        request_with_retry("GET", "http://service.local/test")

    assert excinfo.value.status_code == 503
    assert excinfo.value.url == "http://service.local/test"
    assert calls["count"] == 1


def test_timeout_surfaces_as_network_error(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    _install(monkeypatch, handler)

    with pytest.raises(GeoAskHTTPNetworkError):
        request_with_retry("GET", "http://service.local/slow", timeout_override=0.5)


def test_retry_honours_numeric_retry_after(monkeypatch) -> None:
    calls = {"count": 0}
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(429, request=request, headers={"Retry-After": "1"})
        return httpx.Response(200, request=request)

    _install(monkeypatch, handler)
    monkeypatch.setenv("GEOASK_HTTP_BACKOFF_MAX_S", "5")
    monkeypatch.setattr("geoask.core.http.client.time.sleep", sleeps.append)

    response = request_with_retry("GET", "http://service.local/busy", retries=1)

    assert response.status_code == 200
    assert sleeps == [1.0]


def test_allowed_error_status_is_returned_without_raising(monkeypatch) -> None:
    _install(monkeypatch, lambda request: httpx.Response(404, request=request))

    response = request_with_retry("GET", "http://service.local/missing", allowed_statuses={404})

    assert response.status_code == 404
