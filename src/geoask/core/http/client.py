from __future__ import annotations

import logging
import os
import random
import threading
import time

import httpx

from .errors import GeoAskHTTPNetworkError, GeoAskHTTPStatusError

_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
_RETRYABLE_EXCEPTIONS = (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError)

DEFAULT_TIMEOUT_S = 15.0
DEFAULT_CONNECT_TIMEOUT_S = 5.0
# capability calls are idempotent lookups but a user is waiting, so no retries unless configured
DEFAULT_RETRIES = 0
DEFAULT_BACKOFF_BASE_S = 0.25
DEFAULT_BACKOFF_MAX_S = 2.0
DEFAULT_USER_AGENT = "geoask/0.1"

logger = logging.getLogger("geoask.http")

_client: httpx.Client | None = None
_client_lock = threading.Lock()


def _env_number(name: str, default: float, cast: type = float):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        return default


def _build_timeout(total_s: float | None = None) -> httpx.Timeout:
    """Per-request timeout; an explicit ``total_s`` wins over ``GEOASK_HTTP_TIMEOUT_S``."""
    read_s = total_s if total_s is not None else _env_number("GEOASK_HTTP_TIMEOUT_S", DEFAULT_TIMEOUT_S)
    read_s = max(0.1, read_s)
    connect_s = max(0.1, _env_number("GEOASK_HTTP_CONNECT_TIMEOUT_S", DEFAULT_CONNECT_TIMEOUT_S))
    return httpx.Timeout(read_s, connect=min(connect_s, read_s))


def get_http_client() -> httpx.Client:
    global _client
    with _client_lock:
        if _client is None:
            _client = httpx.Client(
                timeout=_build_timeout(),
                headers={"User-Agent": os.getenv("GEOASK_HTTP_USER_AGENT", DEFAULT_USER_AGENT)},
            )
        return _client


def close_http_client() -> None:
    global _client
    with _client_lock:
        if _client is not None:
            _client.close()
            _client = None


def _retry_after_s(response: httpx.Response | None) -> float | None:
    if response is None:
        return None
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        # HTTP-date form is not worth parsing for sub-minute waits
        return None


def _backoff_s(attempt: int, response: httpx.Response | None, base_s: float, max_s: float) -> float:
    retry_after = _retry_after_s(response)
    if retry_after is not None:
        return min(max_s, retry_after)
    return min(max_s, base_s * (2**attempt)) * (0.5 + random.random())


def _log_retry(method: str, url: str, attempt: int, delay_s: float, reason: str) -> None:
    logger.warning(
        "http_retry",
        extra={
            "extra_fields": {
                "method": method,
                "url": url,
                "attempt": attempt + 1,
                "delay_ms": int(delay_s * 1000),
                "reason": reason,
            }
        },
    )


def request_with_retry(
    method: str,
    url: str,
    *,
    params: dict[str, object] | None = None,
    headers: dict[str, str] | None = None,
    json: object | None = None,
    data: object | None = None,
    timeout_override: float | None = None,
    retries: int | None = None,
    allowed_statuses: set[int] | None = None,
) -> httpx.Response:
    """Send a request through the shared client.

    2xx responses and any status in ``allowed_statuses`` are returned. Transport
    failures and 429/5xx answers are retried up to ``retries`` times (default
    ``GEOASK_HTTP_RETRIES``), honouring a numeric ``Retry-After``. Anything else
    raises ``GeoAskHTTPStatusError`` or ``GeoAskHTTPNetworkError``.
    """
    max_retries = max(0, _env_number("GEOASK_HTTP_RETRIES", DEFAULT_RETRIES, int) if retries is None else retries)
    base_s = max(0.01, _env_number("GEOASK_HTTP_BACKOFF_BASE_S", DEFAULT_BACKOFF_BASE_S))
    max_s = max(0.01, _env_number("GEOASK_HTTP_BACKOFF_MAX_S", DEFAULT_BACKOFF_MAX_S))
    timeout = _build_timeout(timeout_override)
    client = get_http_client()

    attempt = 0
    while True:
        try:
            response = client.request(
                method, url, params=params, headers=headers, json=json, data=data, timeout=timeout
            )
        except _RETRYABLE_EXCEPTIONS as exc:
            if attempt >= max_retries:
                raise GeoAskHTTPNetworkError(
                    f"HTTP request failed for {url}: {exc.__class__.__name__}", url=url
                ) from exc
            delay_s = _backoff_s(attempt, None, base_s, max_s)
            _log_retry(method, url, attempt, delay_s, exc.__class__.__name__)
        except httpx.HTTPError as exc:
            raise GeoAskHTTPNetworkError(f"HTTP request error for {url}: {exc.__class__.__name__}", url=url) from exc
        else:
            status = response.status_code
            if 200 <= status < 300 or (allowed_statuses is not None and status in allowed_statuses):
                return response
            if status not in _RETRYABLE_STATUS_CODES or attempt >= max_retries:
                raise GeoAskHTTPStatusError(f"HTTP status {status} for {url}", status_code=status, url=url)
            delay_s = _backoff_s(attempt, response, base_s, max_s)
            _log_retry(method, url, attempt, delay_s, f"status {status}")

        time.sleep(delay_s)
        attempt += 1
