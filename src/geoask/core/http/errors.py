from __future__ import annotations


class GeoAskHTTPError(RuntimeError):
    """Base error for calls made through the shared HTTP client."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class GeoAskHTTPStatusError(GeoAskHTTPError):
    def __init__(self, message: str, status_code: int | None = None, url: str | None = None) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code


class GeoAskHTTPNetworkError(GeoAskHTTPError):
    """Transport failure or timeout once retries are exhausted."""
